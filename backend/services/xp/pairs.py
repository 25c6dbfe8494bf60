"""Canonical keys for unordered token pairs.

Every grouping in the XP engine and every stored ``new_pairs`` history uses
these keys, so the case policy and separator must never change.
"""

PAIR_SEPARATOR = "-"


def normalize_pair(token_a: str, token_b: str) -> str:
    """Return the order-independent key for a token pair.

    >>> normalize_pair("0xB", "0xa")
    '0xa-0xb'
    """
    first, second = sorted((token_a.strip().lower(), token_b.strip().lower()))
    return f"{first}{PAIR_SEPARATOR}{second}"


def split_pair(pair: str) -> tuple[str, str]:
    """Inverse of ``normalize_pair``; returns the lexicographically ordered tokens."""
    first, _, second = pair.partition(PAIR_SEPARATOR)
    return first, second


def pair_of(trade) -> str:
    return normalize_pair(trade.token_from_address, trade.token_to_address)


def short_pair_label(pair: str, width: int = 6) -> str:
    """Abbreviated pair for log lines, e.g. ``0xa0b8..-0xc02a..``."""
    first, second = split_pair(pair)
    return f"{first[:width]}..{PAIR_SEPARATOR}{second[:width]}.."
