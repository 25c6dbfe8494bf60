"""Exceptions raised around the XP distribution engine."""

from typing import Optional


class XPDistributionError(Exception):
    """Base class for XP distribution failures."""


class TradeValidationError(XPDistributionError):
    """A raw trade row could not be turned into a ``Trade``."""

    def __init__(self, message: str, trade_id: Optional[str] = None):
        super().__init__(message)
        self.trade_id = trade_id


class HistoricalPairLookupError(XPDistributionError):
    """The historical pair collaborator failed for a wallet."""

    def __init__(self, wallet_address: str, cause: BaseException):
        super().__init__(f"historical pair lookup failed for {wallet_address}: {cause}")
        self.wallet_address = wallet_address
        self.cause = cause
        # Set by the wallet calculator: the week's record without the pair bonus.
        self.partial_record = None


class PersistenceError(XPDistributionError):
    """The weekly record upsert failed after retries."""

    def __init__(self, wallet_address: str, cause: BaseException):
        super().__init__(f"failed to persist weekly XP for {wallet_address}: {cause}")
        self.wallet_address = wallet_address
        self.cause = cause


class BandConfigError(XPDistributionError):
    """A band decay table violates its invariants."""
