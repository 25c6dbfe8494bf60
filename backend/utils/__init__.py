from .logger import setup_logging, get_logger, xp_logger, job_logger, store_logger
from .retry import RetryConfig, with_retry, is_retryable_error
from .utcnow import utcnow, utcfromtimestamp, to_utc_naive

__all__ = [
    # Logger
    "setup_logging",
    "get_logger",
    "xp_logger",
    "job_logger",
    "store_logger",

    # Retry
    "RetryConfig",
    "with_retry",
    "is_retryable_error",

    # Time
    "utcnow",
    "utcfromtimestamp",
    "to_utc_naive",
]
