# recallbot/core/errors.py
"""Exception hierarchy shared by search, indexing and storage."""

from typing import Optional


class RecallBotError(Exception):
    """Base class for all recallbot errors."""


class ConfigError(RecallBotError, ValueError):
    """Invalid or missing configuration. Fatal, never retried."""


class StoreError(RecallBotError):
    """The message store failed to read or write."""


class EmbeddingError(RecallBotError):
    """The embedding provider failed to produce vectors."""


class RateLimitError(EmbeddingError):
    """
    The embedding provider asked us to slow down (HTTP 429 and friends).

    The batch processor recognizes this class specifically and retries the
    same batch after a backoff instead of aborting the run.
    """

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after
