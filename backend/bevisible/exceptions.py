"""
Error taxonomy for scheduling and report processing.

Item-level errors (one prompt, one provider call) are recovered locally and
counted. Stage-level failures are recorded as stage status. Only
SchedulingExhaustion and unexpected errors during report initialization
propagate to API callers.
"""

from typing import Optional


class BeVisibleError(Exception):
    """Base class for all domain errors."""


class ConfigurationError(BeVisibleError):
    """Missing credentials or proxy configuration (account, provider, service)."""

    def __init__(self, message: str, account_id: Optional[str] = None):
        super().__init__(message)
        self.account_id = account_id


class ExternalProviderError(BeVisibleError):
    """Provider call failed: timeout, rate limit, non-2xx, malformed payload."""

    def __init__(self, message: str, provider: str = "unknown", retryable: bool = False):
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable


class DataIntegrityError(BeVisibleError):
    """Unexpected missing or duplicate row."""


class NotFoundError(DataIntegrityError):
    """Referenced brand, report, batch or account does not exist."""


class SchedulingExhaustion(BeVisibleError):
    """No schedule can be produced for a date (no eligible accounts, no time slots)."""
