"""
Error taxonomy for marketplace client operations.

ValidationError is raised before any network call. RequestFailed covers
network and backend failures; the action is safe to re-issue unchanged.
"""

from typing import Any, Optional


class MarketplaceError(Exception):
    """Base class for all marketplace client errors"""


class ValidationError(MarketplaceError):
    """Raised when local validation blocks a submission (no request made)"""


class InvalidTransition(ValidationError):
    """Raised when a controller action is not allowed in its current state"""


class RequestFailed(MarketplaceError):
    """Raised when a backend call fails (network error or 4xx/5xx)"""

    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload

    @property
    def retryable(self) -> bool:
        """Network failures and 5xx responses can be retried as-is"""
        return self.status is None or self.status >= 500


class StaleReadRace(RequestFailed):
    """
    Raised when the backend rejects a submission that passed local balance
    validation because the true balance changed concurrently.

    Never retried automatically with a different amount.
    """

    DEFAULT_MESSAGE = (
        "Your balance changed while this request was being submitted. "
        "Refresh the wallet and try again."
    )

    @property
    def retryable(self) -> bool:
        return False
