from typing import Optional


class TrackerError(Exception):
    """Base class for request tracking errors"""

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


class MissingCredentialsError(TrackerError):
    """Raised when a request id or access token is missing at start time"""


class PollerStateError(TrackerError):
    """Raised when a poller is started while its timer is still active"""


class StatusFetchError(TrackerError):
    """A single status query failed"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class CancelValidationError(TrackerError):
    """Raised before any network call when cancel is missing an id or token"""


class CancelFailedError(TrackerError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ActionDisabledError(TrackerError):
    """Raised when cancel is invoked while in flight or after it succeeded"""
