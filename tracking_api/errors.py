# path: tracking_api/errors.py
"""Error kinds raised by the tracking core.

The core classifies every failure into one of a small set of kinds. The
classification is independent of any transport; `main.py` maps each kind to
an HTTP status code when rendering the error response.
"""

from enum import Enum


class ErrorKind(str, Enum):
    unauthorized = "unauthorized"
    forbidden = "forbidden"
    not_found = "not_found"
    store_unavailable = "store_unavailable"


class TrackingError(Exception):
    """Base class for all classified errors of the service."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class Unauthorized(TrackingError):
    """Credentials are missing or invalid."""

    kind = ErrorKind.unauthorized


class Forbidden(TrackingError):
    """A valid identity was given but a tracking precondition fails."""

    kind = ErrorKind.forbidden


class NotFound(TrackingError):
    """The referenced identity does not exist, or a listing is empty."""

    kind = ErrorKind.not_found


class StoreUnavailable(TrackingError):
    """The backing persistence layer failed or timed out."""

    kind = ErrorKind.store_unavailable
