"""Error taxonomy for the scan pipeline.

Every error carries a message that can be shown to the subject as-is.
The gateway maps each class to an HTTP status; the device-side client maps
the status back to the class.
"""
from typing import Optional


class BodyScanError(Exception):
    """Base class for all BodyScan errors."""

    status_code = 400
    default_message = "Something went wrong with this scan."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def reason(self) -> str:
        return type(self).__name__


class LinkNotFound(BodyScanError):
    """Raised when no session matches a link code."""

    status_code = 404
    default_message = "Scan link not found. Please ask your designer for a new link."


class LinkExpired(BodyScanError):
    """Raised when a session is read after its deadline."""

    status_code = 410
    default_message = "This scan link has expired. Please ask your designer for a new link."


class DetectionError(BodyScanError):
    """Raised when no usable skeleton is found in the front photo.

    Recoverable by retaking the photos; the session is not touched.
    """

    status_code = 422
    default_message = (
        "Could not detect your body pose in the front photo. "
        "Please make sure your full body is visible and try again."
    )


class CalibrationError(BodyScanError):
    """Raised when the stated height and detected skeleton do not agree."""

    status_code = 422
    default_message = (
        "We could not size your photo. Make sure your head and feet are visible "
        "and check the height you entered."
    )


class SessionNotWritable(BodyScanError):
    """Raised when a conditional session write is refused.

    ``why`` is one of ``expired``, ``completed``, ``failed`` or ``conflict``.
    """

    status_code = 409
    default_message = "Something changed with this scan. Please reload the link and start again."

    def __init__(self, message: Optional[str] = None, why: str = "conflict"):
        super().__init__(message)
        self.why = why


class ValidationError(BodyScanError):
    """Raised when a submission or manual entry is not acceptable."""

    status_code = 422
    default_message = "Some measurements are missing or invalid."

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


ERRORS_BY_REASON = {
    cls.__name__: cls
    for cls in (
        LinkNotFound,
        LinkExpired,
        DetectionError,
        CalibrationError,
        SessionNotWritable,
        ValidationError,
    )
}
