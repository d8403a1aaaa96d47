"""Contains all models commonly used across different modules."""
from enum import Enum


class UploadErrorKind(str, Enum):
    """Enumeration of the ways an image upload can fail."""

    MISSING_FILE = "missing_file"
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    EMPTY_FILE = "empty_file"
    MALFORMED_UPLOAD = "malformed_upload"
    NOT_CONFIGURED = "not_configured"
    EMPTY_BUFFER = "empty_buffer"
    STORE_ERROR = "store_error"
    INTEGRITY = "integrity"


# Failures caused by what the caller sent, everything else is on our side
CLIENT_INPUT_ERRORS = frozenset(
    {
        UploadErrorKind.MISSING_FILE,
        UploadErrorKind.UNSUPPORTED_MEDIA_TYPE,
        UploadErrorKind.PAYLOAD_TOO_LARGE,
        UploadErrorKind.EMPTY_FILE,
        UploadErrorKind.MALFORMED_UPLOAD,
    }
)
