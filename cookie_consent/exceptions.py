"""
Custom Exception Classes for cookie consent

Codec errors (InvalidRecordError, DecodeError, InvalidFormatError) are
raised to the immediate caller; the storage resolver catches them and
treats the affected tier as a miss. Nothing here should ever end up as
a 500 for the visitor: the worst case is the consent prompt again.
"""

from typing import Any

from fastapi import status


class ConsentError(Exception):
    """Base exception class for all consent-related exceptions"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Codec Exceptions
# ============================================================================


class InvalidRecordError(ConsentError):
    """Raised when asked to encode something that is not a ConsentRecord"""

    def __init__(self, message: str = "Not a valid consent record", value: Any = None):
        details = {"type": type(value).__name__}
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class DecodeError(ConsentError):
    """Raised when a consent cookie value cannot be parsed"""

    def __init__(self, message: str = "Malformed consent value", details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class InvalidFormatError(ConsentError):
    """Raised when a consent cookie value is present but is not text"""

    def __init__(self, value: Any = None):
        super().__init__(
            message="Consent value must be a string",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"type": type(value).__name__},
        )


# ============================================================================
# Storage & Configuration Exceptions
# ============================================================================


class ConsentStoreError(ConsentError):
    """Raised when the persistent consent store cannot be reached"""

    def __init__(self, message: str = "Consent store unavailable", operation: str | None = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message=message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details)


class ConsentConfigError(ConsentError):
    """Raised when cookie group configuration is invalid"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, details=details)


class ConsentRequiredError(ConsentError):
    """Raised by the require_consent dependency when no effective consent exists"""

    def __init__(self, redirect_to: str = "/consent"):
        self.redirect_to = redirect_to
        super().__init__(
            message="Cookie consent required",
            status_code=status.HTTP_303_SEE_OTHER,
            details={"redirect_to": redirect_to},
        )
