"""Error types for the OTA Updates API.

Every error a request can end in is an OTAError subclass carrying the HTTP
status it maps to. The app renders them as the standard response envelope:

    {"error": ..., "message": ..., "result": null}

- Client errors (4xx): the message is shown to the caller as-is
- Internal errors (5xx): logged with traceback, generic message returned
"""

from typing import Optional


class OTAError(Exception):
    """Base exception for OTA request failures.

    Attributes:
        message: Error description.
        cause: Optional underlying exception being wrapped.
    """

    status_code = 500

    def __init__(self, message: str, cause: Optional[Exception] = None):
        """Initialize OTAError.

        Args:
            message: Description of the error.
            cause: Optional exception that triggered this error.
        """
        super().__init__(message)
        self.message = message
        self.cause = cause


class ValidationError(OTAError):
    """Missing or malformed header, query parameter, or form field."""

    status_code = 400


class ProtocolError(OTAError):
    """Request violates the expo-updates protocol (bad protocol version)."""

    status_code = 400


class ConfigError(OTAError):
    """Request needs server configuration that is missing.

    Raised when code signing is requested but no private key is configured.
    """

    status_code = 400


class AuthError(OTAError):
    """Upload key did not match the configured secret."""

    status_code = 401


class MethodNotAllowedError(OTAError):
    status_code = 405


class NotFoundError(OTAError):
    status_code = 404


class BundleNotFoundError(NotFoundError):
    """No bundle directory for the requested channel and runtime version."""


class MetadataNotFoundError(NotFoundError):
    """Bundle has no readable metadata.json (or no entry for the platform)."""


class AssetNotFoundError(NotFoundError):
    """Asset file missing from the bundle or not listed in its metadata."""


class InternalError(OTAError):
    """Unexpected server-side failure (I/O, malformed metadata, bad key)."""

    status_code = 500


class BundleIngestError(InternalError):
    """Zip extraction into the bundle store failed.

    The partially written bundle has already been removed when this is raised.
    """
