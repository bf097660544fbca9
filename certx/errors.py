"""Typed failures raised by the certificate pipeline.

Every error carries a stable ``kind`` tag so callers can pick their own
messaging without matching on classes or message text.
"""


class CertificateError(Exception):
    """Base class for all pipeline failures."""

    kind = "certificate"
    exit_code = 1

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class NotRegisteredError(CertificateError):
    """The email has no resolvable name for the event. User-correctable."""

    kind = "not_registered"
    exit_code = 2


class EventNotFoundError(NotRegisteredError):
    """The event id is unknown to the store."""


class AssetLoadError(CertificateError):
    """The template image could not be retrieved or decoded."""

    kind = "asset_load"
    exit_code = 3


class EncodingError(CertificateError):
    """The QR payload does not fit the symbology at the requested ECC level."""

    kind = "encoding"
    exit_code = 4


class SerializationError(CertificateError):
    """The composed document could not be written to the export format."""

    kind = "serialization"
    exit_code = 5
