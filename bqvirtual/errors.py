"""
Error classes for bqvirtual.

Every failure the virtual-table adapter can surface is one of these:
- ConfigurationError: a required connection setting is missing or empty
- ParseError: PEM/DER private key material is malformed
- AuthenticationError: the token endpoint rejected the assertion or answered garbage
- RemoteApiError: the data endpoint returned a non-success response
- ValidationError: bad identifier, GUID, integer or date literal, or no primary key
- MappingNotFoundError: attribute has no registry entry (callers log and skip it)

Error handling contract:
- Nothing is retried inside bqvirtual
- Adapters log the failure and re-raise unchanged
- The host surfaces the failure to its own caller
"""


class BqVirtualError(Exception):
    """Base exception for bqvirtual."""
    pass


class ConfigurationError(BqVirtualError):
    """Missing or empty required configuration setting."""
    pass


class ParseError(BqVirtualError):
    """
    Malformed private key material.

    Raised by the DER reader for bad tags, lengths running past the end of
    the buffer, or a key with fewer than eight integer fields.
    """
    pass


class ValidationError(BqVirtualError):
    """
    Value rejected before it could reach query text.

    Examples:
    - Identifier that does not match ^[A-Za-z_][A-Za-z0-9_]*$
    - GUID, integer or date-time literal that does not parse
    - Empty record identifier
    - Registry with no primary-key mapping
    """
    pass


class MappingNotFoundError(BqVirtualError):
    """Attribute or column with no field-mapping entry."""

    def __init__(self, name: str):
        super().__init__(f"No field mapping found for: {name}")
        self.name = name


class _HttpError(BqVirtualError):
    """Failure carrying the HTTP status code and raw response body."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is None:
            return base
        return f"{base} (status={self.status_code}): {self.body}"


class AuthenticationError(_HttpError):
    """Token endpoint rejected the JWT assertion or returned malformed JSON."""
    pass


class RemoteApiError(_HttpError):
    """Data endpoint returned a non-2xx status or reported row errors."""
    pass
