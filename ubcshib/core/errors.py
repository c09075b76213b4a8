"""Exceptions raised by the ubcshib core."""


class UBCShibError(Exception):
    """Base exception for ubcshib errors."""


class ConfigurationError(UBCShibError):
    """Raised when the strategy cannot be configured."""


class CertificateResolutionError(UBCShibError):
    """Raised when the IdP signing certificate cannot be resolved."""


class MetadataFetchError(CertificateResolutionError):
    """Raised when IdP metadata cannot be retrieved."""


class CertificateNotFoundError(CertificateResolutionError):
    """Raised when IdP metadata contains no signing certificate."""


class CertificateUnavailableError(UBCShibError):
    """Raised per request while no IdP certificate has been published."""


class SAMLProtocolError(UBCShibError):
    """Raised by a SAML engine when a response fails protocol validation."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class AuthenticationError(UBCShibError):
    """Raised by an application verify callback to reject a user."""
