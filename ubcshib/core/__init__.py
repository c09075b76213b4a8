"""Attribute mapping, environment resolution and the authentication strategy."""

from ubcshib.core.attributes import (
    ATTRIBUTE_MAPPINGS,
    UBC_ATTRIBUTES,
    AttributeDefinition,
    AttributeDictionary,
    get_friendly_name,
    get_wire_id,
    map_attributes,
)
from ubcshib.core.config import (
    StrategyConfiguration,
    StrategyOptions,
    build_configuration,
    load_options,
    load_private_key,
)
from ubcshib.core.engine import EngineSettings, IdentityAssertion, SAMLEngine
from ubcshib.core.environments import (
    DEFAULT_ENVIRONMENT,
    UBC_CONFIG,
    Environment,
    EnvironmentProfile,
    resolve_environment,
)
from ubcshib.core.errors import (
    AuthenticationError,
    CertificateNotFoundError,
    CertificateResolutionError,
    CertificateUnavailableError,
    ConfigurationError,
    MetadataFetchError,
    SAMLProtocolError,
    UBCShibError,
)
from ubcshib.core.metadata import (
    extract_cert_from_metadata,
    extract_signing_certificates,
    fetch_idp_certificate,
)
from ubcshib.core.strategy import AuthResult, MappedProfile, StrategyState, UBCStrategy

__all__ = [
    # Attributes
    "ATTRIBUTE_MAPPINGS",
    "UBC_ATTRIBUTES",
    "AttributeDefinition",
    "AttributeDictionary",
    "get_friendly_name",
    "get_wire_id",
    "map_attributes",
    # Configuration
    "StrategyConfiguration",
    "StrategyOptions",
    "build_configuration",
    "load_options",
    "load_private_key",
    # Engine
    "EngineSettings",
    "IdentityAssertion",
    "SAMLEngine",
    # Environments
    "DEFAULT_ENVIRONMENT",
    "UBC_CONFIG",
    "Environment",
    "EnvironmentProfile",
    "resolve_environment",
    # Errors
    "AuthenticationError",
    "CertificateNotFoundError",
    "CertificateResolutionError",
    "CertificateUnavailableError",
    "ConfigurationError",
    "MetadataFetchError",
    "SAMLProtocolError",
    "UBCShibError",
    # Metadata
    "extract_cert_from_metadata",
    "extract_signing_certificates",
    "fetch_idp_certificate",
    # Strategy
    "AuthResult",
    "MappedProfile",
    "StrategyState",
    "UBCStrategy",
]
