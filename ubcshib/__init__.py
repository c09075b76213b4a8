"""UBC Shibboleth SAML 2.0 authentication strategy for Flask applications."""

__version__ = "0.1.0"

from ubcshib.core.attributes import ATTRIBUTE_MAPPINGS, get_friendly_name, map_attributes  # noqa: E402
from ubcshib.core.config import StrategyOptions, load_private_key  # noqa: E402
from ubcshib.core.environments import UBC_CONFIG, resolve_environment  # noqa: E402
from ubcshib.core.metadata import extract_cert_from_metadata, fetch_idp_certificate  # noqa: E402
from ubcshib.core.strategy import UBCStrategy  # noqa: E402
from ubcshib.web import conditional_auth, ensure_authenticated, init_strategy, logout  # noqa: E402

Strategy = UBCStrategy

__all__ = [
    "ATTRIBUTE_MAPPINGS",
    "UBC_CONFIG",
    "Strategy",
    "StrategyOptions",
    "UBCStrategy",
    "conditional_auth",
    "ensure_authenticated",
    "extract_cert_from_metadata",
    "fetch_idp_certificate",
    "get_friendly_name",
    "init_strategy",
    "load_private_key",
    "logout",
    "map_attributes",
    "resolve_environment",
]
