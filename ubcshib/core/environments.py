"""UBC IdP deployment environments.

Each environment carries the IdP single sign-on, logout and metadata
endpoints. Unknown or unset environment names resolve to STAGING so a
misconfigured application never authenticates against production by
accident.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """UBC IdP deployment tiers."""

    LOCAL = "LOCAL"
    STAGING = "STAGING"
    PRODUCTION = "PRODUCTION"


@dataclass(frozen=True)
class EnvironmentProfile:
    """IdP endpoints for one environment."""

    environment: Environment
    entry_point: str
    logout_url: str
    metadata_url: str

    @property
    def name(self) -> str:
        """Environment name (e.g. ``STAGING``)."""
        return self.environment.value

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for display."""
        return {
            "environment": self.name,
            "entry_point": self.entry_point,
            "logout_url": self.logout_url,
            "metadata_url": self.metadata_url,
        }


DEFAULT_ENVIRONMENT = Environment.STAGING

UBC_CONFIG: Mapping[Environment, EnvironmentProfile] = MappingProxyType(
    {
        Environment.LOCAL: EnvironmentProfile(
            environment=Environment.LOCAL,
            entry_point="http://localhost:8080/simplesaml/saml2/idp/SSOService.php",
            logout_url="http://localhost:8080/simplesaml/saml2/idp/SingleLogoutService.php",
            metadata_url="http://localhost:8080/simplesaml/saml2/idp/metadata.php",
        ),
        Environment.STAGING: EnvironmentProfile(
            environment=Environment.STAGING,
            entry_point="https://authentication.stg.id.ubc.ca/idp/profile/SAML2/Redirect/SSO",
            logout_url="https://authentication.stg.id.ubc.ca/idp/profile/Logout",
            metadata_url="https://authentication.stg.id.ubc.ca/idp/shibboleth",
        ),
        Environment.PRODUCTION: EnvironmentProfile(
            environment=Environment.PRODUCTION,
            entry_point="https://authentication.ubc.ca/idp/profile/SAML2/Redirect/SSO",
            logout_url="https://authentication.ubc.ca/idp/profile/Logout",
            metadata_url="https://authentication.ubc.ca/idp/shibboleth",
        ),
    }
)


def resolve_environment(name: str | Environment | None) -> EnvironmentProfile:
    """Resolve an environment name to its IdP endpoints.

    Args:
        name: Environment name, compared case-insensitively and ignoring
            surrounding whitespace.

    Returns:
        The matching profile, or the STAGING profile if the name is unset
        or unknown.
    """
    if isinstance(name, Environment):
        return UBC_CONFIG[name]

    key = (name or "").strip().upper()
    try:
        return UBC_CONFIG[Environment(key)]
    except ValueError:
        if key:
            logger.warning(
                f"Unknown SAML environment '{name}', falling back to {DEFAULT_ENVIRONMENT.value}"
            )
        return UBC_CONFIG[DEFAULT_ENVIRONMENT]


def list_environments() -> list[EnvironmentProfile]:
    """List all known environment profiles."""
    return list(UBC_CONFIG.values())
