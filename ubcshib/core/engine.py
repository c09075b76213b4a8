"""Interface to the SAML protocol engine.

The strategy never builds or verifies SAML messages itself. It hands an
``EngineSettings`` snapshot to a ``SAMLEngine`` on every call, so a
certificate published after construction is picked up without mutating
engine state.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ubcshib.core.config import StrategyConfiguration


@dataclass(frozen=True)
class IdentityAssertion:
    """A validated assertion as reported by the SAML engine."""

    name_id: str | None
    name_id_format: str | None = None
    session_index: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    issuer: str | None = None


@dataclass(frozen=True)
class EngineSettings:
    """Configuration handed to the SAML engine."""

    entry_point: str
    logout_url: str
    issuer: str
    callback_url: str
    private_key: str | None
    decryption_key: str | None
    cert: str | None
    signature_algorithm: str
    digest_algorithm: str
    accepted_clock_skew_ms: int
    authn_request_binding: str
    identifier_format: str | None
    validate_in_response_to: bool
    idp_entity_id: str | None = None

    @classmethod
    def from_configuration(cls, config: StrategyConfiguration) -> EngineSettings:
        """Build engine settings from a strategy configuration."""
        return cls(
            entry_point=config.entry_point,
            logout_url=config.logout_url,
            issuer=config.issuer,
            callback_url=config.callback_url,
            private_key=config.private_key,
            decryption_key=config.decryption_key,
            cert=config.cert,
            signature_algorithm=config.signature_algorithm,
            digest_algorithm=config.digest_algorithm,
            accepted_clock_skew_ms=config.accepted_clock_skew_ms,
            authn_request_binding=config.authn_request_binding,
            identifier_format=config.identifier_format,
            validate_in_response_to=config.validate_in_response_to,
            # Shibboleth publishes its metadata at the entity ID URL
            idp_entity_id=config.metadata_url,
        )


@runtime_checkable
class SAMLEngine(Protocol):
    """SAML protocol operations the strategy delegates.

    ``request_data`` is the framework-neutral request description used by
    python3-saml: ``https``, ``http_host``, ``server_port``, ``script_name``,
    ``get_data`` and ``post_data``.
    """

    def login_url(self, settings: EngineSettings, relay_state: str | None = None) -> str:
        """Build the IdP redirect URL carrying a new AuthnRequest."""
        ...

    def validate_response(
        self, settings: EngineSettings, request_data: Mapping[str, Any]
    ) -> IdentityAssertion:
        """Validate a posted SAMLResponse.

        Raises:
            SAMLProtocolError: If the response is invalid for any reason.
        """
        ...

    def logout_url(
        self,
        settings: EngineSettings,
        name_id: str | None = None,
        session_index: str | None = None,
        return_to: str | None = None,
    ) -> str:
        """Build the IdP redirect URL carrying a LogoutRequest."""
        ...

    def sp_metadata(self, settings: EngineSettings) -> str:
        """Generate service provider metadata XML."""
        ...
