"""UBC Shibboleth authentication strategy.

Composes application options with the UBC environment defaults, resolves
the IdP signing certificate, and wraps the application's verify callback so
it only ever sees friendly-named attributes. SAML message handling is
delegated to a ``SAMLEngine``.

Lifecycle:

    strategy = UBCStrategy(options, verify)   # synchronous, fails fast
    strategy.initialize()                     # fetches the IdP certificate

Construction never touches the network. If no certificate was supplied the
strategy stays in AWAITING_CERTIFICATE until ``initialize()`` (or the
background thread started by ``start()``) publishes one; a failed fetch
leaves it DEGRADED for the life of the process. Authentication attempts in
either state fail with ``CertificateUnavailableError``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from ubcshib.core.attributes import map_attributes
from ubcshib.core.config import (
    StrategyConfiguration,
    StrategyOptions,
    build_configuration,
    options_from_env,
)
from ubcshib.core.engine import EngineSettings, IdentityAssertion, SAMLEngine
from ubcshib.core.errors import (
    AuthenticationError,
    CertificateResolutionError,
    CertificateUnavailableError,
    ConfigurationError,
    SAMLProtocolError,
    UBCShibError,
)
from ubcshib.core.metadata import fetch_idp_certificate
from ubcshib.core.onelogin import OneLoginEngine

logger = logging.getLogger(__name__)

STRATEGY_NAME = "ubcshib"


class StrategyState(str, Enum):
    """Certificate lifecycle of a strategy instance."""

    CONSTRUCTING = "constructing"
    AWAITING_CERTIFICATE = "awaiting_certificate"
    READY = "ready"
    DEGRADED = "degraded"


@dataclass
class MappedProfile:
    """Identity handed to the application's verify callback."""

    name_id: str | None
    name_id_format: str | None = None
    session_index: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)
    raw_attributes: Mapping[str, Any] = field(default_factory=dict)
    issuer: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary (raw attributes excluded)."""
        return {
            "name_id": self.name_id,
            "name_id_format": self.name_id_format,
            "session_index": self.session_index,
            "attributes": dict(self.attributes),
            "issuer": self.issuer,
        }


@dataclass
class AuthResult:
    """Outcome of one authentication attempt."""

    success: bool
    user: Any = None
    error: UBCShibError | None = None
    profile: MappedProfile | None = None

    @property
    def message(self) -> str:
        """Human-readable failure reason."""
        if self.success:
            return ""
        return str(self.error) if self.error else "Authentication failed"


# verify(profile) -> user. A falsy return rejects the user.
VerifyCallback = Callable[[MappedProfile], Any]


@dataclass(frozen=True)
class _Snapshot:
    state: StrategyState
    configuration: StrategyConfiguration


class UBCStrategy:
    """SAML authentication strategy for the UBC Shibboleth IdP."""

    name = STRATEGY_NAME

    def __init__(
        self,
        options: StrategyOptions | Mapping[str, Any] | None,
        verify: VerifyCallback | None,
        engine: SAMLEngine | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Build the strategy configuration.

        Environment variables are consulted for any option the application
        did not set. No network request is made here.

        Args:
            options: Application options (StrategyOptions or a mapping).
            verify: Callback receiving the MappedProfile; returns the user.
            engine: SAML engine. Defaults to the python3-saml engine.
            http_client: Client used for the metadata fetch.

        Raises:
            ConfigurationError: If options or verify are missing, a required
                option is unset, or the private key cannot be loaded.
        """
        if options is None:
            raise ConfigurationError("Options must be provided to UBCStrategy")
        if verify is None:
            raise ConfigurationError("Verify callback must be provided to UBCStrategy")

        merged = options_from_env().merged(options)
        configuration = build_configuration(merged)

        if engine is None:
            engine = OneLoginEngine()

        self._verify = verify
        self._engine = engine
        self._http_client = http_client
        self._init_lock = threading.Lock()
        self._initialized = False
        self._settled = threading.Event()
        self._snapshot = _Snapshot(StrategyState.CONSTRUCTING, configuration)

        if configuration.cert:
            self._publish(StrategyState.READY, configuration)
        elif configuration.metadata_url:
            self._publish(StrategyState.AWAITING_CERTIFICATE, configuration)
        else:
            logger.error("No IdP certificate or metadata URL configured")
            self._publish(StrategyState.DEGRADED, configuration)

    def _publish(self, state: StrategyState, configuration: StrategyConfiguration) -> None:
        # Single assignment: readers see the old or the new pair, never a mix
        self._snapshot = _Snapshot(state, configuration)
        if state in (StrategyState.READY, StrategyState.DEGRADED):
            self._settled.set()
        logger.info(f"Strategy {self.name} is {state.value} ({configuration.environment.value})")

    @property
    def state(self) -> StrategyState:
        """Current lifecycle state."""
        return self._snapshot.state

    @property
    def configuration(self) -> StrategyConfiguration:
        """Current effective configuration."""
        return self._snapshot.configuration

    @property
    def engine(self) -> SAMLEngine:
        """The SAML engine in use."""
        return self._engine

    @property
    def enable_slo(self) -> bool:
        """Whether logout should continue at the IdP."""
        return self._snapshot.configuration.enable_slo

    @property
    def logout_url(self) -> str:
        """IdP logout endpoint."""
        return self._snapshot.configuration.logout_url

    def initialize(self) -> StrategyState:
        """Resolve the IdP certificate if it was not supplied.

        The fetch is attempted at most once per instance; later calls just
        return the current state. Failures are logged, never raised.

        Returns:
            READY or DEGRADED.
        """
        with self._init_lock:
            if self._initialized:
                return self.state
            self._initialized = True

            snapshot = self._snapshot
            if snapshot.state is not StrategyState.AWAITING_CERTIFICATE:
                return snapshot.state

            metadata_url = str(snapshot.configuration.metadata_url)
            try:
                cert = fetch_idp_certificate(metadata_url, client=self._http_client)
            except CertificateResolutionError as e:
                logger.error(f"Failed to fetch IdP certificate: {e}")
                self._publish(StrategyState.DEGRADED, snapshot.configuration)
            except Exception:
                # Waiters and the start() thread rely on the state settling
                logger.exception(f"Unexpected error fetching IdP certificate from {metadata_url}")
                self._publish(StrategyState.DEGRADED, snapshot.configuration)
            else:
                self._publish(StrategyState.READY, snapshot.configuration.with_certificate(cert))

            return self.state

    def start(self) -> threading.Thread:
        """Run ``initialize()`` on a background daemon thread."""
        thread = threading.Thread(
            target=self.initialize, name=f"{self.name}-certificate", daemon=True
        )
        thread.start()
        return thread

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Block until the certificate lifecycle settles.

        Returns:
            True if the strategy is READY, False if DEGRADED or the timeout
            expired first.
        """
        self._settled.wait(timeout)
        return self.state is StrategyState.READY

    def _engine_settings(self) -> EngineSettings:
        snapshot = self._snapshot
        if snapshot.state is not StrategyState.READY:
            raise CertificateUnavailableError(
                f"IdP certificate unavailable (strategy is {snapshot.state.value})"
            )
        return EngineSettings.from_configuration(snapshot.configuration)

    def map_profile(self, assertion: IdentityAssertion) -> MappedProfile:
        """Build the profile the verify callback receives."""
        return MappedProfile(
            name_id=assertion.name_id,
            name_id_format=assertion.name_id_format,
            session_index=assertion.session_index,
            attributes=map_attributes(
                assertion.attributes, self._snapshot.configuration.attribute_config
            ),
            raw_attributes=assertion.attributes,
            issuer=assertion.issuer,
        )

    def login_url(self, relay_state: str | None = None) -> str:
        """Build the IdP redirect URL that starts a login.

        Raises:
            CertificateUnavailableError: If the strategy is not READY.
        """
        return self._engine.login_url(self._engine_settings(), relay_state)

    def authenticate(self, request_data: Mapping[str, Any]) -> AuthResult:
        """Validate a posted SAML response and run the verify callback.

        Args:
            request_data: python3-saml style request description.

        Returns:
            AuthResult carrying the user on success, or the error.
        """
        try:
            settings = self._engine_settings()
        except CertificateUnavailableError as e:
            logger.warning(f"Rejecting SAML response: {e}")
            return AuthResult(success=False, error=e)

        try:
            assertion = self._engine.validate_response(settings, request_data)
        except SAMLProtocolError as e:
            logger.warning(f"SAML response failed validation: {e}")
            return AuthResult(success=False, error=e)

        profile = self.map_profile(assertion)

        # Any other exception from verify is an application bug and propagates
        try:
            user = self._verify(profile)
        except AuthenticationError as e:
            logger.info(f"User {profile.name_id} rejected by application: {e}")
            return AuthResult(success=False, error=e, profile=profile)

        if not user:
            return AuthResult(
                success=False,
                error=AuthenticationError(f"User {profile.name_id} was not accepted"),
                profile=profile,
            )

        logger.info(f"Authenticated {profile.name_id}")
        return AuthResult(success=True, user=user, profile=profile)

    def idp_logout_url(
        self,
        name_id: str | None = None,
        session_index: str | None = None,
        return_to: str | None = None,
    ) -> str:
        """Build an IdP logout URL.

        Uses a LogoutRequest from the engine when the strategy is READY and a
        name ID is known; otherwise the plain environment logout endpoint.
        """
        if name_id and self.state is StrategyState.READY:
            try:
                return self._engine.logout_url(
                    self._engine_settings(), name_id, session_index, return_to
                )
            except SAMLProtocolError as e:
                logger.warning(f"Could not build LogoutRequest, using plain logout URL: {e}")
        return self.logout_url

    def sp_metadata(self) -> str:
        """Generate service provider metadata XML."""
        return self._engine.sp_metadata(
            EngineSettings.from_configuration(self._snapshot.configuration)
        )
