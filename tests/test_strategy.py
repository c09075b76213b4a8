"""Tests for the UBC Shibboleth strategy."""

import dataclasses
import threading

import httpx
import pytest

from ubcshib.core.config import StrategyOptions
from ubcshib.core.engine import IdentityAssertion, SAMLEngine
from ubcshib.core.errors import (
    AuthenticationError,
    CertificateUnavailableError,
    ConfigurationError,
    SAMLProtocolError,
)
from ubcshib.core.strategy import STRATEGY_NAME, MappedProfile, StrategyState, UBCStrategy

from .samples import (
    MAIL_OID,
    PUID_MACE,
    FakeEngine,
    build_metadata,
    failing_transport,
    metadata_transport,
)


def accept(profile: MappedProfile) -> dict:
    return {"id": profile.name_id, "attributes": profile.attributes}


def awaiting_options(options: dict) -> dict:
    """Options without a certificate, so one must be fetched."""
    return {key: value for key, value in options.items() if key != "cert"}


class TestConstruction:
    """Tests for strategy construction."""

    def test_name(self, options, engine):
        """Test the strategy name."""
        strategy = UBCStrategy(options, accept, engine=engine)
        assert strategy.name == STRATEGY_NAME == "ubcshib"

    def test_ready_with_certificate(self, options, engine):
        """Test that a supplied certificate makes the strategy usable at once."""
        strategy = UBCStrategy(options, accept, engine=engine)
        assert strategy.state is StrategyState.READY
        assert strategy.configuration.cert == "MIICfakeCertificate=="
        assert strategy.wait_until_ready(timeout=0)

    def test_awaiting_without_certificate(self, options, engine):
        """Test that a missing certificate defers readiness."""
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine)
        assert strategy.state is StrategyState.AWAITING_CERTIFICATE
        assert not strategy.wait_until_ready(timeout=0)

    def test_accepts_strategy_options(self, engine):
        """Test passing a StrategyOptions instance."""
        options = StrategyOptions(
            issuer="https://sp.example.org",
            callback_url="https://sp.example.org/callback",
            cert="MIIC",
            environment="production",
        )
        strategy = UBCStrategy(options, accept, engine=engine)
        assert strategy.configuration.entry_point.startswith("https://authentication.ubc.ca/")

    def test_missing_options(self, engine):
        """Test that options are required."""
        with pytest.raises(ConfigurationError, match="Options must be provided"):
            UBCStrategy(None, accept, engine=engine)

    def test_missing_verify(self, options, engine):
        """Test that a verify callback is required."""
        with pytest.raises(ConfigurationError, match="Verify callback"):
            UBCStrategy(options, None, engine=engine)

    def test_missing_issuer(self, options, engine):
        """Test that construction fails fast without an issuer."""
        del options["issuer"]
        with pytest.raises(ConfigurationError, match="issuer"):
            UBCStrategy(options, accept, engine=engine)

    def test_bad_private_key_path(self, options, engine, tmp_path):
        """Test that an unreadable key fails construction."""
        options["private_key_path"] = str(tmp_path / "absent.pem")
        with pytest.raises(ConfigurationError, match="absent.pem"):
            UBCStrategy(options, accept, engine=engine)

    def test_environment_variables_fill_gaps(self, monkeypatch, engine):
        """Test that SAML_* variables supply unset options."""
        monkeypatch.setenv("SAML_ISSUER", "https://env.example.org")
        monkeypatch.setenv("SAML_CALLBACK_URL", "https://env.example.org/callback")
        monkeypatch.setenv("SAML_ENVIRONMENT", "LOCAL")
        strategy = UBCStrategy({"cert": "MIIC"}, accept, engine=engine)
        assert strategy.configuration.issuer == "https://env.example.org"
        assert strategy.configuration.entry_point.startswith("http://localhost")

    def test_explicit_options_beat_environment(self, monkeypatch, options, engine):
        """Test that application options override SAML_* variables."""
        monkeypatch.setenv("SAML_ISSUER", "https://env.example.org")
        strategy = UBCStrategy(options, accept, engine=engine)
        assert strategy.configuration.issuer == options["issuer"]

    def test_slo_defaults_on(self, options, engine):
        """Test that single logout is enabled unless turned off."""
        assert UBCStrategy(options, accept, engine=engine).enable_slo
        options["enableSLO"] = False
        assert not UBCStrategy(options, accept, engine=engine).enable_slo

    def test_default_engine(self, options):
        """Test that the python3-saml engine is used by default."""
        strategy = UBCStrategy(options, accept)
        assert isinstance(strategy.engine, SAMLEngine)

    def test_no_network_during_construction(self, options):
        """Test that construction does not fetch metadata."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(500)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        UBCStrategy(awaiting_options(options), accept, engine=FakeEngine(), http_client=client)
        assert requests == []


class TestInitialize:
    """Tests for certificate resolution."""

    def test_fetch_publishes_certificate(self, options, engine):
        """Test that a fetched certificate makes the strategy READY."""
        client = httpx.Client(
            transport=metadata_transport(body=build_metadata(("signing", "MIICFETCHED")))
        )
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine, http_client=client)

        assert strategy.initialize() is StrategyState.READY
        assert strategy.configuration.cert == "MIICFETCHED"
        assert strategy.wait_until_ready(timeout=0)

    def test_fetch_failure_degrades(self, options, engine, caplog):
        """Test that a failed fetch leaves the strategy DEGRADED."""
        client = httpx.Client(transport=failing_transport())
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine, http_client=client)

        assert strategy.initialize() is StrategyState.DEGRADED
        assert strategy.configuration.cert is None
        assert "Failed to fetch IdP certificate" in caplog.text
        assert not strategy.wait_until_ready(timeout=0)

    def test_metadata_without_certificate_degrades(self, options, engine):
        """Test that metadata lacking a certificate degrades the strategy."""
        client = httpx.Client(transport=metadata_transport(body=build_metadata()))
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine, http_client=client)
        assert strategy.initialize() is StrategyState.DEGRADED

    def test_fetch_uses_configured_metadata_url(self, options, engine):
        """Test that the metadata URL option is honoured."""
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, text=build_metadata(("signing", "MIIC")))

        client = httpx.Client(transport=httpx.MockTransport(handler))
        opts = awaiting_options(options)
        opts["metadata_url"] = "https://idp.example.org/metadata"
        UBCStrategy(opts, accept, engine=engine, http_client=client).initialize()
        assert urls == ["https://idp.example.org/metadata"]

    def test_fetch_happens_once(self, options, engine):
        """Test that repeated and concurrent initialize calls fetch once."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, text=build_metadata(("signing", "MIIC")))

        client = httpx.Client(transport=httpx.MockTransport(handler))
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine, http_client=client)

        threads = [threading.Thread(target=strategy.initialize) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        strategy.initialize()

        assert len(calls) == 1
        assert strategy.state is StrategyState.READY

    def test_failure_is_not_retried(self, options, engine):
        """Test that a DEGRADED strategy stays DEGRADED."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine, http_client=client)
        strategy.initialize()
        strategy.initialize()

        assert len(calls) == 1
        assert strategy.state is StrategyState.DEGRADED

    def test_initialize_when_ready_is_noop(self, options, engine):
        """Test that a supplied certificate is never replaced."""
        strategy = UBCStrategy(options, accept, engine=engine)
        assert strategy.initialize() is StrategyState.READY
        assert strategy.configuration.cert == "MIICfakeCertificate=="

    def test_start_runs_in_background(self, options, engine):
        """Test background initialization."""
        client = httpx.Client(
            transport=metadata_transport(body=build_metadata(("signing", "MIICBACKGROUND")))
        )
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine, http_client=client)

        thread = strategy.start()
        assert thread.daemon
        assert strategy.wait_until_ready(timeout=5)
        thread.join(timeout=5)
        assert strategy.configuration.cert == "MIICBACKGROUND"

    def test_malformed_metadata_url_degrades(self, options, engine, caplog):
        """Test that an unparseable metadata URL degrades instead of raising."""
        opts = awaiting_options(options)
        opts["metadata_url"] = "https://exa mple.org/idp/\x00shibboleth"
        client = httpx.Client(transport=metadata_transport(body=build_metadata(("signing", "MIIC"))))
        strategy = UBCStrategy(opts, accept, engine=engine, http_client=client)

        assert strategy.initialize() is StrategyState.DEGRADED
        assert "Failed to fetch IdP certificate" in caplog.text
        assert not strategy.wait_until_ready()

    def test_unexpected_fetch_error_degrades(self, options, engine, monkeypatch, caplog):
        """Test that any error during the fetch settles the strategy."""
        from ubcshib.core import strategy as strategy_module

        def broken_fetch(url, client=None):
            raise RuntimeError("metadata parser exploded")

        monkeypatch.setattr(strategy_module, "fetch_idp_certificate", broken_fetch)
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine)

        thread = strategy.start()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert strategy.state is StrategyState.DEGRADED
        assert not strategy.wait_until_ready()
        assert "metadata parser exploded" in caplog.text

    def test_no_certificate_source_degrades(self, options, engine, monkeypatch):
        """Test a strategy with neither certificate nor metadata URL."""
        from ubcshib.core import strategy as strategy_module
        from ubcshib.core.config import build_configuration as real_build

        def build_without_metadata(opts):
            return dataclasses.replace(real_build(opts), metadata_url=None)

        monkeypatch.setattr(strategy_module, "build_configuration", build_without_metadata)
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine)
        assert strategy.state is StrategyState.DEGRADED


class TestAuthenticate:
    """Tests for the authentication flow."""

    def test_success(self, options, engine):
        """Test a valid response reaching the verify callback."""
        profiles = []

        def verify(profile: MappedProfile) -> dict:
            profiles.append(profile)
            return {"id": profile.name_id}

        strategy = UBCStrategy(options, verify, engine=engine)
        result = strategy.authenticate({"post_data": {"SAMLResponse": "PHNhbWw+"}})

        assert result.success
        assert result.user == {"id": "AAdzZWNyZXQx"}
        assert result.message == ""
        [profile] = profiles
        assert profile.attributes == {
            "mail": "a@ubc.ca",
            "eduPersonAffiliation": ["student", "member"],
        }
        assert profile.session_index == "_session123"
        assert engine.requests == [{"post_data": {"SAMLResponse": "PHNhbWw+"}}]

    def test_verify_sees_only_friendly_names(self, options, engine):
        """Test that raw wire identifiers are not in the mapped attributes."""
        strategy = UBCStrategy(options, accept, engine=engine)
        result = strategy.authenticate({})
        assert MAIL_OID not in result.profile.attributes
        assert MAIL_OID in result.profile.raw_attributes
        assert "raw_attributes" not in result.profile.to_dict()

    def test_all_attributes_without_attribute_config(self, options, engine):
        """Test pass-through mapping when no attributes are configured."""
        options["attribute_config"] = []
        strategy = UBCStrategy(options, accept, engine=engine)
        result = strategy.authenticate({})
        assert result.profile.attributes == {
            "mail": "a@ubc.ca",
            "eduPersonAffiliation": ["student", "member"],
            "ubcEduCwlPuid": "ABCD1234",
        }

    def test_alias_identifier(self, options):
        """Test that an assertion using the MACE PUID maps correctly."""
        options["attribute_config"] = ["ubcEduCwlPuid"]
        engine = FakeEngine(IdentityAssertion(name_id="x", attributes={PUID_MACE: "LEGACY"}))
        result = UBCStrategy(options, accept, engine=engine).authenticate({})
        assert result.profile.attributes == {"ubcEduCwlPuid": "LEGACY"}

    def test_engine_rejects_response(self, options):
        """Test that protocol errors fail the attempt without calling verify."""
        called = []
        engine = FakeEngine(error=SAMLProtocolError("Signature validation failed"))
        strategy = UBCStrategy(options, lambda p: called.append(p) or True, engine=engine)

        result = strategy.authenticate({})

        assert not result.success
        assert isinstance(result.error, SAMLProtocolError)
        assert "Signature validation failed" in result.message
        assert called == []

    @pytest.mark.parametrize("returned", [None, False, {}])
    def test_verify_returns_falsy(self, options, engine, returned):
        """Test that a falsy verify result rejects the user."""
        strategy = UBCStrategy(options, lambda profile: returned, engine=engine)
        result = strategy.authenticate({})
        assert not result.success
        assert isinstance(result.error, AuthenticationError)
        assert result.profile is not None

    def test_verify_raises(self, options, engine):
        """Test that verify can reject a user with a reason."""

        def verify(profile: MappedProfile) -> dict:
            raise AuthenticationError("Alumni are not allowed")

        result = UBCStrategy(options, verify, engine=engine).authenticate({})
        assert not result.success
        assert result.message == "Alumni are not allowed"

    def test_verify_bug_propagates(self, options, engine):
        """Test that unexpected verify errors are not turned into failed logins."""

        def verify(profile: MappedProfile) -> dict:
            raise KeyError("ubcEduCwlPuid")

        with pytest.raises(KeyError):
            UBCStrategy(options, verify, engine=engine).authenticate({})

    def test_awaiting_certificate_fails(self, options, engine):
        """Test that authentication fails before the certificate is known."""
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine)
        result = strategy.authenticate({})
        assert not result.success
        assert isinstance(result.error, CertificateUnavailableError)
        assert engine.requests == []

    def test_degraded_fails(self, options, engine):
        """Test that every attempt fails once the fetch has failed."""
        client = httpx.Client(transport=failing_transport())
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine, http_client=client)
        strategy.initialize()

        for _ in range(2):
            result = strategy.authenticate({})
            assert not result.success
            assert isinstance(result.error, CertificateUnavailableError)
            assert "degraded" in result.message

    def test_engine_receives_fetched_certificate(self, options, engine):
        """Test that the engine sees the certificate published by initialize."""
        client = httpx.Client(
            transport=metadata_transport(body=build_metadata(("signing", "MIICPUBLISHED")))
        )
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine, http_client=client)
        strategy.initialize()
        strategy.authenticate({})
        assert engine.settings[-1].cert == "MIICPUBLISHED"


class TestOutboundUrls:
    """Tests for login, logout and metadata generation."""

    def test_login_url(self, options, engine):
        """Test starting a login at the environment entry point."""
        strategy = UBCStrategy(options, accept, engine=engine)
        url = strategy.login_url(relay_state="/profile")
        assert url.startswith("https://authentication.stg.id.ubc.ca/idp/profile/SAML2/Redirect/SSO?")
        assert "RelayState=/profile" in url

    def test_login_url_requires_certificate(self, options, engine):
        """Test that login cannot start without a certificate."""
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine)
        with pytest.raises(CertificateUnavailableError):
            strategy.login_url()

    def test_engine_settings(self, options, engine, private_key_file):
        """Test the settings handed to the engine."""
        options["private_key_path"] = str(private_key_file)
        strategy = UBCStrategy(options, accept, engine=engine)
        strategy.login_url()
        settings = engine.settings[-1]
        assert settings.issuer == options["issuer"]
        assert settings.callback_url == options["callback_url"]
        assert settings.private_key == settings.decryption_key
        assert settings.signature_algorithm == "sha256"
        assert settings.idp_entity_id == "https://authentication.stg.id.ubc.ca/idp/shibboleth"

    def test_logout_url(self, options, engine):
        """Test the plain IdP logout endpoint."""
        strategy = UBCStrategy(options, accept, engine=engine)
        assert strategy.logout_url == "https://authentication.stg.id.ubc.ca/idp/profile/Logout"

    def test_idp_logout_url_with_name_id(self, options, engine):
        """Test building a LogoutRequest for a known user."""
        strategy = UBCStrategy(options, accept, engine=engine)
        url = strategy.idp_logout_url(name_id="AAdzZWNyZXQx", session_index="_s")
        assert url.endswith("SAMLRequest=logout-AAdzZWNyZXQx")

    def test_idp_logout_url_without_certificate(self, options, engine):
        """Test falling back to the plain logout endpoint."""
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine)
        assert strategy.idp_logout_url(name_id="AAdzZWNyZXQx") == strategy.logout_url

    def test_sp_metadata_without_certificate(self, options, engine):
        """Test that SP metadata does not depend on the IdP certificate."""
        strategy = UBCStrategy(awaiting_options(options), accept, engine=engine)
        assert options["issuer"] in strategy.sp_metadata()
