"""Pytest configuration and fixtures."""

from __future__ import annotations

import base64
import logging
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from flask import Flask
from flask.testing import FlaskClient

from ubcshib.core.config import ENV_CONFIG_FILE, ENV_VARS
from ubcshib.core.engine import IdentityAssertion
from ubcshib.core.logging import get_protocol_logger, set_protocol_logger

from .samples import AFFILIATION_OID, CALLBACK_URL, ISSUER, MAIL_OID, PUID_OID, FakeEngine


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate tests from SAML_* variables and config files in the CWD."""
    for env_var in ENV_VARS.values():
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.delenv(ENV_CONFIG_FILE, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Undo configure_logging() calls made by CLI tests."""
    protocol_logger = get_protocol_logger()
    yield
    package_logger = logging.getLogger("ubcshib")
    package_logger.setLevel(logging.NOTSET)
    package_logger.handlers.clear()
    set_protocol_logger(protocol_logger)


@pytest.fixture
def rsa_key() -> rsa.RSAPrivateKey:
    """A freshly generated RSA key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def private_key_file(tmp_path: Path, rsa_key: rsa.RSAPrivateKey) -> Path:
    """Unencrypted PEM private key on disk."""
    path = tmp_path / "sp-key.pem"
    path.write_bytes(
        rsa_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return path


@pytest.fixture
def idp_certificate(rsa_key: rsa.RSAPrivateKey) -> str:
    """Base64 body of a self-signed certificate."""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "authentication.stg.id.ubc.ca")])
    now = datetime.now(UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(rsa_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(rsa_key, hashes.SHA256())
    )
    der = cert.public_bytes(serialization.Encoding.DER)
    return base64.b64encode(der).decode("ascii")


@pytest.fixture
def options() -> dict[str, Any]:
    """Minimal valid strategy options."""
    return {
        "issuer": ISSUER,
        "callback_url": CALLBACK_URL,
        "cert": "MIICfakeCertificate==",
        "attribute_config": ["mail", "eduPersonAffiliation"],
    }


@pytest.fixture
def assertion() -> IdentityAssertion:
    """An assertion as the UBC IdP would produce it."""
    return IdentityAssertion(
        name_id="AAdzZWNyZXQx",
        name_id_format="urn:oasis:names:tc:SAML:2.0:nameid-format:transient",
        session_index="_session123",
        attributes={
            MAIL_OID: "a@ubc.ca",
            AFFILIATION_OID: ["student", "member"],
            PUID_OID: "ABCD1234",
        },
    )


@pytest.fixture
def engine(assertion: IdentityAssertion) -> FakeEngine:
    """Stand-in SAML engine returning the sample assertion."""
    return FakeEngine(assertion=assertion)



@pytest.fixture
def app(options: dict[str, Any], engine: FakeEngine) -> Generator[Flask, None, None]:
    """Example application wired to a READY strategy and the fake engine."""
    from ubcshib.app import create_app, default_verify
    from ubcshib.core.strategy import UBCStrategy

    options["attribute_config"] = ["ubcEduCwlPuid", "mail", "eduPersonAffiliation"]
    strategy = UBCStrategy({**options, "enable_slo": False}, default_verify, engine=engine)
    app = create_app({"TESTING": True, "SECRET_KEY": "test-secret-key"}, strategy=strategy)
    yield app


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create test client."""
    return app.test_client()
