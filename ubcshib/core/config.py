"""Strategy configuration.

Options are gathered in this order (later values override earlier):
1. Hard-coded defaults
2. ubcshib.yaml file (if it exists)
3. Environment variables
4. Options passed explicitly by the application

``build_configuration`` then merges the options with the resolved IdP
environment into an immutable ``StrategyConfiguration``.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from cryptography.hazmat.primitives import serialization

from ubcshib.core.environments import Environment, resolve_environment
from ubcshib.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("ubcshib.yaml")
ENV_CONFIG_FILE = "UBCSHIB_CONFIG"

BINDING_HTTP_REDIRECT = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect"
BINDING_HTTP_POST = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST"

DEFAULT_SIGNATURE_ALGORITHM = "sha256"
DEFAULT_DIGEST_ALGORITHM = "sha256"

# option name -> environment variable
ENV_VARS = {
    "environment": "SAML_ENVIRONMENT",
    "private_key_path": "SAML_PRIVATE_KEY_PATH",
    "issuer": "SAML_ISSUER",
    "callback_url": "SAML_CALLBACK_URL",
    "enable_slo": "ENABLE_SLO",
    "entry_point": "SAML_ENTRY_POINT",
    "logout_url": "SAML_LOGOUT_URL",
    "metadata_url": "SAML_METADATA_URL",
    "cert": "SAML_CERT",
    "accepted_clock_skew_ms": "SAML_CLOCK_SKEW_MS",
}

# camelCase keys accepted in mappings and YAML files
_CAMEL_CASE_KEYS = {
    "callbackUrl": "callback_url",
    "privateKeyPath": "private_key_path",
    "attributeConfig": "attribute_config",
    "enableSLO": "enable_slo",
    "acceptedClockSkewMs": "accepted_clock_skew_ms",
    "signatureAlgorithm": "signature_algorithm",
    "digestAlgorithm": "digest_algorithm",
    "validateInResponseTo": "validate_in_response_to",
    "authnRequestBinding": "authn_request_binding",
    "identifierFormat": "identifier_format",
    "entryPoint": "entry_point",
    "logoutUrl": "logout_url",
    "metadataUrl": "metadata_url",
}


@dataclass
class StrategyOptions:
    """Application-supplied strategy options.

    Fields left as ``None`` fall back to the environment defaults or the
    hard-coded fallbacks when the configuration is built.
    """

    issuer: str | None = None
    callback_url: str | None = None
    private_key_path: str | None = None
    cert: str | None = None
    attribute_config: list[str] = field(default_factory=list)
    environment: str | None = None
    enable_slo: bool | None = None
    accepted_clock_skew_ms: int | None = None
    signature_algorithm: str | None = None
    digest_algorithm: str | None = None
    validate_in_response_to: bool | None = None
    authn_request_binding: str | None = None
    identifier_format: str | None = None
    entry_point: str | None = None
    logout_url: str | None = None
    metadata_url: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StrategyOptions:
        """Create StrategyOptions from a mapping.

        Accepts snake_case field names as well as the camelCase names used
        by passport-style configuration. Unknown keys are ignored.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_CASE_KEYS.get(key, key)
            if name in known:
                values[name] = value
            else:
                logger.debug(f"Ignoring unknown strategy option: {key}")

        if values.get("attribute_config") is None:
            values.pop("attribute_config", None)
        elif isinstance(values["attribute_config"], str):
            values["attribute_config"] = [values["attribute_config"]]
        else:
            values["attribute_config"] = list(values["attribute_config"])

        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization, skipping unset fields."""
        return {
            key: value
            for key, value in dataclasses.asdict(self).items()
            if value is not None and value != []
        }

    def merged(self, overrides: StrategyOptions | Mapping[str, Any]) -> StrategyOptions:
        """Return a copy with every set field of ``overrides`` applied."""
        if not isinstance(overrides, StrategyOptions):
            overrides = StrategyOptions.from_dict(overrides)
        return dataclasses.replace(self, **overrides.to_dict())


@dataclass(frozen=True)
class StrategyConfiguration:
    """Effective configuration of one strategy instance.

    Immutable. A certificate fetched after construction is published by
    replacing the whole instance (see ``with_certificate``).
    """

    issuer: str
    callback_url: str
    environment: Environment
    entry_point: str
    logout_url: str
    metadata_url: str | None
    private_key: str | None = None
    decryption_key: str | None = None
    cert: str | None = None
    attribute_config: tuple[str, ...] = ()
    enable_slo: bool = True
    accepted_clock_skew_ms: int = 0
    signature_algorithm: str = DEFAULT_SIGNATURE_ALGORITHM
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM
    validate_in_response_to: bool = True
    authn_request_binding: str = BINDING_HTTP_REDIRECT
    identifier_format: str | None = None

    @property
    def is_signing_enabled(self) -> bool:
        """Whether AuthnRequests will be signed."""
        return self.private_key is not None

    def with_certificate(self, cert: str) -> StrategyConfiguration:
        """Return a copy carrying the given IdP certificate."""
        return dataclasses.replace(self, cert=cert)

    def to_dict(self, include_secrets: bool = False) -> dict[str, Any]:
        """Convert to dictionary for display."""
        data = dataclasses.asdict(self)
        data["environment"] = self.environment.value
        data["attribute_config"] = list(self.attribute_config)
        if not include_secrets:
            for key in ("private_key", "decryption_key"):
                if data[key]:
                    data[key] = "[REDACTED]"
        return data


def _get_env_bool(key: str) -> bool | None:
    """Get a boolean from environment variable."""
    value = os.environ.get(key)
    if value is None or value == "":
        return None
    return value.strip().lower() in ("true", "1", "yes", "on")


def _get_env_int(key: str) -> int | None:
    """Get an integer from environment variable."""
    value = os.environ.get(key)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {key}: {value!r}")
        return None


def options_from_env() -> StrategyOptions:
    """Read strategy options from environment variables."""
    options = StrategyOptions()
    for name, env_var in ENV_VARS.items():
        if name == "enable_slo":
            value: Any = _get_env_bool(env_var)
        elif name == "accepted_clock_skew_ms":
            value = _get_env_int(env_var)
        else:
            value = os.environ.get(env_var) or None
        if value is not None:
            setattr(options, name, value)
    return options


def load_options(
    config_path: Path | None = None,
    overrides: StrategyOptions | Mapping[str, Any] | None = None,
) -> StrategyOptions:
    """Load strategy options from file, environment and explicit overrides.

    Args:
        config_path: YAML file to read. Defaults to ``$UBCSHIB_CONFIG`` or
            ``ubcshib.yaml`` in the working directory; a missing default
            file is skipped.
        overrides: Options supplied by the application.

    Returns:
        Merged StrategyOptions.

    Raises:
        ConfigurationError: If the config file exists but cannot be parsed.
    """
    options = StrategyOptions()

    file_path = config_path or Path(os.environ.get(ENV_CONFIG_FILE, DEFAULT_CONFIG_FILE))
    if file_path.exists():
        try:
            with open(file_path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read config file {file_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {file_path} must contain a mapping")
        section = data["ubcshib"] if "ubcshib" in data else data
        options = options.merged(section or {})
    elif config_path is not None:
        raise ConfigurationError(f"Config file not found: {config_path}")

    options = options.merged(options_from_env())

    if overrides is not None:
        options = options.merged(overrides)

    return options


def load_private_key(key_path: str | Path | None) -> str | None:
    """Load a PEM private key from disk.

    Args:
        key_path: Path to the key file. Relative paths are resolved against
            the current working directory.

    Returns:
        PEM text of the key, or None if no path was given.

    Raises:
        ConfigurationError: If the file cannot be read or is not a PEM
            private key.
    """
    if not key_path:
        return None

    path = Path(key_path)
    if not path.is_absolute():
        path = Path.cwd() / path

    try:
        pem_data = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Failed to load private key from {key_path}: {e}") from e

    try:
        serialization.load_pem_private_key(pem_data.encode("utf-8"), password=None)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(
            f"Failed to load private key from {key_path}: not a valid unencrypted PEM key ({e})"
        ) from e

    return pem_data


def build_configuration(options: StrategyOptions) -> StrategyConfiguration:
    """Merge options with environment defaults.

    Args:
        options: Application options (typically from ``load_options``).

    Returns:
        The effective StrategyConfiguration.

    Raises:
        ConfigurationError: If ``issuer`` or ``callback_url`` is missing, or
            the private key cannot be loaded.
    """
    missing = [name for name in ("issuer", "callback_url") if not getattr(options, name)]
    if missing:
        raise ConfigurationError(f"Missing required option(s): {', '.join(missing)}")

    profile = resolve_environment(options.environment)
    private_key = load_private_key(options.private_key_path)

    return StrategyConfiguration(
        issuer=str(options.issuer),
        callback_url=str(options.callback_url),
        environment=profile.environment,
        entry_point=options.entry_point or profile.entry_point,
        logout_url=options.logout_url or profile.logout_url,
        metadata_url=options.metadata_url or profile.metadata_url,
        private_key=private_key,
        # UBC encrypts assertions to the same key pair used for signing
        decryption_key=private_key,
        cert=options.cert or None,
        attribute_config=tuple(options.attribute_config),
        enable_slo=options.enable_slo is not False,
        accepted_clock_skew_ms=options.accepted_clock_skew_ms or 0,
        signature_algorithm=options.signature_algorithm or DEFAULT_SIGNATURE_ALGORITHM,
        digest_algorithm=options.digest_algorithm or DEFAULT_DIGEST_ALGORITHM,
        validate_in_response_to=options.validate_in_response_to is not False,
        authn_request_binding=options.authn_request_binding or BINDING_HTTP_REDIRECT,
        identifier_format=options.identifier_format,
    )


def get_default_config_yaml() -> str:
    """Get the default ubcshib.yaml content as a string."""
    return """\
# ubcshib configuration file
# Environment variables override these settings (SAML_ISSUER, SAML_CALLBACK_URL, ...)

ubcshib:
  # IdP environment: LOCAL, STAGING or PRODUCTION (unknown values use STAGING)
  environment: STAGING

  # Service provider entity ID registered with UBC IAM
  issuer: "https://myapp.example.ubc.ca/shibboleth"

  # Assertion Consumer Service URL
  callback_url: "https://myapp.example.ubc.ca/auth/ubcshib/callback"

  # Private key for signing requests / decrypting assertions (PEM)
  # private_key_path: /etc/myapp/saml/sp-key.pem

  # IdP signing certificate (base64). Fetched from IdP metadata if omitted.
  # cert: MIIC...

  # Friendly attribute names the application needs (empty = all)
  attribute_config:
    - ubcEduCwlPuid
    - mail
    - eduPersonAffiliation
    - givenName
    - sn
    - displayName

  # Redirect to the IdP logout endpoint after local logout
  enable_slo: true

  # Allowed clock skew when validating assertion timestamps
  accepted_clock_skew_ms: 0
"""
