"""SAML engine backed by python3-saml (OneLogin).

Install with the ``onelogin`` extra. python3-saml is imported when the
engine is first used, so the rest of ubcshib works without xmlsec.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlparse

from ubcshib.core.config import BINDING_HTTP_POST, BINDING_HTTP_REDIRECT
from ubcshib.core.engine import EngineSettings, IdentityAssertion
from ubcshib.core.errors import SAMLProtocolError

logger = logging.getLogger(__name__)

SIGNATURE_ALGORITHMS = {
    "sha1": "http://www.w3.org/2000/09/xmldsig#rsa-sha1",
    "sha256": "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256",
    "sha512": "http://www.w3.org/2001/04/xmldsig-more#rsa-sha512",
}

DIGEST_ALGORITHMS = {
    "sha1": "http://www.w3.org/2000/09/xmldsig#sha1",
    "sha256": "http://www.w3.org/2001/04/xmlenc#sha256",
    "sha512": "http://www.w3.org/2001/04/xmlenc#sha512",
}

NAMEID_FORMAT_UNSPECIFIED = "urn:oasis:names:tc:SAML:1.1:nameid-format:unspecified"


def _algorithm_uri(name: str, table: dict[str, str]) -> str:
    # Full URIs pass through untouched
    return table.get(name.lower(), name)


def build_onelogin_settings(settings: EngineSettings, strict: bool = True) -> dict[str, Any]:
    """Translate engine settings into a python3-saml settings dictionary.

    python3-saml always sends the AuthnRequest with HTTP-Redirect and reads
    its allowed clock drift from a module constant, so neither
    ``authn_request_binding`` nor ``accepted_clock_skew_ms`` can be honoured
    here. A warning is logged when either differs from the default.
    """
    if settings.authn_request_binding != BINDING_HTTP_REDIRECT:
        logger.warning(
            f"python3-saml only supports HTTP-Redirect AuthnRequests, "
            f"ignoring binding {settings.authn_request_binding}"
        )
    if settings.accepted_clock_skew_ms:
        logger.warning(
            f"python3-saml uses a fixed clock drift allowance, "
            f"ignoring accepted_clock_skew_ms={settings.accepted_clock_skew_ms}"
        )

    sp: dict[str, Any] = {
        "entityId": settings.issuer,
        "assertionConsumerService": {
            "url": settings.callback_url,
            "binding": BINDING_HTTP_POST,
        },
        "NameIDFormat": settings.identifier_format or NAMEID_FORMAT_UNSPECIFIED,
        "x509cert": "",
        "privateKey": settings.decryption_key or settings.private_key or "",
    }

    idp: dict[str, Any] = {
        "entityId": settings.idp_entity_id or settings.entry_point,
        "singleSignOnService": {
            "url": settings.entry_point,
            "binding": BINDING_HTTP_REDIRECT,
        },
        "singleLogoutService": {
            "url": settings.logout_url,
            "binding": BINDING_HTTP_REDIRECT,
        },
        "x509cert": settings.cert or "",
    }

    security = {
        "authnRequestsSigned": settings.private_key is not None,
        "logoutRequestSigned": settings.private_key is not None,
        "wantAssertionsSigned": True,
        "wantAssertionsEncrypted": False,
        "wantNameId": False,
        "rejectUnsolicitedResponsesWithInResponseTo": settings.validate_in_response_to,
        "signatureAlgorithm": _algorithm_uri(settings.signature_algorithm, SIGNATURE_ALGORITHMS),
        "digestAlgorithm": _algorithm_uri(settings.digest_algorithm, DIGEST_ALGORITHMS),
    }

    return {
        "strict": strict,
        "debug": False,
        "sp": sp,
        "idp": idp,
        "security": security,
    }


class OneLoginEngine:
    """SAMLEngine implementation using python3-saml."""

    def __init__(self, strict: bool = True) -> None:
        self.strict = strict

    def _auth(self, settings: EngineSettings, request_data: Mapping[str, Any]) -> Any:
        from onelogin.saml2.auth import OneLogin_Saml2_Auth
        from onelogin.saml2.errors import OneLogin_Saml2_Error

        try:
            return OneLogin_Saml2_Auth(
                dict(request_data),
                old_settings=build_onelogin_settings(settings, strict=self.strict),
            )
        except OneLogin_Saml2_Error as e:
            raise SAMLProtocolError(f"Invalid SAML settings: {e}") from e

    def login_url(self, settings: EngineSettings, relay_state: str | None = None) -> str:
        auth = self._auth(settings, _callback_request_data(settings))
        return auth.login(return_to=relay_state)

    def validate_response(
        self, settings: EngineSettings, request_data: Mapping[str, Any]
    ) -> IdentityAssertion:
        from onelogin.saml2.errors import OneLogin_Saml2_Error

        auth = self._auth(settings, request_data)
        try:
            auth.process_response()
        except OneLogin_Saml2_Error as e:
            raise SAMLProtocolError(f"Invalid SAML response: {e}") from e
        except Exception as e:
            # python3-saml lets lxml and base64 decoding errors through untranslated
            raise SAMLProtocolError(f"Malformed SAML response: {e}") from e

        errors = auth.get_errors()
        if errors:
            reason = auth.get_last_error_reason() or ", ".join(errors)
            logger.debug(f"SAML response rejected: {errors}")
            raise SAMLProtocolError(f"Invalid SAML response: {reason}", errors=list(errors))
        if not auth.is_authenticated():
            raise SAMLProtocolError("SAML response did not authenticate the user")

        return IdentityAssertion(
            name_id=auth.get_nameid(),
            name_id_format=auth.get_nameid_format(),
            session_index=auth.get_session_index(),
            attributes=auth.get_attributes(),
        )

    def logout_url(
        self,
        settings: EngineSettings,
        name_id: str | None = None,
        session_index: str | None = None,
        return_to: str | None = None,
    ) -> str:
        auth = self._auth(settings, _callback_request_data(settings))
        return auth.logout(return_to=return_to, name_id=name_id, session_index=session_index)

    def sp_metadata(self, settings: EngineSettings) -> str:
        from onelogin.saml2.errors import OneLogin_Saml2_Error
        from onelogin.saml2.settings import OneLogin_Saml2_Settings

        try:
            saml_settings = OneLogin_Saml2_Settings(
                build_onelogin_settings(settings, strict=self.strict),
                sp_validation_only=True,
            )
            metadata = saml_settings.get_sp_metadata()
        except OneLogin_Saml2_Error as e:
            raise SAMLProtocolError(f"Invalid SAML settings: {e}") from e
        errors = saml_settings.validate_metadata(metadata)
        if errors:
            raise SAMLProtocolError(f"Invalid SP metadata: {', '.join(errors)}", errors=errors)
        return metadata.decode("utf-8") if isinstance(metadata, bytes) else metadata


def _callback_request_data(settings: EngineSettings) -> dict[str, Any]:
    """Request data describing the ACS URL, for calls made outside a request."""
    parsed = urlparse(settings.callback_url)
    https = parsed.scheme == "https"
    return {
        "https": "on" if https else "off",
        "http_host": parsed.hostname or "",
        "server_port": parsed.port or (443 if https else 80),
        "script_name": parsed.path,
        "get_data": {},
        "post_data": {},
    }
