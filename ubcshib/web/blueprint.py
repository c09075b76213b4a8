"""Flask routes for the UBC Shibboleth login flow."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from flask import Blueprint, Flask, Response, redirect, request

from ubcshib.core.errors import CertificateUnavailableError, SAMLProtocolError
from ubcshib.web.middleware import EXTENSION_KEY, login_user

if TYPE_CHECKING:
    from werkzeug.wrappers import Response as WerkzeugResponse

    from ubcshib.core.strategy import UBCStrategy

logger = logging.getLogger(__name__)


def prepare_request_data() -> dict[str, Any]:
    """Describe the current Flask request in python3-saml's format."""
    scheme = request.headers.get("X-Forwarded-Proto", request.scheme)
    host = request.headers.get("X-Forwarded-Host", request.host)
    hostname, _, port = host.partition(":")
    default_port = 443 if scheme == "https" else 80
    return {
        "https": "on" if scheme == "https" else "off",
        "http_host": hostname,
        "server_port": int(port) if port else default_port,
        "script_name": request.path,
        "get_data": request.args.to_dict(),
        "post_data": request.form.to_dict(),
    }


def _is_safe_redirect(target: str | None) -> bool:
    # Local paths only: no scheme, no host, no protocol-relative URLs
    return bool(target) and target.startswith("/") and not target.startswith("//")


def create_auth_blueprint(
    strategy: UBCStrategy,
    url_prefix: str = "/auth/ubcshib",
    success_redirect: str = "/",
    failure_redirect: str = "/login-failed",
) -> Blueprint:
    """Create the login, assertion consumer and metadata routes.

    Args:
        strategy: The configured strategy.
        url_prefix: Mount point. Login starts at the prefix itself.
        success_redirect: Default destination after login.
        failure_redirect: Destination for every failed login.
    """
    bp = Blueprint("ubcshib", __name__, url_prefix=url_prefix)

    @bp.route("", methods=["GET"])
    def login() -> WerkzeugResponse:
        """Send the user to the IdP."""
        next_url = request.args.get("next")
        relay_state = next_url if _is_safe_redirect(next_url) else None
        try:
            return redirect(strategy.login_url(relay_state=relay_state))
        except (CertificateUnavailableError, SAMLProtocolError) as e:
            logger.error(f"Cannot start SAML login: {e}")
            return redirect(failure_redirect)

    @bp.route("/callback", methods=["POST"])
    def callback() -> WerkzeugResponse:
        """Assertion Consumer Service."""
        result = strategy.authenticate(prepare_request_data())
        if not result.success:
            return redirect(failure_redirect)

        login_user(result.user, result.profile)

        relay_state = request.form.get("RelayState")
        if _is_safe_redirect(relay_state):
            return redirect(str(relay_state))
        return redirect(success_redirect)

    @bp.route("/metadata", methods=["GET"])
    def metadata() -> Response:
        """Service provider metadata."""
        try:
            xml = strategy.sp_metadata()
        except SAMLProtocolError as e:
            logger.error(f"Cannot generate SP metadata: {e}")
            return Response(str(e), status=500, mimetype="text/plain")
        return Response(xml, mimetype="application/samlmetadata+xml")

    return bp


def init_strategy(app: Flask, strategy: UBCStrategy, **blueprint_options: Any) -> None:
    """Register a strategy and its routes with a Flask app."""
    app.extensions[EXTENSION_KEY] = strategy
    app.register_blueprint(create_auth_blueprint(strategy, **blueprint_options))
