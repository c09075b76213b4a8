"""Example Flask application using the UBC Shibboleth strategy."""

from __future__ import annotations

import logging
import os
import secrets
from typing import Any

from flask import Flask, render_template_string

from ubcshib.core.config import load_options
from ubcshib.core.strategy import MappedProfile, UBCStrategy
from ubcshib.web import current_user, ensure_authenticated, init_strategy, logout

logger = logging.getLogger(__name__)

DEFAULT_ATTRIBUTES = [
    "ubcEduCwlPuid",
    "mail",
    "eduPersonAffiliation",
    "givenName",
    "sn",
    "displayName",
]


def _page(body: str) -> str:
    return (
        "<!DOCTYPE html>\n<html>\n  <head><title>{{ title }}</title></head>\n"
        f"  <body>{body}</body>\n</html>"
    )


INDEX_TEMPLATE = _page("""
{% if user %}
  <h1>Welcome, {{ user.name or user.id }}!</h1>
  <p>Email: {{ user.email }}</p>
  <p>UBC ID: {{ user.id }}</p>
  <p>Affiliation: {{ user.affiliation if user.affiliation is string else (user.affiliation or []) | join(', ') }}</p>
  <p><a href="/profile">View Full Profile</a></p>
  <p><a href="/logout">Logout</a></p>
{% else %}
  <h1>Welcome to the Example App</h1>
  <p><a href="/auth/ubcshib">Login with UBC Shibboleth</a></p>
{% endif %}
""")

PROFILE_TEMPLATE = _page("""
<h1>User Profile</h1>
<ul>
  <li><strong>ID:</strong> {{ user.id }}</li>
  <li><strong>Name:</strong> {{ user.name }}</li>
  <li><strong>Email:</strong> {{ user.email }}</li>
</ul>
<h2>All Attributes</h2>
<pre>{{ user.attributes | tojson(indent=2) }}</pre>
<p><a href="/">Home</a> | <a href="/logout">Logout</a></p>
""")

LOGIN_FAILED_TEMPLATE = _page("""
<h1>Authentication Failed</h1>
<p>There was a problem authenticating with UBC Shibboleth.</p>
<p><a href="/">Home</a></p>
""")

GOODBYE_TEMPLATE = _page("""
<h1>You have been logged out</h1>
<p><a href="/">Home</a></p>
""")


def default_verify(profile: MappedProfile) -> dict[str, Any]:
    """Turn a mapped profile into the session user."""
    attributes = profile.attributes
    return {
        "id": attributes.get("ubcEduCwlPuid") or profile.name_id,
        "name_id": profile.name_id,
        "email": attributes.get("mail"),
        "name": attributes.get("displayName"),
        "affiliation": attributes.get("eduPersonAffiliation"),
        "attributes": attributes,
    }


def _render(template: str, title: str, **context: Any) -> str:
    return render_template_string(template, title=title, **context)


def create_app(
    config: dict | None = None,
    strategy: UBCStrategy | None = None,
) -> Flask:
    """Create the example application.

    Args:
        config: Optional Flask configuration overrides.
        strategy: Strategy to use. If not provided one is built from
            ubcshib.yaml and the environment, and its certificate fetch is
            started in the background.
    """
    app = Flask(__name__)

    secret_key = os.environ.get("UBCSHIB_SECRET_KEY")
    if not secret_key:
        logger.warning("UBCSHIB_SECRET_KEY not set; sessions will not survive a restart")
        secret_key = secrets.token_hex(32)

    app.config.from_mapping(
        SECRET_KEY=secret_key,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SECURE=os.environ.get("FLASK_ENV") == "production",
    )
    if config:
        app.config.from_mapping(config)

    if strategy is None:
        options = load_options()
        if not options.attribute_config:
            options.attribute_config = list(DEFAULT_ATTRIBUTES)
        strategy = UBCStrategy(options, default_verify)
        strategy.start()

    init_strategy(app, strategy)

    @app.route("/")
    def index() -> str:
        return _render(INDEX_TEMPLATE, "Home", user=current_user())

    @app.route("/profile")
    @ensure_authenticated()
    def profile() -> str:
        return _render(PROFILE_TEMPLATE, "User Profile", user=current_user())

    @app.route("/login-failed")
    def login_failed() -> tuple[str, int]:
        return _render(LOGIN_FAILED_TEMPLATE, "Login Failed"), 401

    @app.route("/goodbye")
    def goodbye() -> str:
        return _render(GOODBYE_TEMPLATE, "Logged Out")

    @app.route("/health")
    def health() -> dict[str, str]:
        """Health check endpoint (unauthenticated)."""
        return {"status": "healthy", "strategy": strategy.state.value}

    app.add_url_rule("/logout", "logout", logout("/goodbye"))

    return app


def run_server(host: str = "127.0.0.1", port: int = 3000, debug: bool = False) -> None:
    """Run the example application on the Flask development server."""
    app = create_app()
    strategy = app.extensions["ubcshib"]

    print("Starting ubcshib example app...")
    print(f"  URL: http://{host}:{port}")
    print(f"  Environment: {strategy.configuration.environment.value}")
    print(f"  Service Provider ID: {strategy.configuration.issuer}")
    print(f"  Callback URL: {strategy.configuration.callback_url}")
    print("")

    app.run(host=host, port=port, debug=debug)
