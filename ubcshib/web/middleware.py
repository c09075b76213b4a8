"""Session guards for Flask views."""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import wraps
from typing import TYPE_CHECKING, Any, cast

from flask import current_app, redirect, request, session

if TYPE_CHECKING:
    from flask import Request
    from werkzeug.wrappers import Response as WerkzeugResponse

    from ubcshib.core.strategy import MappedProfile, UBCStrategy

logger = logging.getLogger(__name__)

# Session keys
SESSION_USER_KEY = "ubcshib_user"
SESSION_PROFILE_KEY = "ubcshib_profile"

DEFAULT_LOGIN_URL = "/auth/ubcshib"
EXTENSION_KEY = "ubcshib"


def get_strategy() -> UBCStrategy | None:
    """Get the strategy registered on the current app, if any."""
    return cast("UBCStrategy | None", current_app.extensions.get(EXTENSION_KEY))


def is_authenticated() -> bool:
    """Check whether the current session holds a logged-in user."""
    return session.get(SESSION_USER_KEY) is not None


def current_user() -> Any:
    """Get the user stored in the session, or None."""
    return session.get(SESSION_USER_KEY)


def login_user(user: Any, profile: MappedProfile | None = None) -> None:
    """Store an authenticated user in the session.

    ``user`` must be serializable by the session interface (for Flask's
    default cookie session: JSON types).
    """
    session.clear()
    session[SESSION_USER_KEY] = user
    if profile is not None:
        session[SESSION_PROFILE_KEY] = profile.to_dict()


def logout_user() -> None:
    """Remove all local session state."""
    session.clear()


def ensure_authenticated(
    login_url: str | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Require an authenticated session for a view.

    Args:
        login_url: Where to send anonymous users. Defaults to ``/auth/ubcshib``.
    """
    target = login_url or DEFAULT_LOGIN_URL

    def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(f)
        def decorated_function(*args: Any, **kwargs: Any) -> Any:
            if is_authenticated():
                return f(*args, **kwargs)
            return redirect(target)

        return decorated_function

    return decorator


def conditional_auth(
    predicate: Callable[[Request], bool],
    login_url: str | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Require authentication only when ``predicate(request)`` is true."""
    target = login_url or DEFAULT_LOGIN_URL

    def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(f)
        def decorated_function(*args: Any, **kwargs: Any) -> Any:
            if predicate(request) and not is_authenticated():
                return redirect(target)
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def logout(
    return_url: str = "/",
    strategy: UBCStrategy | None = None,
) -> Callable[[], WerkzeugResponse]:
    """Build a logout view.

    The local session is always cleared first. With single logout enabled
    the user is then sent to the IdP logout endpoint instead of
    ``return_url``.

    Args:
        return_url: Where to go after a local-only logout.
        strategy: Strategy whose configuration decides single logout. Uses
            the strategy registered on the app if not given.
    """

    def logout_view() -> WerkzeugResponse:
        logout_user()

        active = strategy or get_strategy()
        if active is None:
            logger.warning("No ubcshib strategy registered; performing local logout only")
            return redirect(return_url)

        if active.enable_slo:
            return redirect(active.logout_url)
        return redirect(return_url)

    return logout_view
