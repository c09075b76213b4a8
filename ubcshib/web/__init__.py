"""Flask integration for the UBC Shibboleth strategy."""

from ubcshib.web.blueprint import create_auth_blueprint, init_strategy, prepare_request_data
from ubcshib.web.middleware import (
    conditional_auth,
    current_user,
    ensure_authenticated,
    is_authenticated,
    login_user,
    logout,
    logout_user,
)

__all__ = [
    # Blueprint
    "create_auth_blueprint",
    "init_strategy",
    "prepare_request_data",
    # Session guards
    "conditional_auth",
    "current_user",
    "ensure_authenticated",
    "is_authenticated",
    "login_user",
    "logout",
    "logout_user",
]
