"""Middleware for authentication and role checks."""
from functools import wraps
from flask import session, g, current_app

from inventory.database import get_session
from inventory.exceptions import AuthenticationError, UnauthorizedError
from inventory.models import ROLE_HIERARCHY


def load_current_user():
    """
    Load the logged-in user into g (Flask's per-request global).

    Called before each request. Sets g.user and g.user_id when the session
    cookie names an active user.
    """
    g.user = None
    g.user_id = None

    user_id = session.get('user_id')
    if not user_id:
        return

    from inventory.services.auth_service import get_active_user

    user = get_active_user(get_session(), user_id)
    if user is None:
        # Deleted or disabled since login
        session.pop('user_id', None)
        return

    g.user = user
    g.user_id = user.id


def require_login(f):
    """Decorator: reject anonymous requests with 401."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise AuthenticationError()
        return f(*args, **kwargs)
    return decorated_function


def require_role(min_role='staff'):
    """
    Decorator: require a minimum role.

    Roles hierarchy: admin > manager > staff

    Args:
        min_role: Minimum role required ('admin', 'manager' or 'staff')

    Raises AuthenticationError (401) when not logged in and
    UnauthorizedError (403) when the role is too low.
    """
    if min_role not in ROLE_HIERARCHY:
        raise ValueError(f'Unknown role: {min_role}')

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = g.get('user')
            if user is None:
                raise AuthenticationError()

            if not user.has_role(min_role):
                current_app.logger.warning(
                    f"Access denied: user {user.id} ({user.role}) needs {min_role} for {f.__name__}"
                )
                raise UnauthorizedError(f'This action requires the {min_role} role or higher')

            return f(*args, **kwargs)
        return decorated_function
    return decorator
