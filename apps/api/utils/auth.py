"""Request-level authentication helpers built on Flask-JWT-Extended."""
import functools

from flask import current_app, g
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from apps.api import db
from apps.api.models.user import User
from apps.api.utils.errors import AuthorizationError
from apps.api.utils.permissions import authorize


def get_current_user():
    """Return the active User for the request's JWT identity, or None."""
    identity = get_jwt_identity()
    if identity is None:
        return None
    cached = g.get('current_user_cache')
    if cached is not None and cached[0] == identity:
        return cached[1]

    user = db.session.get(User, str(identity))
    if user is not None and not user.is_active:
        current_app.logger.debug("Inactive user %s presented a token", identity)
        user = None
    g.current_user_cache = (identity, user)
    return user


def login_required(fn):
    """Require a valid token for an existing, active user."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        if get_current_user() is None:
            raise AuthorizationError()
        return fn(*args, **kwargs)
    return wrapper


def permission_required(*permission_names):
    """Require any one of ``permission_names`` (after the fixed role rules).

    Usage:
        @locations_bp.route('/spatial-cache/invalidate', methods=['POST'])
        @permission_required('spatial:manage')
        def invalidate_spatial_cache():
            ...
    """
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            authorize(get_current_user(), permission_names)
            return fn(*args, **kwargs)
        return wrapper
    return decorator
