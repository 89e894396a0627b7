"""
Bearer Token Authentication Middleware.

Callers present a JWT issued by the identity provider:

    Authorization: Bearer <token>

The token is verified with JWT_SECRET_KEY (HS256) and, when JWT_AUDIENCE is
set, its audience. Claims used here:
- sub:   caller uid
- admin: True for administrators
- role:  'admin' or 'staff'
- exp:   expiration time
"""
from functools import wraps
from typing import Optional

import jwt
from flask import current_app, g, request

from ..services.identity_gateway import get_identity_gateway, has_admin_claims
from ..utils.exceptions import PermissionDeniedError, UnauthenticatedError


def decode_bearer_token(token: str) -> Optional[dict]:
    """
    Decode and verify a caller token.

    Args:
        token: JWT from the Authorization header

    Returns:
        Decoded token payload or None if invalid
    """
    if not token:
        return None

    audience = current_app.config.get('JWT_AUDIENCE') or None
    try:
        return jwt.decode(
            token,
            current_app.config['JWT_SECRET_KEY'],
            algorithms=[current_app.config.get('JWT_ALGORITHM', 'HS256')],
            audience=audience,
            options={
                'verify_aud': bool(audience),
                'verify_exp': True,
                'require': ['sub'],
            }
        )
    except jwt.ExpiredSignatureError:
        current_app.logger.info('[Auth] Token expired')
        return None
    except jwt.InvalidAudienceError:
        current_app.logger.info('[Auth] Invalid token audience')
        return None
    except jwt.InvalidTokenError as e:
        current_app.logger.info(f'[Auth] Invalid token: {e}')
        return None


def get_token_from_request() -> Optional[str]:
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header.split(' ', 1)[1].strip()
    return None


def require_auth(f):
    """
    Decorator to require a verified bearer token.

    Sets g.uid and g.claims.

    Usage:
        @require_auth
        def my_endpoint():
            uid = g.uid
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        payload = decode_bearer_token(get_token_from_request())
        if not payload or not str(payload.get('sub', '')).strip():
            raise UnauthenticatedError()

        g.uid = str(payload['sub'])
        g.claims = payload
        return f(*args, **kwargs)

    return decorated_function


def current_uid() -> str:
    return g.uid


def is_admin() -> bool:
    """Token claim first, identity provider second."""
    if has_admin_claims(g.claims):
        return True
    return get_identity_gateway().is_admin(g.uid)


def is_staff() -> bool:
    return g.claims.get('role') == 'staff' or is_admin()


def require_self_or_admin(user_id) -> None:
    """Raise PermissionDeniedError unless the caller is ``user_id`` or an admin."""
    if user_id is not None and user_id == g.uid:
        return
    if not is_admin():
        raise PermissionDeniedError('You can only act on your own account')


def require_admin(f):
    """
    Decorator for admin-only endpoints. Implies require_auth.
    """
    @require_auth
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_admin():
            raise PermissionDeniedError('Admin privileges required')
        return f(*args, **kwargs)

    return decorated_function
