# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, g

from .errors import AppError, ErrorCode
from .services import session_service


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user and g.session_token. Raises UNAUTHENTICATED (401) if
    the header is missing or the token is invalid, expired or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if token is None:
            raise AppError(ErrorCode.UNAUTHENTICATED)

        user = session_service.validate_session(token)
        if user is None:
            raise AppError(ErrorCode.UNAUTHENTICATED, message="Invalid or expired token")

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """
    Require one of the given roles. Must be stacked under @require_auth.

    Raises UNAUTHORIZED (403) otherwise.
    """
    allowed = {str(role) for role in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                raise AppError(ErrorCode.UNAUTHENTICATED)
            if user.role not in allowed:
                raise AppError(
                    ErrorCode.UNAUTHORIZED,
                    details={"required_roles": sorted(allowed), "role": user.role},
                )
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_staff(f):
    from .enums import STAFF_ROLES
    return require_role(*STAFF_ROLES)(f)
