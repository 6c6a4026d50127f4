"""
Bearer-token authentication and role checks for the Flask API.
"""

import hmac
from functools import wraps

from flask import request

from bloodbank.api.responses import guarded
from bloodbank.errors import Forbidden, Unauthenticated
from bloodbank.rbac import authorize, get_role


def bearer_token() -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise Unauthenticated("Authentication token is missing")

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthenticated("Invalid authorization header format")
    return parts[1]


def token_required(identity):
    """Decorator factory: verify the bearer token and attach ``request.caller``."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            token = bearer_token()
            request.caller = guarded("Token verification", identity.verify, token)
            return f(*args, **kwargs)
        return decorated
    return decorator


def role_required(store, required: str):
    """Decorator factory: look up the caller's role and authorize it.

    Must be applied inside ``token_required``.
    """
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            caller = request.caller
            role = guarded("Role lookup", get_role, store, caller.uid)
            try:
                authorize(role, required)
            except Forbidden:
                print(f"[auth] Denied {request.method} {request.path} for {caller.uid} (role={role})")
                raise
            return f(*args, **kwargs)
        return decorated
    return decorator


def hook_secret_required(secret: str):
    """Decorator factory for server-to-server hooks sharing *secret*."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            if not secret:
                raise Forbidden("This hook is disabled")
            supplied = request.headers.get("X-Hook-Secret", "")
            if not supplied or not hmac.compare_digest(supplied.encode(), secret.encode()):
                raise Unauthenticated("Invalid hook secret")
            return f(*args, **kwargs)
        return decorated
    return decorator
