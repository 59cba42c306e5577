# auth.py — identity gate: bearer token (HS256) -> g.user_id / g.user_role
#
# Token issuance lives in the auth service; this module only trusts and reads it.

import os
from functools import wraps
from typing import Any, Callable, Dict, Optional

from authlib.jose import jwt
from authlib.jose.errors import JoseError
from flask import g, request

from errors import Forbidden, Unauthorized

AUTH_REQUIRED = os.getenv("AUTH_REQUIRED", "1").lower() in {"1", "true", "yes"}
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")

# Headers an upstream gateway may set when AUTH_REQUIRED=0
GATEWAY_USER_HEADER = "X-User-Id"
GATEWAY_ROLE_HEADER = "X-User-Role"


def decode_token(token: str, secret: Optional[str] = None) -> Dict[str, Any]:
    """Validate signature + exp/nbf and return the claims as a plain dict."""
    claims = jwt.decode(token, (secret or JWT_SECRET).encode("utf-8"))
    claims.validate()
    return dict(claims)


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization") or ""
    if not header.startswith("Bearer "):
        return None
    return header.split(" ", 1)[1].strip() or None


def attach_identity():
    """before_request hook; never rejects on its own (routes decide)."""
    g.user_id = None
    g.user_role = None

    token = _bearer_token()
    if token:
        try:
            claims = decode_token(token)
        except (JoseError, ValueError) as e:
            print(f"[Auth] token rejected: {e}", flush=True)
            g.auth_error = "Invalid or expired token"
            return
        g.user_id = str(claims.get("id") or claims.get("sub") or "") or None
        g.user_role = claims.get("role")
        return

    if not AUTH_REQUIRED:
        g.user_id = request.headers.get(GATEWAY_USER_HEADER) or None
        g.user_role = request.headers.get(GATEWAY_ROLE_HEADER) or None


def require_role(*roles: str) -> Callable:
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not getattr(g, "user_id", None):
                raise Unauthorized(getattr(g, "auth_error", None) or "Missing or invalid Authorization header")
            if getattr(g, "user_role", None) not in roles:
                raise Forbidden("You do not have permission to access this resource")
            return view(*args, **kwargs)
        return wrapped
    return decorator


student_required = require_role("student")
