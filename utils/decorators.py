from __future__ import annotations
from functools import wraps
from flask import request, g, abort, current_app
from utils.security import TokenError


def jwt_required():
    """
    Require a valid access token. Stateless: only the signature, expiry and
    claims are checked; neither users nor refresh records are consulted.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            auth = request.headers.get("Authorization", "")
            scheme, _, token = auth.partition(" ")
            if scheme != "Bearer" or not token.strip():
                abort(401, description="Missing or invalid Authorization header")
            signer = current_app.extensions["token_signer"]
            try:
                decoded = signer.verify_access(token.strip())
            except TokenError as e:
                abort(401, description=str(e))

            g.current_user_id = decoded["sub"]
            g.current_user_admin = bool(decoded.get("admin", False))
            g.current_claims = decoded
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def admin_required():
    """
    Allow access only if the access token carries the admin flag.
    401 without a valid token, 403 with a valid token lacking the role.
    """
    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            if not getattr(g, "current_user_admin", False):
                abort(403, description="Insufficient role")
            return fn(*args, **kwargs)

        return wrapper

    return decorator
