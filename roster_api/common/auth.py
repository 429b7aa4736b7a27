# roster_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Optional, Set

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from roster_api.common.http import fail
from roster_api.extensions import db
from roster_api.models.user import User


def current_user_id() -> Optional[int]:
    uid = get_jwt_identity()
    try:
        return int(uid) if uid is not None else None
    except (TypeError, ValueError):
        return None


def current_user() -> Optional[User]:
    uid = current_user_id()
    if uid is None:
        return None
    u = db.session.get(User, uid)
    if not u or u.deleted_at is not None:
        return None
    return u


def current_roles() -> Set[str]:
    claims = get_jwt() or {}
    return set(claims.get("roles") or [])


def requires_roles(*codes: str):
    """
    Require that the current user has AT LEAST ONE of the given role codes.
    - Uses roles in JWT if present; falls back to DB.
    - 'admin' role always passes.
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            jwt_roles = current_roles()
            if "admin" in jwt_roles:
                return fn(*args, **kwargs)

            if current_user_id() is None:
                return fail("Unauthorized", status=401)

            roles: Set[str]
            if jwt_roles:
                roles = jwt_roles
            else:
                # fallback DB
                user = current_user()
                if not user:
                    return fail("Unauthorized", status=401)
                roles = set(user.role_codes())

            if "admin" in roles:
                return fn(*args, **kwargs)

            if codes and not any(r in roles for r in codes):
                return fail("Forbidden", status=403)

            return fn(*args, **kwargs)
        return inner
    return outer
