from datetime import timedelta

from flask import Blueprint, request
from flask_jwt_extended import (
    create_access_token, create_refresh_token,
    jwt_required, get_jwt_identity
)

from roster_api.common.auth import current_user
from roster_api.common.http import ok, fail
from roster_api.extensions import db
from roster_api.models.user import User

bp = Blueprint("auth_v1", __name__, url_prefix="/api/v1/auth")


def issue_tokens(u: User):
    roles = u.role_codes()
    add_claims = {"roles": roles, "email": u.email, "name": u.full_name}
    access = create_access_token(identity=str(u.id), additional_claims=add_claims)
    refresh = create_refresh_token(identity=str(u.id), additional_claims={"roles": roles})
    return access, refresh


@bp.post("/login")
def login():
    data = request.get_json(silent=True, force=True)
    if not isinstance(data, dict):
        data = {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return fail("email and password required", 422)

    u = User.query.filter_by(email=email).first()
    if not u or u.deleted_at is not None or not u.check_password(password):
        return fail("Invalid credentials", 401)
    if u.status != "active":
        return fail("Account is not active", 403)

    access, refresh = issue_tokens(u)
    return ok({"access": access, "refresh": refresh, "user": u.to_dict()})


@bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    uid = get_jwt_identity()              # string identity
    u = db.session.get(User, int(uid)) if uid else None
    if not u or u.deleted_at is not None:
        return fail("Unauthorized", 401)
    add_claims = {"roles": u.role_codes(), "email": u.email, "name": u.full_name}
    new_access = create_access_token(identity=str(u.id), additional_claims=add_claims,
                                     expires_delta=timedelta(hours=2))
    return ok({"access": new_access})


@bp.get("/me")
@jwt_required()
def me():
    u = current_user()
    if not u:
        return fail("User not found", 404)
    return ok(u.to_dict())
