"""
Authentication blueprint:
- POST /register
- POST /login
- POST /refresh
- POST /logout
- POST /account/password

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived RS256 access tokens and longer-lived HS256 refresh tokens
- Keeps one refresh record per user; each refresh rotates the token and
  retires the old one. Presenting a retired token revokes the whole family.
- Every refresh failure yields the same 401 so callers cannot tell expired,
  unknown and reused tokens apart.
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, abort

from models.user import User
from models.schemas.user import (
    PasswordChangeSchema,
    RefreshTokenSchema,
    UserCreateSchema,
    UserLoginSchema,
    UserOutSchema,
)
from utils.decorators import jwt_required
from utils.security import TokenPair, hash_password

from .services import (
    get_credential_verifier,
    get_rotation_engine,
    get_signer,
    get_storage,
    get_token_store,
)

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)

user_create_schema = UserCreateSchema()
user_out_schema = UserOutSchema()
user_login_schema = UserLoginSchema()
refresh_token_schema = RefreshTokenSchema()
password_change_schema = PasswordChangeSchema()

INVALID_REFRESH_TOKEN = "Invalid refresh token"


def _token_response(pair: TokenPair):
    signer = get_signer()
    return jsonify(
        {
            "access_token": pair.access_token,
            "refresh_token": pair.refresh_token,
            "token_type": "bearer",
            "expires_in": int(signer.access_ttl.total_seconds()),
        }
    ), 200


@bp.post("/register")
def register():
    """
    Register a new account.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            password: { type: string }
            company: { type: string }
            orgNo: { type: string, example: "556677-8899" }
    responses:
      201:
        description: Created
      400:
        description: Validation error
      409:
        description: Email, company or organization number already registered
    """
    payload = request.get_json(silent=True) or {}
    data = user_create_schema.load(payload)

    session = get_storage().get_session()
    duplicate = session.query(User).filter(
        (User.email == data["email"])
        | (User.company == data["company"])
        | (User.org_no == data["org_no"])
    ).first()
    if duplicate:
        abort(409, description="The email, company or organization number is already registered.")

    user = User(
        email=data["email"],
        company=data["company"],
        org_no=data["org_no"],
        password_hash=hash_password(data["password"]),
        admin=False,
    )
    storage = get_storage()
    storage.new(user)
    storage.save()
    logger.info("registered user %s", user.id)

    return jsonify({"data": user_out_schema.dump(user)}), 201


@bp.post("/login")
def login():
    """
    Login: return access_token and refresh_token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      400:
        description: Missing email or password
      401:
        description: Unauthorized
    """
    payload = request.get_json(silent=True) or {}
    data = user_login_schema.load(payload)

    user = get_credential_verifier().verify(data["email"], data["password"])
    if user is None:
        abort(401, description="Invalid credentials")

    pair = get_rotation_engine().start_session(user)
    return _token_response(pair)


@bp.post("/refresh")
def refresh():
    """
    Exchange a refresh token for a new access/refresh pair (rotation)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refreshToken: { type: string }
    responses:
      200:
        description: OK (returns new tokens)
      400:
        description: refreshToken missing
      401:
        description: Invalid, expired or reused refresh token
    """
    payload = request.get_json(silent=True) or {}
    data = refresh_token_schema.load(payload)

    result = get_rotation_engine().rotate(data["refresh_token"])
    if not result.ok:
        abort(401, description=INVALID_REFRESH_TOKEN)
    return _token_response(result.tokens)


@bp.post("/logout")
def logout():
    """
    Logout: revokes the refresh token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refreshToken: { type: string }
    responses:
      204:
        description: Logged out (also when the token was already gone)
      400:
        description: refreshToken missing
    """
    payload = request.get_json(silent=True) or {}
    data = refresh_token_schema.load(payload)

    if not get_rotation_engine().end_session(data["refresh_token"]):
        logger.debug("logout for a token with no live record")
    return ("", 204)


@bp.post("/account/password")
@jwt_required()
def change_password():
    """
    Change the password of the authenticated account.
    Revokes the account's refresh tokens; the client must log in again.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
             newPassword: { type: string }
             newPasswordConfirm: { type: string }
    responses:
      204:
        description: Password changed
      400:
        description: Validation error
      401:
        description: Unauthorized
    """
    payload = request.get_json(silent=True) or {}
    data = password_change_schema.load(payload)

    verifier = get_credential_verifier()
    user = verifier.verify(data["email"], data["password"])
    if user is None or str(user.id) != g.current_user_id:
        abort(401, description="Invalid credentials")

    verifier.change_password(user, data["new_password"])
    get_token_store().revoke(str(user.id))
    logger.info("password changed for user %s; refresh tokens revoked", user.id)
    return ("", 204)
