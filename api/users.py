from __future__ import annotations

from typing import Tuple

from flask import Blueprint, request, jsonify, abort

from models.user import User
from models.schemas.user import UserOutSchema
from utils.decorators import admin_required

from .services import get_storage

MAX_LIMIT = 100

bp = Blueprint("users", __name__)

user_out_schema = UserOutSchema()
user_list_out_schema = UserOutSchema(many=True)


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


@bp.get("/users")
@admin_required()
def list_users():
    """
    List all users - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: query, name: page, type: integer }
      - { in: query, name: limit, type: integer }
    responses:
      200: { description: OK }
      401: { description: Unauthorized }
      403: { description: Forbidden }
    """
    session = get_storage().get_session()
    page, limit = parse_pagination()

    query = session.query(User)
    total = query.count()
    rows = query.order_by(User.company.asc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify(
        {
            "data": user_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total}
        }
    )


@bp.get("/users/<user_id>")
@admin_required()
def get_user(user_id: str):
    """
    Get one user - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      200: { description: OK }
      401: { description: Unauthorized }
      403: { description: Forbidden }
      404: { description: Not found }
    """
    user = get_storage().get(User, user_id)
    if not user:
        abort(404)
    return jsonify({"data": user_out_schema.dump(user)}), 200
