from flask import Blueprint

from .services import get_storage

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    """
    Health check: process is up and the database answers
    ---
    tags:
      - Health
    responses:
      200:
        description: API and database are up
      503:
        description: Database unreachable
    """
    db_ok = get_storage().ping()
    body = {"status": "ok" if db_ok else "degraded", "database": "ok" if db_ok else "unavailable", "version": "1.0.0"}
    return body, 200 if db_ok else 503
