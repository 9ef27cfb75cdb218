"""
Persistence layer: SQLAlchemy models, the DBStorage session wrapper and the
refresh token store built on top of it.
"""
from models.base_model import Base
from models.user import User
from models.refresh_token import RefreshToken
from models.db_storage import DBStorage

__all__ = ["Base", "User", "RefreshToken", "DBStorage"]
