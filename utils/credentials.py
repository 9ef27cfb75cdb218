"""Credential verification against the users table."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from models.db_storage import DBStorage
from models.user import User
from utils.security import hash_password, verify_password

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    # unknown emails still pay for one argon2 verify
    return hash_password("unknown-account-placeholder")


def normalize_email(value: str) -> str:
    return value.strip().lower()


class CredentialVerifier:
    def __init__(self, storage: DBStorage):
        self._storage = storage

    def find_user(self, email: str) -> Optional[User]:
        session = self._storage.get_session()
        return session.query(User).filter(User.email == normalize_email(email)).first()

    def verify(self, email: str, password: str) -> Optional[User]:
        """Return the user when the password matches, None otherwise."""
        user = self.find_user(email)
        if user is None:
            verify_password(password, _dummy_hash())
            logger.info("failed login attempt")
            return None
        if not verify_password(password, user.password_hash):
            logger.info("failed login attempt")
            return None
        return user

    def change_password(self, user: User, new_password: str) -> None:
        user.password_hash = hash_password(new_password)
        self._storage.new(user)
        self._storage.save()
