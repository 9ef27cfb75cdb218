"""
Refresh token store.

Keeps exactly one RefreshToken row per user: the token currently valid for
them and the history of tokens it replaced. Every mutation is a single
statement filtered on the owner, so concurrent writers for the same user
cannot both win; ``rotate`` is a compare-and-set on the current token.

Rows carry their own expiry, fixed when the family is created and
independent from the JWT ``exp`` claim. Rotation never extends it. Expired
rows are invisible to lookups and removed by ``purge_expired``.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.base_model import utcnow
from models.db_storage import DBStorage
from models.refresh_token import RefreshToken, hash_token

logger = logging.getLogger(__name__)

# issue() retries when a concurrent login for the same user races it
MAX_ISSUE_ATTEMPTS = 3


class RecordExists(Exception):
    """A live refresh record already exists for this owner."""


class StoreConflict(Exception):
    """The record kept changing under a write; give up instead of spinning."""


class RefreshTokenStore:
    def __init__(
        self,
        storage: DBStorage,
        ttl: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._storage = storage
        self._ttl = ttl
        self._clock = clock

    def _session(self):
        return self._storage.get_session()

    def _live(self):
        # populate_existing: never serve a row cached before a bulk UPDATE
        return (
            self._session()
            .query(RefreshToken)
            .populate_existing()
            .filter(RefreshToken.expires_at > self._clock())
        )

    def _expiry(self) -> datetime:
        return self._clock() + self._ttl

    def get(self, owner: str) -> Optional[RefreshToken]:
        return self._live().filter(RefreshToken.owner == owner).first()

    def find_by_token(self, token: str) -> Optional[RefreshToken]:
        """Return the record whose *current* token is ``token``."""
        return self._live().filter(RefreshToken.token_hash == hash_token(token)).first()

    def create(self, owner: str, token: str) -> RefreshToken:
        """Insert a fresh record. Raises RecordExists if one is live."""
        session = self._session()
        existing = (
            session.query(RefreshToken)
            .populate_existing()
            .filter(RefreshToken.owner == owner)
            .first()
        )
        try:
            if existing is not None:
                if existing.expires_at > self._clock():
                    raise RecordExists(owner)
                # expired family: start over
                session.delete(existing)
                session.flush()
            record = RefreshToken(
                owner=owner,
                token=token,
                token_hash=hash_token(token),
                used_tokens=[],
                expires_at=self._expiry(),
            )
            self._storage.new(record)
            self._storage.save()
        except IntegrityError as err:
            self._storage.rollback()
            raise RecordExists(owner) from err
        except SQLAlchemyError:
            self._storage.rollback()
            raise
        return record

    def issue(self, owner: str, token: str) -> RefreshToken:
        """
        Make ``token`` the owner's current refresh token.

        Creates the record on first use; otherwise the previous current token
        moves into the history and the existing history is kept.
        """
        for _ in range(MAX_ISSUE_ATTEMPTS):
            record = self.get(owner)
            if record is None:
                try:
                    return self.create(owner, token)
                except RecordExists:
                    continue
            if self.rotate(owner, token, record.token):
                return self.get(owner)
        raise StoreConflict(owner)

    def rotate(self, owner: str, new_token: str, retired_token: str) -> bool:
        """
        Atomically set ``new_token`` as current and append ``retired_token``
        to the history. Only succeeds while ``retired_token`` is still the
        owner's current token; returns False otherwise. The family's expiry
        is left as it was.
        """
        record = self._live().filter(
            RefreshToken.owner == owner, RefreshToken.token_hash == hash_token(retired_token)
        ).first()
        if record is None:
            return False

        used = [t for t in (record.used_tokens or []) if t != new_token]
        used.append(retired_token)
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.owner == owner, RefreshToken.token_hash == hash_token(retired_token))
            .values(token=new_token, token_hash=hash_token(new_token), used_tokens=used)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self._session().execute(stmt)
            self._storage.save()
        except SQLAlchemyError:
            self._storage.rollback()
            raise
        return result.rowcount == 1

    def _delete_where(self, *criteria) -> int:
        try:
            count = (
                self._session()
                .query(RefreshToken)
                .filter(*criteria)
                .delete(synchronize_session=False)
            )
            self._storage.save()
        except SQLAlchemyError:
            self._storage.rollback()
            raise
        return count

    def revoke(self, owner: str) -> bool:
        """Delete the owner's record, current token and history alike."""
        return self._delete_where(RefreshToken.owner == owner) > 0

    def delete(self, token: str) -> bool:
        """Delete the record whose current token is ``token``."""
        return self._delete_where(RefreshToken.token_hash == hash_token(token)) > 0

    def purge_expired(self) -> int:
        count = self._delete_where(RefreshToken.expires_at <= self._clock())
        if count:
            logger.info("purged %d expired refresh records", count)
        return count
