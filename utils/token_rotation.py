"""
Refresh token rotation and reuse detection.

A presented refresh token is classified, in order, as:

- MALFORMED: not a decodable JWT at all
- REUSED: its subject's record lists it among the retired tokens. The whole
  record (the token family) is deleted, whether or not the token would
  still verify.
- UNKNOWN: no record holds it as the current token
- EXPIRED_OR_TAMPERED: signature or expiry check failed; the record is left
  alone, a stale token is not proof of theft
- ROTATED: it was current and verified; a new pair replaces it

Callers must not reveal which rejection happened.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from models.token_store import RefreshTokenStore
from models.user import User
from utils.security import IDENTITY_CLAIMS, TokenError, TokenPair, TokenSigner

logger = logging.getLogger(__name__)


class RotationOutcome(enum.Enum):
    ROTATED = "rotated"
    MALFORMED = "malformed"
    UNKNOWN = "unknown"
    REUSED = "reused"
    EXPIRED_OR_TAMPERED = "expired_or_tampered"


@dataclass(frozen=True)
class RotationResult:
    outcome: RotationOutcome
    tokens: Optional[TokenPair] = None

    @property
    def ok(self) -> bool:
        return self.outcome is RotationOutcome.ROTATED


class RefreshRotationEngine:
    def __init__(self, store: RefreshTokenStore, signer: TokenSigner):
        self.store = store
        self.signer = signer

    def start_session(self, user: User) -> TokenPair:
        """Mint a pair for a freshly authenticated user and make its refresh token current."""
        pair = self.signer.issue_pair(user.token_claims())
        self.store.issue(str(user.id), pair.refresh_token)
        return pair

    def end_session(self, refresh_token: str) -> bool:
        """Drop the record whose current token this is. False if none matched."""
        return self.store.delete(refresh_token)

    def _reused(self, subject: str, token: str) -> bool:
        record = self.store.get(subject)
        if record is None or not record.has_used(token):
            return False
        self.store.revoke(subject)
        logger.warning("refresh token reuse detected for user %s; token family revoked", subject)
        return True

    def rotate(self, token: str) -> RotationResult:
        try:
            unverified = self.signer.decode_unverified(token)
        except TokenError:
            return RotationResult(RotationOutcome.MALFORMED)
        subject = unverified["sub"]

        if self._reused(subject, token):
            return RotationResult(RotationOutcome.REUSED)

        record = self.store.find_by_token(token)
        if record is None:
            return RotationResult(RotationOutcome.UNKNOWN)

        try:
            claims = self.signer.verify_refresh(token)
        except TokenError as err:
            logger.info("refresh token rejected for user %s: %s", record.owner, err)
            return RotationResult(RotationOutcome.EXPIRED_OR_TAMPERED)
        if claims["sub"] != record.owner:
            return RotationResult(RotationOutcome.EXPIRED_OR_TAMPERED)

        owner = record.owner
        pair = self.signer.issue_pair({k: claims[k] for k in IDENTITY_CLAIMS if k in claims})
        if not self.store.rotate(owner, pair.refresh_token, token):
            # lost a race: another request rotated this token first
            if self._reused(owner, token):
                return RotationResult(RotationOutcome.REUSED)
            return RotationResult(RotationOutcome.UNKNOWN)
        return RotationResult(RotationOutcome.ROTATED, pair)
