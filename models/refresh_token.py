"""
RefreshToken model: one row per user holding the refresh token currently
valid for them plus the tokens it superseded.
Fields:
- owner (String(36)) - FK to users.id, unique
- token (Text) - the current refresh token; JWT length depends on the claims
- token_hash - SHA-256 of token, the unique lookup key
- used_tokens (JSON list) - retired tokens, kept for reuse detection
- expires_at - set once when the family starts; the row is purged after it
"""
import hashlib

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    owner = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    token = Column(Text, nullable=False)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    used_tokens = Column(JSON, nullable=False, default=list)
    expires_at = Column(DateTime, nullable=False, index=True)

    user = relationship("User", back_populates="refresh_token")

    def has_used(self, token: str) -> bool:
        return token in (self.used_tokens or [])

    def __repr__(self):
        return f"<RefreshToken owner={self.owner} used={len(self.used_tokens or [])}>"
