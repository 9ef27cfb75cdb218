from models.base_model import Base, BaseModel
from sqlalchemy import Boolean, Column, String
from sqlalchemy.orm import relationship


class User(BaseModel, Base):
    """Principal: login identity, display name and role flag."""
    __tablename__ = "users"
    email = Column(String(255), nullable=False, unique=True, index=True)
    company = Column(String(255), nullable=False, unique=True)
    org_no = Column(String(11), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    admin = Column(Boolean, nullable=False, default=False)

    refresh_token = relationship(
        "RefreshToken",
        back_populates="user",
        uselist=False,
        passive_deletes=True
    )

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    def token_claims(self) -> dict:
        """Identity claims carried by every token minted for this user."""
        return {"sub": str(self.id), "admin": bool(self.admin), "company": self.company}
