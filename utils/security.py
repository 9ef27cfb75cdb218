"""
security helpers:
- Argon2 password hashing via argon2-cffi
- JWT creation/verification via PyJWT
  - access tokens: RS256, signed with the private key, verified with the public key
  - refresh tokens: HS256 with a shared secret
- JTI generation for token identifiers
"""
from __future__ import annotations

import base64
import binascii
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Mapping, Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

logger = logging.getLogger(__name__)

ph = PasswordHasher()

# Claims that identify the principal; copied verbatim from a refresh token
# into the pair that replaces it.
IDENTITY_CLAIMS = ("sub", "admin", "company")


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash, password)
    except VerifyMismatchError:
        return False


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    pass


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


def load_pem(value: Optional[str]) -> Optional[bytes]:
    """Accept a PEM either verbatim or base64-encoded (as stored in env files)."""
    if not value:
        return None
    if value.lstrip().startswith("-----BEGIN"):
        return value.encode("ascii")
    try:
        return base64.b64decode(value.strip(), validate=True)
    except (binascii.Error, ValueError) as err:
        raise ValueError("key material is neither PEM nor base64-encoded PEM") from err


def generate_rsa_keypair() -> tuple[bytes, bytes]:
    """Return (private_pem, public_pem) for a fresh 2048-bit RSA key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem, public_pem


def _public_from_private(private_pem: bytes) -> bytes:
    key = serialization.load_pem_private_key(private_pem, password=None)
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


class TokenSigner:
    """Mints and verifies access/refresh tokens."""

    ACCESS_ALGORITHM = "RS256"
    REFRESH_ALGORITHM = "HS256"

    def __init__(
        self,
        private_key: bytes,
        public_key: bytes,
        refresh_secret: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        issuer: str = "credential-service",
    ):
        self._private_key = private_key
        self._public_key = public_key
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.issuer = issuer

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TokenSigner":
        """
        Build a signer from Flask config.
        Without a configured key pair an ephemeral one is generated, except in
        production where that would invalidate every token on restart.
        """
        private_key = load_pem(config.get("ACCESS_TOKEN_PRIVATE_KEY"))
        public_key = load_pem(config.get("ACCESS_TOKEN_PUBLIC_KEY"))
        if private_key is None:
            if config.get("APP_ENV") in ("prod", "production"):
                raise RuntimeError("ACCESS_TOKEN_PRIVATE_KEY is required in production")
            logger.warning("no ACCESS_TOKEN_PRIVATE_KEY configured; using an ephemeral RSA key pair")
            private_key, public_key = generate_rsa_keypair()
        elif public_key is None:
            public_key = _public_from_private(private_key)

        return cls(
            private_key=private_key,
            public_key=public_key,
            refresh_secret=config["REFRESH_TOKEN_SECRET"],
            access_ttl=config["ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=config["REFRESH_TOKEN_EXPIRES"],
            issuer=config.get("JWT_ISSUER", "credential-service"),
        )

    def _payload(self, claims: Mapping[str, Any], token_type: str, ttl: timedelta) -> Dict[str, Any]:
        now = _now()
        payload = {k: claims[k] for k in IDENTITY_CLAIMS if k in claims}
        payload["sub"] = str(claims["sub"])
        payload.update({
            "iss": self.issuer,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
            "type": token_type,
            "jti": generate_jti(),
        })
        return payload

    def issue_access_token(self, claims: Mapping[str, Any]) -> str:
        payload = self._payload(claims, "access", self.access_ttl)
        return jwt.encode(payload, self._private_key, algorithm=self.ACCESS_ALGORITHM)

    def issue_refresh_token(self, claims: Mapping[str, Any]) -> str:
        payload = self._payload(claims, "refresh", self.refresh_ttl)
        return jwt.encode(payload, self._refresh_secret, algorithm=self.REFRESH_ALGORITHM)

    def issue_pair(self, claims: Mapping[str, Any]) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(claims),
            refresh_token=self.issue_refresh_token(claims),
        )

    def _verify(self, token: str, key, algorithm: str, expected_type: str) -> Dict[str, Any]:
        try:
            decoded = jwt.decode(
                token,
                key,
                algorithms=[algorithm],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as err:
            raise TokenExpired("Token expired") from err
        except jwt.InvalidTokenError as err:
            raise TokenInvalid(f"Invalid token: {err}") from err

        if decoded.get("type") != expected_type:
            raise TokenInvalid("Wrong token type")
        return decoded

    def verify_access(self, token: str) -> Dict[str, Any]:
        return self._verify(token, self._public_key, self.ACCESS_ALGORITHM, "access")

    def verify_refresh(self, token: str) -> Dict[str, Any]:
        return self._verify(token, self._refresh_secret, self.REFRESH_ALGORITHM, "refresh")

    @staticmethod
    def decode_unverified(token: str) -> Dict[str, Any]:
        """
        Read the claims WITHOUT checking signature or expiry.
        Only fit for looking up which record a token claims to belong to.
        """
        try:
            decoded = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as err:
            raise TokenInvalid(f"Malformed token: {err}") from err
        if not isinstance(decoded.get("sub"), str) or not decoded["sub"]:
            raise TokenInvalid("Malformed token: missing subject")
        return decoded
