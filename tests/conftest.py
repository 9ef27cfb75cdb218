from __future__ import annotations

import base64
from datetime import datetime, timedelta

import pytest

from api import create_app
from models.base_model import utcnow
from models.user import User
from utils.security import TokenSigner, generate_rsa_keypair, hash_password

REFRESH_SECRET = "test-refresh-secret-0123456789abcdef0123456789"
PASSWORD = "correct horse battery"


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(scope="session")
def rsa_keys() -> tuple[bytes, bytes]:
    return generate_rsa_keypair()


@pytest.fixture
def make_app(rsa_keys):
    apps = []

    def _make(**overrides):
        private_pem, public_pem = rsa_keys
        config = {
            # base64 like a .env file would carry it
            "ACCESS_TOKEN_PRIVATE_KEY": base64.b64encode(private_pem).decode("ascii"),
            "ACCESS_TOKEN_PUBLIC_KEY": public_pem.decode("ascii"),
            "REFRESH_TOKEN_SECRET": REFRESH_SECRET,
        }
        config.update(overrides)
        app = create_app("testing", overrides=config)
        apps.append(app)
        return app

    yield _make
    for app in apps:
        app.extensions["storage"].dispose()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def storage(app):
    return app.extensions["storage"]


@pytest.fixture
def signer(app) -> TokenSigner:
    return app.extensions["token_signer"]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(email: str | None = None, password: str = PASSWORD, admin: bool = False) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=email or f"user{n}@example.com",
            company=f"Company {n} AB",
            org_no=f"55667{n}-000{n % 10}",
            password_hash=hash_password(password),
            admin=admin,
        )
        with app.app_context():
            storage = app.extensions["storage"]
            storage.new(user)
            storage.save()
        return user

    return _make
