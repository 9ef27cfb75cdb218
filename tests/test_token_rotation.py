from __future__ import annotations

from datetime import timedelta

import pytest

from models.token_store import RefreshTokenStore
from tests.conftest import REFRESH_SECRET
from utils.security import TokenSigner
from utils.token_rotation import RefreshRotationEngine, RotationOutcome


@pytest.fixture
def store(app, storage, clock):
    with app.app_context():
        yield RefreshTokenStore(storage, ttl=timedelta(days=1), clock=clock)


@pytest.fixture
def engine(store, signer) -> RefreshRotationEngine:
    return RefreshRotationEngine(store=store, signer=signer)


@pytest.fixture
def user(make_user):
    return make_user()


def _expired_signer(rsa_keys, secret: str = REFRESH_SECRET) -> TokenSigner:
    private_pem, public_pem = rsa_keys
    return TokenSigner(
        private_key=private_pem,
        public_key=public_pem,
        refresh_secret=secret,
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(seconds=-30),
    )


def test_start_session_makes_refresh_token_current(engine, store, user) -> None:
    pair = engine.start_session(user)

    record = store.get(str(user.id))
    assert record.token == pair.refresh_token
    assert record.used_tokens == []


def test_rotate_current_token(engine, store, signer, user) -> None:
    tok0 = engine.start_session(user).refresh_token

    result = engine.rotate(tok0)

    assert result.outcome is RotationOutcome.ROTATED
    assert result.ok
    record = store.get(str(user.id))
    assert record.token == result.tokens.refresh_token
    assert record.used_tokens == [tok0]


def test_rotation_echoes_identity_claims(engine, signer, user) -> None:
    tok0 = engine.start_session(user).refresh_token

    pair = engine.rotate(tok0).tokens

    for token in (signer.verify_refresh(pair.refresh_token), signer.verify_access(pair.access_token)):
        assert token["sub"] == str(user.id)
        assert token["company"] == user.company
        assert token["admin"] is False


def test_reused_token_revokes_family(engine, store, user) -> None:
    tok0 = engine.start_session(user).refresh_token
    tok1 = engine.rotate(tok0).tokens.refresh_token

    assert engine.rotate(tok0).outcome is RotationOutcome.REUSED
    assert store.get(str(user.id)) is None
    assert engine.rotate(tok1).outcome is RotationOutcome.UNKNOWN


def test_reuse_detected_even_when_token_expired(rsa_keys, store, user) -> None:
    engine = RefreshRotationEngine(store=store, signer=_expired_signer(rsa_keys))
    tok0 = engine.start_session(user).refresh_token
    store.issue(str(user.id), "replacement-token")

    assert engine.rotate(tok0).outcome is RotationOutcome.REUSED
    assert store.get(str(user.id)) is None


def test_malformed_token(engine) -> None:
    assert engine.rotate("not-a-jwt").outcome is RotationOutcome.MALFORMED


def test_unknown_token_leaves_records_untouched(engine, store, signer, user) -> None:
    tok0 = engine.start_session(user).refresh_token
    stranger = signer.issue_refresh_token({"sub": "someone-else", "admin": False, "company": "X"})

    assert engine.rotate(stranger).outcome is RotationOutcome.UNKNOWN
    record = store.get(str(user.id))
    assert record.token == tok0
    assert record.used_tokens == []


def test_expired_token_keeps_record(rsa_keys, store, user) -> None:
    engine = RefreshRotationEngine(store=store, signer=_expired_signer(rsa_keys))
    tok0 = engine.start_session(user).refresh_token

    assert engine.rotate(tok0).outcome is RotationOutcome.EXPIRED_OR_TAMPERED
    record = store.get(str(user.id))
    assert record.token == tok0
    assert record.used_tokens == []


def test_token_signed_with_wrong_secret_is_rejected(rsa_keys, engine, store, user) -> None:
    private_pem, public_pem = rsa_keys
    forger = TokenSigner(
        private_key=private_pem,
        public_key=public_pem,
        refresh_secret="forged-secret-0123456789abcdef0123456789",
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=1),
    )
    forged = forger.issue_refresh_token(user.token_claims())
    store.issue(str(user.id), forged)

    assert engine.rotate(forged).outcome is RotationOutcome.EXPIRED_OR_TAMPERED
    assert store.get(str(user.id)).token == forged


class RacingStore(RefreshTokenStore):
    """Lets a competing request rotate the token right before we do."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.competitor = None

    def rotate(self, owner, new_token, retired_token):
        if self.competitor is None:
            self.competitor = "competitor-token"
            super().rotate(owner, self.competitor, retired_token)
        return super().rotate(owner, new_token, retired_token)


def test_losing_a_concurrent_rotation_counts_as_reuse(storage, signer, clock, user) -> None:
    store = RacingStore(storage, ttl=timedelta(days=1), clock=clock)
    engine = RefreshRotationEngine(store=store, signer=signer)
    tok0 = engine.start_session(user).refresh_token

    assert engine.rotate(tok0).outcome is RotationOutcome.REUSED
    assert store.get(str(user.id)) is None


class LogoutRacingStore(RefreshTokenStore):
    """The session is logged out between our lookup and our rotate."""

    def rotate(self, owner, new_token, retired_token):
        self.delete(retired_token)
        return super().rotate(owner, new_token, retired_token)


def test_losing_to_a_concurrent_logout_is_unknown(storage, signer, clock, user) -> None:
    store = LogoutRacingStore(storage, ttl=timedelta(days=1), clock=clock)
    engine = RefreshRotationEngine(store=store, signer=signer)
    tok0 = engine.start_session(user).refresh_token

    result = engine.rotate(tok0)

    assert result.outcome is RotationOutcome.UNKNOWN
    assert result.tokens is None
    assert store.get(str(user.id)) is None


def test_family_expires_one_ttl_after_first_login(engine, store, clock, user) -> None:
    tok0 = engine.start_session(user).refresh_token
    clock.advance(hours=12)
    tok1 = engine.rotate(tok0).tokens.refresh_token

    clock.advance(hours=12, seconds=1)

    assert engine.rotate(tok1).outcome is RotationOutcome.UNKNOWN
    assert store.get(str(user.id)) is None


def test_end_session(engine, store, user) -> None:
    tok0 = engine.start_session(user).refresh_token

    assert engine.end_session(tok0) is True
    assert store.get(str(user.id)) is None
    assert engine.end_session(tok0) is False


def test_rotation_does_not_touch_other_users(engine, store, make_user) -> None:
    first, second = make_user(), make_user()
    tok_a = engine.start_session(first).refresh_token
    tok_b = engine.start_session(second).refresh_token
    before = store.get(str(second.id))
    expires_before = before.expires_at

    engine.rotate(tok_a)
    engine.rotate(tok_a)

    after = store.get(str(second.id))
    assert after.token == tok_b
    assert after.used_tokens == []
    assert after.expires_at == expires_before
