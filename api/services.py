"""
Per-app collaborators.

create_app() builds one DBStorage and one TokenSigner and keeps them in
app.extensions; request handlers assemble the store, verifier and rotation
engine from those rather than from module globals.
"""
from __future__ import annotations

from flask import current_app

from models.db_storage import DBStorage
from models.token_store import RefreshTokenStore
from utils.credentials import CredentialVerifier
from utils.security import TokenSigner
from utils.token_rotation import RefreshRotationEngine


def get_storage() -> DBStorage:
    return current_app.extensions["storage"]


def get_signer() -> TokenSigner:
    return current_app.extensions["token_signer"]


def get_token_store() -> RefreshTokenStore:
    return RefreshTokenStore(get_storage(), ttl=current_app.config["REFRESH_RECORD_TTL"])


def get_credential_verifier() -> CredentialVerifier:
    return CredentialVerifier(get_storage())


def get_rotation_engine() -> RefreshRotationEngine:
    return RefreshRotationEngine(store=get_token_store(), signer=get_signer())
