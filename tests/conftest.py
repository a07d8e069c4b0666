"""Shared test fixtures for Gurukul backend tests."""

import pytest
from unittest.mock import AsyncMock, MagicMock
from bson import ObjectId

from common.auth.credential_hasher import CredentialHasher
from common.auth.token_issuer import TokenIssuer
from gurukul.auth.coordinator import AuthCoordinator
from gurukul.auth.services.otp_manager import OtpManager
from gurukul.auth.services.session_manager import SessionManager
from gurukul.auth.services.user_store import UserStore
from tests.fakes import FakeDatabase, RecordingNotifier

TEST_SECRET = "test-signing-secret"


@pytest.fixture
def sample_user_id():
    return str(ObjectId())


@pytest.fixture
def mock_collection():
    collection = AsyncMock()
    # Motor's find() returns a cursor synchronously (not a coroutine),
    # so use MagicMock for it. Async methods like find_one, insert_one,
    # count_documents etc. stay as AsyncMock.
    collection.find = MagicMock()
    return collection


@pytest.fixture
def mock_db(mock_collection):
    db = MagicMock()
    db.__getitem__ = MagicMock(return_value=mock_collection)
    return db


# ─────────────────────────────────────────────────────────────────
# In-memory store and real services
# ─────────────────────────────────────────────────────────────────


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def hasher():
    # Minimum cost keeps the suite fast
    return CredentialHasher(rounds=4)


@pytest.fixture
def token_issuer():
    return TokenIssuer(secret=TEST_SECRET, expire_hours=24)


@pytest.fixture
def user_store(fake_db):
    return UserStore(fake_db)


@pytest.fixture
def otp_manager(fake_db, notifier):
    return OtpManager(fake_db, notifier)


@pytest.fixture
def session_manager(fake_db):
    return SessionManager(fake_db, lock_timeout_seconds=2.0, lock_poll_interval=0.001)


@pytest.fixture
def coordinator(user_store, hasher, token_issuer, otp_manager, session_manager, notifier):
    return AuthCoordinator(
        user_store=user_store,
        credential_hasher=hasher,
        token_issuer=token_issuer,
        otp_manager=otp_manager,
        session_manager=session_manager,
        notifier=notifier,
    )
