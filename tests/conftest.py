"""
Fixtures compartidas: servicio de perfiles armado con fakes en memoria.
"""
import logging

import pytest

from app.backends.base import CurrentUser
from app.services.users_service import UserProfileService
from tests.fakes import (
    FakeAuthProvider, FakeReferralLookup, InMemoryBlobStore, InMemoryDocumentStore
)

UID = "uid-123"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def current_user():
    return CurrentUser(uid=UID, email="ana@example.com", display_name="Ana")


@pytest.fixture
def auth(current_user):
    return FakeAuthProvider(current_user)


@pytest.fixture
def documents():
    return InMemoryDocumentStore()


@pytest.fixture
def blobs():
    return InMemoryBlobStore()


@pytest.fixture
def referrals():
    return FakeReferralLookup(stats={"total_referidos": 0})


@pytest.fixture
def make_service(auth, documents, blobs, referrals):
    def _make(**overrides):
        kwargs = {
            "auth": auth,
            "documents": documents,
            "blobs": blobs,
            "referrals": referrals,
            "logger": logging.getLogger("tests.users_service"),
        }
        kwargs.update(overrides)
        return UserProfileService(**kwargs)
    return _make


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def profile_doc():
    return {
        "nombre": "Ana",
        "wallet": "0xabc",
        "sexo": "F",
        "telefono": "+59170000000",
        "pais": "Bolivia",
        "photoURL": "https://cdn.example.com/ana.png",
        "updated_at": "2024-01-01T00:00:00+00:00",
    }
