import logging

from fastapi import Depends

from app.backends.base import CurrentUser
from app.backends.firebase import (
    FirebaseAuthProvider, FirestoreDocumentStore, FirestoreReferralLookup, StorageBlobStore
)
from app.core.firebase import get_bucket, get_firestore_db
from app.deps.auth import get_current_user
from app.services.users_service import UserProfileService

service_logger = logging.getLogger("app.services.users_service")


def _build_service(current) -> UserProfileService:
    db = get_firestore_db()
    return UserProfileService(
        auth=FirebaseAuthProvider(current),
        documents=FirestoreDocumentStore(db),
        blobs=StorageBlobStore(get_bucket()),
        referrals=FirestoreReferralLookup(db),
        logger=service_logger,
    )


def get_profile_service(current: CurrentUser = Depends(get_current_user)) -> UserProfileService:
    return _build_service(current)


def get_public_profile_service() -> UserProfileService:
    """Servicio sin identidad (p. ej. restablecer contraseña)."""
    return _build_service(None)
