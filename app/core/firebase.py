import logging
from functools import lru_cache

import firebase_admin
from firebase_admin import credentials, firestore, storage

from app.config import (
    FIREBASE_CREDENTIALS_PATH, FIREBASE_PROJECT_ID, FIREBASE_STORAGE_BUCKET
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_firebase_app() -> firebase_admin.App:
    """
    Inicializa Firebase Admin una sola vez.
    Usa el JSON de la cuenta de servicio si hay ruta configurada;
    si no, las credenciales por defecto de la aplicación.
    """
    options = {}
    if FIREBASE_PROJECT_ID:
        options["projectId"] = FIREBASE_PROJECT_ID
    if FIREBASE_STORAGE_BUCKET:
        options["storageBucket"] = FIREBASE_STORAGE_BUCKET

    if FIREBASE_CREDENTIALS_PATH:
        logger.info("Inicializando Firebase con %s", FIREBASE_CREDENTIALS_PATH)
        cred = credentials.Certificate(FIREBASE_CREDENTIALS_PATH)
    else:
        logger.info("Inicializando Firebase con credenciales por defecto")
        cred = credentials.ApplicationDefault()
    return firebase_admin.initialize_app(cred, options or None)


@lru_cache(maxsize=1)
def get_firestore_db():
    return firestore.client(app=get_firebase_app())


@lru_cache(maxsize=1)
def get_bucket():
    return storage.bucket(app=get_firebase_app())
