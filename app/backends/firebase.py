import logging
import uuid
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import httpx
from firebase_admin import auth as fb_auth
from google.cloud.exceptions import NotFound
from google.cloud.firestore_v1.base_query import FieldFilter

from app.backends.base import CurrentUser, MissingSnapshot, Unsubscribe
from app.config import FIREBASE_WEB_API_KEY, REFERRAL_FIELD, USERS_COLLECTION
from app.core.errors import BlobNotFoundError, ProfileError

logger = logging.getLogger(__name__)

BASE_ID_TOOLKIT = "https://identitytoolkit.googleapis.com/v1"

_AUTH_FIELDS = {"display_name", "photo_url"}

DOWNLOAD_TOKENS_KEY = "firebaseStorageDownloadTokens"


class FirebaseAuthProvider:
    """Identidad de la petición actual + operaciones de Firebase Auth."""

    def __init__(self, current_user: Optional[CurrentUser], api_key: str = FIREBASE_WEB_API_KEY,
                 http_client: Optional[httpx.Client] = None):
        self._current_user = current_user
        self._api_key = api_key
        self._http = http_client

    @property
    def current_user(self) -> Optional[CurrentUser]:
        return self._current_user

    def update_profile(self, uid: str, **fields: Optional[str]) -> None:
        unknown = set(fields) - _AUTH_FIELDS
        if unknown:
            raise ValueError(f"Campos no soportados: {sorted(unknown)}")
        # None => borrar el atributo en Firebase Auth
        kwargs = {k: (fb_auth.DELETE_ATTRIBUTE if v is None else v) for k, v in fields.items()}
        fb_auth.update_user(uid, **kwargs)

    def send_password_reset_email(self, email: str) -> None:
        # Admin SDK solo genera el link; el envío lo hace Identity Toolkit
        if not self._api_key:
            raise ProfileError("FIREBASE_WEB_API_KEY no configurada")
        client = self._http or httpx.Client(timeout=20)
        try:
            r = client.post(
                f"{BASE_ID_TOOLKIT}/accounts:sendOobCode",
                params={"key": self._api_key},
                json={"requestType": "PASSWORD_RESET", "email": email},
            )
        finally:
            if self._http is None:
                client.close()
        if r.status_code != 200:
            raise ProfileError(f"sendOobCode respondió {r.status_code}: {r.text}")


class FirestoreDocumentStore:
    def __init__(self, db):
        self._db = db

    def _ref(self, collection: str, doc_id: str):
        return self._db.collection(collection).document(doc_id)

    def get_document(self, collection: str, doc_id: str):
        return self._ref(collection, doc_id).get()

    def update_document(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self._ref(collection, doc_id).set(fields, merge=True)

    def delete_document(self, collection: str, doc_id: str) -> None:
        self._ref(collection, doc_id).delete()

    def subscribe(self, collection, doc_id, on_next, on_error) -> Unsubscribe:
        def _on_snapshot(docs, changes, read_time):
            # El stream de un documento entrega [] cuando el doc no existe
            try:
                on_next(docs[0] if docs else MissingSnapshot(doc_id))
            except Exception as e:
                on_error(e)

        watch = self._ref(collection, doc_id).on_snapshot(_on_snapshot)
        return watch.unsubscribe


class StorageBlobStore:
    """
    Las URLs son de descarga con token (como getDownloadURL del SDK web):
    no cambian los permisos del objeto ni requieren ACLs por objeto.
    """

    DOWNLOAD_BASE = "https://firebasestorage.googleapis.com/v0/b"

    def __init__(self, bucket):
        self._bucket = bucket

    def upload_blob(self, key: str, data: bytes, content_type: str,
                    metadata: Optional[Dict[str, str]] = None) -> None:
        blob = self._bucket.blob(key)
        blob.metadata = {**(metadata or {}), DOWNLOAD_TOKENS_KEY: str(uuid.uuid4())}
        blob.upload_from_string(data, content_type=content_type)

    def get_public_url(self, key: str) -> str:
        blob = self._bucket.get_blob(key)
        if blob is None:
            raise BlobNotFoundError(key)
        tokens = (blob.metadata or {}).get(DOWNLOAD_TOKENS_KEY)
        if tokens:
            token = tokens.split(",")[0]
        else:
            # objeto subido sin token: se le agrega uno
            token = str(uuid.uuid4())
            blob.metadata = {**(blob.metadata or {}), DOWNLOAD_TOKENS_KEY: token}
            blob.patch()
        return (
            f"{self.DOWNLOAD_BASE}/{self._bucket.name}/o/{quote(key, safe='')}"
            f"?alt=media&token={token}"
        )

    def delete_blob(self, key: str) -> None:
        try:
            self._bucket.blob(key).delete()
        except NotFound:
            raise BlobNotFoundError(key)


class FirestoreReferralLookup:
    """
    Stats de referidos leídos del propio doc de usuario:
      - `referido_por` guarda el uid de quien refirió al usuario
      - `total_referidos` cuenta los usuarios cuyo `referido_por` es este uid
    """

    def __init__(self, db, collection: str = USERS_COLLECTION, field: str = REFERRAL_FIELD):
        self._db = db
        self._collection = collection
        self._field = field

    def _count_referidos(self, uid: str) -> int:
        query = self._db.collection(self._collection).where(
            filter=FieldFilter(self._field, "==", uid)
        )
        result = query.count().get()
        return int(result[0][0].value) if result and result[0] else 0

    def _stats_for(self, uid: str, data: Dict[str, Any]) -> Dict[str, Any]:
        stats: Dict[str, Any] = {"total_referidos": self._count_referidos(uid)}
        referrer_uid = data.get(self._field)
        if referrer_uid:
            snap = self._db.collection(self._collection).document(referrer_uid).get()
            if snap.exists:
                referrer = snap.to_dict() or {}
                stats["referrer"] = {"uid": referrer_uid, "nombre": referrer.get("nombre")}
        return stats

    def subscribe_to_stats(self, uid: str, callback: Callable[[Dict[str, Any]], None]) -> Unsubscribe:
        def _on_snapshot(docs, changes, read_time):
            data = (docs[0].to_dict() or {}) if docs else {}
            try:
                stats = self._stats_for(uid, data)
            except Exception:
                logger.exception("No se pudieron calcular los referidos de %s", uid)
                stats = {}
            callback(stats)

        watch = self._db.collection(self._collection).document(uid).on_snapshot(_on_snapshot)
        return watch.unsubscribe
