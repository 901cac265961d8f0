"""
Implementaciones en memoria de los colaboradores del servicio de perfiles.
Cada fake registra sus llamadas en `calls` y puede fallar a pedido con `fail()`.
"""
import copy
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.backends.base import CurrentUser
from app.core.errors import BlobNotFoundError


class _Recorder:
    def __init__(self):
        self.calls: List[Tuple[str, tuple]] = []
        self._failures: Dict[str, Exception] = {}

    def fail(self, method: str, error: Exception) -> None:
        self._failures[method] = error

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, args))
        error = self._failures.get(method)
        if error is not None:
            raise error


class FakeSnapshot:
    def __init__(self, data: Optional[Dict[str, Any]]):
        self._data = copy.deepcopy(data)
        self.exists = data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeAuthProvider(_Recorder):
    def __init__(self, current_user: Optional[CurrentUser] = None):
        super().__init__()
        self._current_user = current_user
        self.profiles: Dict[str, Dict[str, Optional[str]]] = {}
        self.reset_emails: List[str] = []

    @property
    def current_user(self):
        return self._current_user

    def update_profile(self, uid, **fields):
        self._record("update_profile", uid, fields)
        self.profiles.setdefault(uid, {}).update(fields)

    def send_password_reset_email(self, email):
        self._record("send_password_reset_email", email)
        self.reset_emails.append(email)


class InMemoryDocumentStore(_Recorder):
    def __init__(self):
        super().__init__()
        self.docs: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._listeners: Dict[Tuple[str, str], List[Tuple[Callable, Callable]]] = {}

    def put(self, collection, doc_id, data):
        self.docs[(collection, doc_id)] = copy.deepcopy(data)
        self._notify(collection, doc_id)

    def _notify(self, collection, doc_id):
        snap = FakeSnapshot(self.docs.get((collection, doc_id)))
        for on_next, _ in list(self._listeners.get((collection, doc_id), [])):
            on_next(snap)

    def emit_error(self, collection, doc_id, error):
        for _, on_error in list(self._listeners.get((collection, doc_id), [])):
            on_error(error)

    def listener_count(self, collection, doc_id) -> int:
        return len(self._listeners.get((collection, doc_id), []))

    def get_document(self, collection, doc_id):
        self._record("get_document", collection, doc_id)
        return FakeSnapshot(self.docs.get((collection, doc_id)))

    def update_document(self, collection, doc_id, fields):
        self._record("update_document", collection, doc_id, copy.deepcopy(fields))
        self.docs.setdefault((collection, doc_id), {}).update(copy.deepcopy(fields))
        self._notify(collection, doc_id)

    def delete_document(self, collection, doc_id):
        self._record("delete_document", collection, doc_id)
        self.docs.pop((collection, doc_id), None)
        self._notify(collection, doc_id)

    def subscribe(self, collection, doc_id, on_next, on_error):
        self._record("subscribe", collection, doc_id)
        entry = (on_next, on_error)
        self._listeners.setdefault((collection, doc_id), []).append(entry)
        # como Firestore: el estado actual se entrega al suscribirse
        on_next(FakeSnapshot(self.docs.get((collection, doc_id))))

        def _unsubscribe():
            listeners = self._listeners.get((collection, doc_id), [])
            if entry in listeners:
                listeners.remove(entry)

        return _unsubscribe


class InMemoryBlobStore(_Recorder):
    BASE_URL = "https://storage.example.com/bucket"

    def __init__(self):
        super().__init__()
        self.blobs: Dict[str, Dict[str, Any]] = {}

    def upload_blob(self, key, data, content_type, metadata=None):
        self._record("upload_blob", key, content_type, metadata)
        self.blobs[key] = {"data": data, "content_type": content_type, "metadata": dict(metadata or {})}

    def get_public_url(self, key):
        self._record("get_public_url", key)
        return f"{self.BASE_URL}/{key}"

    def delete_blob(self, key):
        self._record("delete_blob", key)
        if key not in self.blobs:
            raise BlobNotFoundError(key)
        del self.blobs[key]


class FakeReferralLookup(_Recorder):
    """Emite `stats` al suscribirse; con `stats=None` nunca emite."""

    def __init__(self, stats: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.stats = stats
        self.unsubscribed = 0

    def subscribe_to_stats(self, uid, callback):
        self._record("subscribe_to_stats", uid)
        if self.stats is not None:
            callback(self.stats)
            callback({"referrer": {"nombre": "segunda emisión"}})

        def _unsubscribe():
            self.unsubscribed += 1

        return _unsubscribe
