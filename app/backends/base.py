"""
Contratos de los colaboradores externos del servicio de perfiles.

El servicio no sabe nada de Firebase: recibe implementaciones de estos
protocolos en su constructor (ver app/backends/firebase.py y tests/fakes.py).
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class CurrentUser:
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "CurrentUser":
        # claims de verify_id_token / verify_session_cookie
        return cls(
            uid=claims["uid"],
            email=claims.get("email"),
            display_name=claims.get("name"),
            photo_url=claims.get("picture"),
        )


class MissingSnapshot:
    """Snapshot de un documento que no existe."""

    exists = False

    def __init__(self, doc_id: str):
        self.id = doc_id

    def to_dict(self) -> None:
        return None


class DocumentSnapshot(Protocol):
    exists: bool

    def to_dict(self) -> Optional[Dict[str, Any]]: ...


class AuthProvider(Protocol):
    @property
    def current_user(self) -> Optional[CurrentUser]: ...

    def update_profile(self, uid: str, **fields: Optional[str]) -> None:
        """
        Actualiza metadatos del perfil (display_name, photo_url).
        Solo se tocan las claves recibidas; un valor None borra el atributo.
        """
        ...

    def send_password_reset_email(self, email: str) -> None: ...


class DocumentStore(Protocol):
    def get_document(self, collection: str, doc_id: str) -> DocumentSnapshot: ...

    def update_document(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Merge de `fields` sobre el documento (lo crea si no existe)."""
        ...

    def delete_document(self, collection: str, doc_id: str) -> None: ...

    def subscribe(
        self,
        collection: str,
        doc_id: str,
        on_next: Callable[[DocumentSnapshot], None],
        on_error: Callable[[Exception], None],
    ) -> Unsubscribe: ...


class BlobStore(Protocol):
    def upload_blob(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None: ...

    def get_public_url(self, key: str) -> str: ...

    def delete_blob(self, key: str) -> None:
        """Lanza BlobNotFoundError si no existe."""
        ...


class ReferralLookup(Protocol):
    def subscribe_to_stats(
        self, uid: str, callback: Callable[[Dict[str, Any]], None]
    ) -> Unsubscribe:
        """callback recibe {"referrer": {"nombre": ...}?, "total_referidos": int}"""
        ...
