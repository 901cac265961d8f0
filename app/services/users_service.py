"""
Servicio de perfil de usuario.

Fachada sin estado sobre Auth, Firestore y Storage: cada operación delega en
los colaboradores inyectados y devuelve un ResultEnvelope. Los errores se
registran en el log y el llamador recibe siempre un mensaje genérico.
"""
import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from app.backends.base import (
    AuthProvider, BlobStore, CurrentUser, DocumentStore, ReferralLookup, Unsubscribe
)
from app.config import (
    ALLOWED_PHOTO_TYPES, DEFAULT_REFERRER_NAME, MAX_PHOTO_SIZE, PROFILE_PHOTOS_PREFIX,
    REFERRER_TIMEOUT_SECONDS, USERS_COLLECTION
)
from app.core.errors import (
    BlobNotFoundError, NotAuthenticatedError, PhotoValidationError, UserNotFoundError
)
from app.schemas.user import ResultEnvelope

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("nombre", "wallet", "sexo", "telefono", "pais")

MSG_NOT_AUTHENTICATED = "Usuario no autenticado"
MSG_USER_DATA_ERROR = "Error al obtener datos del usuario"
MSG_PROFILE_ERROR = "Error al actualizar el perfil"
MSG_PHOTO_ERROR = "Error al actualizar la foto de perfil"
MSG_RESET_ERROR = "Error al enviar el correo de restablecimiento"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def best_effort_materialize(documents: DocumentStore, uid: str, base: Dict[str, Any],
                            collection: str = USERS_COLLECTION) -> None:
    try:
        documents.update_document(collection, uid, {**base, "updated_at": _now()})
    except Exception as e:
        # no se propaga, pero queda en el log para depurar
        logger.warning("best_effort_materialize falló para %s: %s", uid, e)


@dataclass
class PhotoFile:
    content: bytes
    content_type: Optional[str]
    size: Optional[int] = None
    filename: Optional[str] = None

    def __post_init__(self):
        if self.size is None:
            self.size = len(self.content or b"")


class UserSubscription:
    """
    Handle de una suscripción en vivo al doc del usuario.
    `unsubscribe()` es idempotente; como context manager se libera al salir.
    """

    def __init__(self):
        self._unsubscribe: Optional[Unsubscribe] = None
        self._closed = False
        self._lock = threading.Lock()

    def _attach(self, unsubscribe: Unsubscribe) -> None:
        self._unsubscribe = unsubscribe

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._unsubscribe is not None:
                self._unsubscribe()

    close = unsubscribe

    def __enter__(self) -> "UserSubscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class UserProfileService:
    def __init__(
        self,
        auth: AuthProvider,
        documents: DocumentStore,
        blobs: BlobStore,
        referrals: ReferralLookup,
        logger: Optional[logging.Logger] = None,
        *,
        users_collection: str = USERS_COLLECTION,
        photos_prefix: str = PROFILE_PHOTOS_PREFIX,
        max_photo_size: int = MAX_PHOTO_SIZE,
        allowed_photo_types: Sequence[str] = ALLOWED_PHOTO_TYPES,
        default_referrer: str = DEFAULT_REFERRER_NAME,
        referrer_timeout: float = REFERRER_TIMEOUT_SECONDS,
    ):
        self.auth = auth
        self.documents = documents
        self.blobs = blobs
        self.referrals = referrals
        self.logger = logger or logging.getLogger(__name__)
        self.users_collection = users_collection
        self.photos_prefix = photos_prefix
        self.max_photo_size = max_photo_size
        self.allowed_photo_types = tuple(allowed_photo_types)
        self.default_referrer = default_referrer
        self.referrer_timeout = referrer_timeout

    # ====== HELPERS ======

    def _require_user(self) -> CurrentUser:
        user = self.auth.current_user
        if user is None:
            raise NotAuthenticatedError()
        return user

    def _photo_key(self, uid: str) -> str:
        return f"{self.photos_prefix}/{uid}"

    def _failure(self, log_msg: str, error: Exception, user_msg: str) -> ResultEnvelope:
        self.logger.error("%s: %s", log_msg, error)
        if isinstance(error, NotAuthenticatedError):
            return ResultEnvelope(success=False, error=MSG_NOT_AUTHENTICATED)
        if isinstance(error, PhotoValidationError):
            # el motivo concreto viaja en `message`; `error` sigue siendo genérico
            return ResultEnvelope(success=False, error=user_msg, message=str(error))
        return ResultEnvelope(success=False, error=user_msg)

    # ====== LECTURA ======

    def subscribe_to_user(self, callback: Callable[[ResultEnvelope], None]) -> UserSubscription:
        """
        Escucha cambios del doc del usuario. `callback` recibe un envelope por
        cada snapshot hasta que se llame a `unsubscribe()` en el handle.
        Lanza NotAuthenticatedError si no hay identidad.
        """
        user = self._require_user()
        subscription = UserSubscription()

        def _on_next(snap) -> None:
            if subscription.closed:
                return
            if snap.exists:
                callback(ResultEnvelope(success=True, data=snap.to_dict() or {}))
            else:
                callback(ResultEnvelope(success=False, error="Usuario no encontrado"))

        def _on_error(error: Exception) -> None:
            if subscription.closed:
                return
            self.logger.error("Error en snapshot: %s", error)
            callback(ResultEnvelope(success=False, error="Error al obtener datos"))

        subscription._attach(
            self.documents.subscribe(self.users_collection, user.uid, _on_next, _on_error)
        )
        return subscription

    def get_user_data(self) -> ResultEnvelope:
        try:
            user = self._require_user()
            snap = self.documents.get_document(self.users_collection, user.uid)
            if snap.exists:
                self.logger.debug("Datos de usuario obtenidos correctamente")
                return ResultEnvelope(success=True, data=snap.to_dict() or {})
            raise UserNotFoundError(user.uid)
        except Exception as e:
            return self._failure("Error al obtener datos del usuario", e, MSG_USER_DATA_ERROR)

    # ====== ESCRITURA ======

    def update_user_profile(self, user_data: Union[Mapping[str, Any], BaseModel]) -> ResultEnvelope:
        """
        Merge de los campos del perfil en Firestore y luego displayName en Auth.
        Si Auth falla se restauran los valores previos del documento.
        """
        try:
            user = self._require_user()
            if isinstance(user_data, BaseModel):
                user_data = user_data.model_dump()
            update = {k: user_data.get(k) for k in PROFILE_FIELDS}
            update["updated_at"] = _now()

            snap = self.documents.get_document(self.users_collection, user.uid)
            # None => el doc no existía y la restauración lo borra
            previous = None
            if snap.exists:
                current = snap.to_dict() or {}
                previous = {k: current.get(k) for k in update}

            self.documents.update_document(self.users_collection, user.uid, update)
            if update["nombre"] is not None:
                try:
                    self.auth.update_profile(user.uid, display_name=update["nombre"])
                except Exception:
                    self._restore_document(user.uid, previous)
                    raise

            self.logger.info("Perfil de usuario actualizado exitosamente")
            return ResultEnvelope(success=True, message="Perfil actualizado correctamente")
        except Exception as e:
            return self._failure("Error al actualizar perfil", e, MSG_PROFILE_ERROR)

    def _restore_document(self, uid: str, previous: Optional[Dict[str, Any]]) -> None:
        try:
            if previous is None:
                self.documents.delete_document(self.users_collection, uid)
            else:
                self.documents.update_document(self.users_collection, uid, previous)
            self.logger.info("Perfil restaurado tras fallo en Auth")
        except Exception as e:
            self.logger.error("No se pudo restaurar el perfil de %s: %s", uid, e)

    def _validate_photo(self, file: Optional[PhotoFile]) -> None:
        if not file:
            raise PhotoValidationError("No se proporcionó ningún archivo")
        if file.content_type not in self.allowed_photo_types:
            raise PhotoValidationError("Formato de imagen no válido. Use JPG, PNG o GIF")
        if file.size > self.max_photo_size:
            mb = self.max_photo_size // (1024 * 1024)
            raise PhotoValidationError(f"La imagen no debe superar los {mb}MB")

    def _delete_old_photo(self, key: str) -> None:
        try:
            self.blobs.delete_blob(key)
            self.logger.info("Foto anterior eliminada correctamente")
        except BlobNotFoundError:
            self.logger.debug("No se encontró foto anterior para eliminar")
        except Exception as e:
            self.logger.error("No se pudo eliminar la foto anterior: %s", e)

    def update_profile_photo(self, file: Optional[PhotoFile]) -> ResultEnvelope:
        """
        Valida, reemplaza la foto en Storage y publica la URL en Auth y Firestore.

        Si falla Auth se borra la foto recién subida; si falla Firestore,
        además la photoURL de Auth vuelve a su valor anterior. Borrar la foto
        vieja antes de subir la nueva no es atómico: una caída entre ambos
        pasos deja al usuario sin foto.
        """
        try:
            self._validate_photo(file)
            user = self._require_user()
            key = self._photo_key(user.uid)

            if user.photo_url:
                self._delete_old_photo(key)

            metadata = {"uploadedBy": user.uid, "uploadedAt": _now()}
            self.blobs.upload_blob(key, file.content, file.content_type, metadata)
            photo_url = self.blobs.get_public_url(key)

            try:
                self.auth.update_profile(user.uid, photo_url=photo_url)
            except Exception:
                self._discard_uploaded_photo(key)
                raise
            try:
                self.documents.update_document(
                    self.users_collection, user.uid,
                    {"photoURL": photo_url, "updated_at": _now()},
                )
            except Exception:
                self._restore_auth_photo(user)
                self._discard_uploaded_photo(key)
                raise

            self.logger.info("Foto de perfil actualizada exitosamente")
            return ResultEnvelope(success=True, photoURL=photo_url)
        except Exception as e:
            return self._failure("Error al actualizar foto de perfil", e, MSG_PHOTO_ERROR)

    def _restore_auth_photo(self, user: CurrentUser) -> None:
        try:
            self.auth.update_profile(user.uid, photo_url=user.photo_url)
        except Exception as e:
            self.logger.error("No se pudo restaurar photoURL en Auth para %s: %s", user.uid, e)

    def _discard_uploaded_photo(self, key: str) -> None:
        try:
            self.blobs.delete_blob(key)
            self.logger.info("Foto subida eliminada tras fallo al publicarla")
        except Exception as e:
            self.logger.error("No se pudo eliminar la foto subida %s: %s", key, e)

    # ====== CUENTA ======

    def send_password_reset_email(self, email: str) -> ResultEnvelope:
        try:
            self.auth.send_password_reset_email(email)
            self.logger.info("Correo de restablecimiento enviado a: %s", email)
            return ResultEnvelope(
                success=True,
                message="Se ha enviado un correo para restablecer la contraseña",
            )
        except Exception as e:
            return self._failure("Error al enviar correo de restablecimiento", e, MSG_RESET_ERROR)

    def get_referrer_name(self) -> str:
        """
        Nombre de quien refirió al usuario, o el nombre por defecto.
        Nunca lanza: cualquier fallo (o timeout) devuelve el valor por defecto.
        """
        first: "queue.Queue[Dict[str, Any]]" = queue.Queue(maxsize=1)

        def _on_stats(stats: Dict[str, Any]) -> None:
            try:
                first.put_nowait(stats)
            except queue.Full:
                pass

        try:
            user = self._require_user()
            unsubscribe = self.referrals.subscribe_to_stats(user.uid, _on_stats)
        except Exception as e:
            self.logger.error("Error al obtener nombre del referidor: %s", e)
            return self.default_referrer

        try:
            stats = first.get(timeout=self.referrer_timeout)
        except queue.Empty:
            self.logger.error(
                "Error al obtener nombre del referidor: sin respuesta en %ss", self.referrer_timeout
            )
            return self.default_referrer
        finally:
            try:
                unsubscribe()
            except Exception as e:
                self.logger.debug("Error al cancelar stats de referidos: %s", e)

        referrer = stats.get("referrer") if isinstance(stats, Mapping) else None
        if not isinstance(referrer, Mapping):
            return self.default_referrer
        return referrer.get("nombre") or self.default_referrer
