import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Response
from firebase_admin import auth as fb_auth

from app.backends.firebase import FirestoreDocumentStore
from app.config import SESSION_COOKIE_NAME, SESSION_COOKIE_SECURE, SESSION_EXPIRES_DELTA
from app.core.firebase import get_firebase_app, get_firestore_db
from app.deps.services import get_public_profile_service
from app.schemas.auth import SessionLogin, SessionResponse
from app.schemas.user import PasswordResetRequest
from app.services.users_service import UserProfileService, best_effort_materialize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _verify_id_token_with_skew(id_token: str, skew_seconds: int = 15):
    """
    Verifica el ID token. Si falla por 'Token used too early',
    reintenta con una tolerancia de reloj (clock skew).
    """
    app = get_firebase_app()
    try:
        return fb_auth.verify_id_token(id_token, app=app)
    except Exception as e:
        if "Token used too early" in str(e):
            logger.warning(
                "verify_id_token: 'used too early', reintentando con %ss de tolerancia",
                skew_seconds,
            )
            return fb_auth.verify_id_token(id_token, app=app, clock_skew_seconds=skew_seconds)
        raise


@router.post("/session", response_model=SessionResponse)
def create_session(body: SessionLogin, response: Response):
    try:
        decoded = _verify_id_token_with_skew(body.id_token)
    except Exception as e:
        logger.exception("verify_id_token failed")
        raise HTTPException(401, detail=f"ID token inválido: {e}")

    try:
        session_cookie = fb_auth.create_session_cookie(
            body.id_token, expires_in=SESSION_EXPIRES_DELTA, app=get_firebase_app()
        )
    except Exception as e:
        logger.exception("create_session_cookie failed")
        raise HTTPException(400, detail=f"No se pudo crear la sesión: {e}")

    expires_at = datetime.now(timezone.utc) + SESSION_EXPIRES_DELTA
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_cookie,
        httponly=True,
        secure=SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
        expires=int(expires_at.timestamp()),
    )

    # el perfil se materializa sin romper el login si falla
    uid = decoded.get("uid")
    best_effort_materialize(
        FirestoreDocumentStore(get_firestore_db()),
        uid,
        {"uid": uid, "email": decoded.get("email")},
    )

    return {"ok": True, "uid": uid, "expiresAt": expires_at.isoformat()}


@router.post("/session/logout")
def logout(response: Response):
    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")
    return {"ok": True}


@router.post("/password/reset")
def password_reset(body: PasswordResetRequest,
                   service: UserProfileService = Depends(get_public_profile_service)):
    return service.send_password_reset_email(body.email).as_dict()
