import logging
from typing import Optional

from fastapi import HTTPException, Request, status
from firebase_admin import auth as fb_auth

from app.backends.base import CurrentUser
from app.config import SESSION_COOKIE_NAME
from app.core.firebase import get_firebase_app

logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return None


def get_current_user(request: Request) -> CurrentUser:
    """
    Identidad del llamador: cookie de sesión de Firebase o, si no hay,
    un ID token en `Authorization: Bearer`.
    """
    session_cookie = request.cookies.get(SESSION_COOKIE_NAME)
    id_token = _bearer_token(request)
    if not session_cookie and not id_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No autenticado")

    app = get_firebase_app()
    try:
        if session_cookie:
            claims = fb_auth.verify_session_cookie(session_cookie, check_revoked=True, app=app)
        else:
            claims = fb_auth.verify_id_token(id_token, app=app)
    except Exception as e:
        logger.warning("Credenciales inválidas: %s", e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sesión inválida o expirada")

    return CurrentUser.from_claims(claims)
