from pydantic import BaseModel


class SessionLogin(BaseModel):
    id_token: str  # ID token emitido por Firebase Auth en el cliente


class SessionResponse(BaseModel):
    ok: bool
    uid: str
    expiresAt: str
