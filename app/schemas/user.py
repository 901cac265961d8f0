from typing import Any, Dict, Optional

from pydantic import BaseModel, EmailStr


class UpdateUserProfile(BaseModel):
    nombre: Optional[str] = None
    wallet: Optional[str] = None
    sexo: Optional[str] = None
    telefono: Optional[str] = None
    pais: Optional[str] = None


class PasswordResetRequest(BaseModel):
    email: EmailStr


class ResultEnvelope(BaseModel):
    """Respuesta uniforme de todas las operaciones del servicio."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    message: Optional[str] = None
    photoURL: Optional[str] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ReferrerResponse(BaseModel):
    ok: bool
    nombre: str
