class ProfileError(Exception):
    """Error base del servicio de perfiles."""


class NotAuthenticatedError(ProfileError):
    def __init__(self, message: str = "Usuario no autenticado"):
        super().__init__(message)


class UserNotFoundError(ProfileError):
    def __init__(self, uid: str):
        super().__init__(f"No se encontró el usuario {uid}")
        self.uid = uid


class PhotoValidationError(ProfileError):
    """La foto no cumple tipo/tamaño o no se envió."""


class BlobNotFoundError(ProfileError):
    def __init__(self, key: str):
        super().__init__(f"No existe el objeto {key}")
        self.key = key
