import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

# Firebase
FIREBASE_CREDENTIALS_PATH = os.getenv("FIREBASE_CREDENTIALS_PATH")
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
FIREBASE_STORAGE_BUCKET = os.getenv("FIREBASE_STORAGE_BUCKET")
FIREBASE_WEB_API_KEY = os.getenv("FIREBASE_WEB_API_KEY", "")

# CORS (coma separada)
ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]

# Sesión
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "__session")
SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"
SESSION_EXPIRES_DELTA = timedelta(days=int(os.getenv("SESSION_EXPIRES_DAYS", "5")))

# Perfil
USERS_COLLECTION = os.getenv("USERS_COLLECTION", "users")
PROFILE_PHOTOS_PREFIX = os.getenv("PROFILE_PHOTOS_PREFIX", "profile_photos")
MAX_PHOTO_SIZE = int(os.getenv("MAX_PHOTO_SIZE", str(5 * 1024 * 1024)))  # 5MB
ALLOWED_PHOTO_TYPES = ("image/jpeg", "image/png", "image/gif")

# Referidos
REFERRAL_FIELD = os.getenv("REFERRAL_FIELD", "referido_por")
DEFAULT_REFERRER_NAME = os.getenv("DEFAULT_REFERRER_NAME", "DinnerMax")
REFERRER_TIMEOUT_SECONDS = float(os.getenv("REFERRER_TIMEOUT_SECONDS", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
