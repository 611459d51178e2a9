import os
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

def _get_env(key: str, default: str | None = None) -> str:
    val = os.getenv(key, default)
    if val is None:
        raise RuntimeError(f"Missing required env var: {key}")
    return val

def _get_bool(key: str, default: str) -> bool:
    return _get_env(key, default).lower() in ("1", "true", "yes")

APP_ENV = _get_env("APP_ENV", "local")
DATABASE_URL = _get_env("DATABASE_URL", "sqlite:///./touchin.db")
LOG_LEVEL = _get_env("LOG_LEVEL", "DEBUG")
LOG_FILE = _get_env("LOG_FILE", "logs/app.log")

DEFAULT_ROOM_ID = _get_env("DEFAULT_ROOM_ID", "demo-room-1")

AUTH_JWT_SECRET = _get_env("AUTH_JWT_SECRET", "")
AUTH_ALLOW_ANONYMOUS = _get_bool("AUTH_ALLOW_ANONYMOUS", "true")

NOMINATIM_URL = _get_env("NOMINATIM_URL", "https://nominatim.openstreetmap.org/reverse")
NOMINATIM_USER_AGENT = _get_env("NOMINATIM_USER_AGENT", "touchin/0.1.0 (reverse-geocode)")
NOMINATIM_LANGUAGE = _get_env("NOMINATIM_LANGUAGE", "ja")
NOMINATIM_EMAIL = _get_env("NOMINATIM_EMAIL", "")
NOMINATIM_TIMEOUT_SECONDS = float(_get_env("NOMINATIM_TIMEOUT_SECONDS", "10"))

LEDGER_MAX_RETRIES = int(_get_env("LEDGER_MAX_RETRIES", "5"))

logger.debug(f"Config loaded: APP_ENV={APP_ENV}, DATABASE_URL={DATABASE_URL}, LOG_LEVEL={LOG_LEVEL}")
