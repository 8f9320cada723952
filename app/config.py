"""
Application configuration from environment variables.

Load with python-dotenv in main so env vars are available before imports.
Validates critical secrets at module load; missing values raise RuntimeError.
"""
import os

# --- Required (raise if missing) ---
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
JWT_SECRET = os.getenv("JWT_SECRET")

for name, val in [
    ("GOOGLE_CLIENT_ID", GOOGLE_CLIENT_ID),
    ("GOOGLE_CLIENT_SECRET", GOOGLE_CLIENT_SECRET),
    ("JWT_SECRET", JWT_SECRET),
]:
    if not val or not str(val).strip():
        raise RuntimeError(f"Required env var {name} is missing or empty")

JWT_ALGORITHM = "HS256"


def _int_env(key: str, default: int, minimum: int = 1) -> int:
    try:
        return max(minimum, int(os.getenv(key, str(default))))
    except ValueError:
        return default


def _bool_env(key: str, default: str = "false") -> bool:
    return os.getenv(key, default).lower() in ("1", "true", "yes")


# --- Optional with defaults ---
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

# Session cookie read by get_current_user; Authorization: Bearer is accepted too
JWT_COOKIE_NAME = os.getenv("JWT_COOKIE_NAME", "session")

# Google endpoints
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
DRIVE_ABOUT_URL = "https://www.googleapis.com/drive/v3/about"

DRIVE_SCOPES = [
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/userinfo.email",
]

# Top-level folder created in the user's Drive; country/year folders live under it
DRIVE_ROOT_FOLDER_NAME = os.getenv("DRIVE_ROOT_FOLDER_NAME", "TAXBEBO")

# Free space required on the linked account at link time (500 MiB)
MIN_STORAGE_BYTES = _int_env("MIN_STORAGE_BYTES", 500 * 1024 * 1024, minimum=0)

# Suffix probes (name_1.ext ... name_N.ext) before falling back to a timestamp
MAX_NAME_PROBES = _int_env("MAX_NAME_PROBES", 100)

# Max upload size accepted by the router (bytes), 50 MB default
MAX_UPLOAD_BYTES = _int_env("MAX_UPLOAD_BYTES", 52428800)

# Request timeouts (connect, read) in seconds
OAUTH_REQUEST_TIMEOUT = (5, 30)
DRIVE_REQUEST_TIMEOUT = (5, 60)
DRIVE_UPLOAD_TIMEOUT = (5, 120)  # multipart upload: 120s read

# Database URL (SQLite default; use Postgres URL in production)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./drive_vault.db")

# Skip create_all at startup (set in production when using migrations)
SKIP_DB_INIT = _bool_env("SKIP_DB_INIT")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Environment: development | production | test (affects .env loading)
ENV = os.getenv("ENV", "development").lower()
