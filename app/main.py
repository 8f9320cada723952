"""
Drive vault backend: link Google Drive, upload and reclassify documents into
a root/country/fiscal-year folder tree in the user's own Drive.

Load .env in development only (production uses env vars directly). Tables are
created in the lifespan hook unless SKIP_DB_INIT is set. Typed Drive failures
render as JSON with their own status; anything else is a generic 500.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import DRIVE_ROOT_FOLDER_NAME, ENV, FRONTEND_URL, LOG_LEVEL, SKIP_DB_INIT

# Load .env only in development; production should set env vars directly
if ENV == "development":
    load_dotenv(Path(__file__).resolve().parent.parent / ".env")

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

from database import init_db
from auth import router as auth_router
from drive import router as drive_router
from services.errors import DriveVaultError


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Production runs migrations instead
    if not SKIP_DB_INIT:
        init_db()
    logger.info("Drive vault backend started (env=%s, root folder %r)", ENV, DRIVE_ROOT_FOLDER_NAME)
    yield
    logger.info("Drive vault backend shutting down")


app = FastAPI(
    title="Drive Vault Backend",
    description="Google Drive storage federation: link, upload, reclassify, share, disconnect.",
    lifespan=lifespan,
)

# Cookies are sent cross-origin, so the origin must be explicit
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL] if FRONTEND_URL else [],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.exception_handler(DriveVaultError)
async def drive_error_handler(request: Request, exc: DriveVaultError):
    """Render typed federation failures with their status and detail payload."""
    if exc.status_code >= 500:
        logger.warning("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.msg)
    else:
        logger.info("%s on %s %s", exc.error_code, request.method, request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail()})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Log with traceback, answer 500 without internals."""
    if isinstance(exc, HTTPException):
        raise exc
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth_router)
app.include_router(drive_router)
