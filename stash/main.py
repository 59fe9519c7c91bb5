import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, FastAPI, File, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from fastapi.security import APIKeyCookie, HTTPAuthorizationCredentials, HTTPBearer
from starlette.exceptions import HTTPException as StarletteHTTPException

from stash.auth import CredentialVerifier
from stash.config import Settings, get_settings
from stash.errors import AuthenticationError, NotFoundError, UserError
from stash.models import (
    FileListResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    NoteListResponse,
    NoteResponse,
    NoteUpsertRequest,
    ShareLinkResponse,
    StatusResponse,
    StoredObject,
    User,
    UserResponse,
)
from stash.notes import NoteStore
from stash.ratelimit import RequestLimiter
from stash.sharing import ShareRegistry
from stash.signing import SessionSigner
from stash.storage import ObjectStore

logger = structlog.get_logger(__name__)


def error_response(status_code: int, message: str, details: list[dict] | None = None) -> JSONResponse:
    content: dict = {"error": message}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def send_file(path: Path, stored: StoredObject) -> FileResponse:
    try:
        stat_result = path.stat()
    except FileNotFoundError:
        raise NotFoundError("File not found") from None
    return FileResponse(
        path=path,
        filename=stored.original_name,
        media_type=stored.content_type,
        stat_result=stat_result,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    verifier = CredentialVerifier(
        user_id=settings.admin_user_id,
        username=settings.admin_username,
        password_hash=settings.admin_password_hash,
        min_rounds=settings.min_password_hash_rounds,
    )
    signer = SessionSigner(settings.app_secret_key, settings.session_ttl_seconds)
    storage = ObjectStore(
        settings.storage_dir,
        max_size_bytes=settings.max_upload_size_bytes,
        max_files=settings.max_files_per_upload,
    )
    notes = NoteStore(
        settings.notes_dir,
        max_title_length=settings.max_note_title_length,
        max_content_length=settings.max_note_content_length,
    )
    shares = ShareRegistry(storage, settings.share_ttl_seconds)
    api_limiter = RequestLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds)
    login_limiter = RequestLimiter(
        settings.login_rate_limit_attempts,
        settings.rate_limit_window_seconds,
        namespace="login",
        message="Too many login attempts, please try again later.",
    )
    started_at = time.monotonic()

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        storage.init()
        notes.init()
        logger.info("stash_started", storage_dir=settings.storage_dir, notes_dir=settings.notes_dir)
        yield
        shares.clear()
        api_limiter.reset()
        login_limiter.reset()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(_: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(item) for item in error["loc"] if item != "body"),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return error_response(400, "Validation failed", details)

    @app.exception_handler(UserError)
    async def user_error_handler(_: Request, exc: UserError):
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_: Request, exc: StarletteHTTPException):
        message = str(exc.detail) if exc.detail else "request failed"
        return error_response(exc.status_code, message)

    @app.exception_handler(Exception)
    async def unexpected_exception_handler(request: Request, exc: Exception):
        logger.exception("unexpected_error", path=request.url.path)
        return error_response(500, "Internal server error")

    bearer_scheme = HTTPBearer(auto_error=False)
    cookie_scheme = APIKeyCookie(name=settings.session_cookie_name, auto_error=False)

    def rate_limit(request: Request) -> None:
        api_limiter.hit(client_key(request))

    def login_rate_limit(request: Request) -> None:
        login_limiter.hit(client_key(request))

    def current_user(
        credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
        token_cookie: Annotated[str | None, Depends(cookie_scheme)] = None,
    ) -> User:
        if credentials is not None:
            token = credentials.credentials
        elif token_cookie:
            token = token_cookie
        else:
            raise AuthenticationError("You are not logged in. Please log in to get access.")

        if signer.verify(token) != verifier.user.id:
            raise AuthenticationError("Invalid token. Please log in again.")
        return verifier.user

    CurrentUser = Annotated[User, Depends(current_user)]

    api = APIRouter(prefix="/api", dependencies=[Depends(rate_limit)])

    @api.get("/health")
    def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            uptime=round(time.monotonic() - started_at, 3),
            timestamp=datetime.now(timezone.utc),
        )

    @api.post("/auth/login", dependencies=[Depends(login_rate_limit)])
    def login(payload: LoginRequest, request: Request, response: Response) -> LoginResponse:
        if not verifier.verify(payload.username, payload.password):
            logger.warning("login_failed", client=client_key(request))
            raise AuthenticationError("Invalid credentials")

        token = signer.issue(verifier.user.id)
        response.set_cookie(
            key=settings.session_cookie_name,
            value=token,
            max_age=settings.session_ttl_seconds,
            httponly=True,
            secure=settings.secure_cookies,
            samesite="strict",
        )
        logger.info("login_succeeded", user_id=verifier.user.id)
        return LoginResponse(token=token, user=verifier.user)

    @api.post("/auth/logout")
    def logout(user: CurrentUser, response: Response) -> StatusResponse:
        response.delete_cookie(
            key=settings.session_cookie_name,
            httponly=True,
            secure=settings.secure_cookies,
            samesite="strict",
        )
        logger.info("logout", user_id=user.id)
        return StatusResponse(message="Logged out")

    @api.get("/auth/me")
    def me(user: CurrentUser) -> UserResponse:
        return UserResponse(user=user)

    @api.post("/files/upload")
    def upload_files(_: CurrentUser, files: list[UploadFile] | None = File(default=None)) -> FileListResponse:
        return FileListResponse(files=storage.ingest(files or []))

    @api.get("/files")
    def list_files(_: CurrentUser) -> FileListResponse:
        return FileListResponse(files=storage.list())

    @api.get("/files/download/{filename}")
    def download_file(_: CurrentUser, filename: str):
        path, stored = storage.fetch(filename)
        return send_file(path, stored)

    @api.delete("/files/{filename}")
    def delete_file(_: CurrentUser, filename: str) -> StatusResponse:
        storage.remove(filename)
        return StatusResponse(message="File deleted successfully")

    @api.post("/files/share/{filename}")
    def share_file(_: CurrentUser, filename: str, request: Request) -> ShareLinkResponse:
        grant = shares.grant(filename)
        return ShareLinkResponse(
            share_link=str(request.url_for("download_shared_file", share_id=grant.share_id)),
            share_id=grant.share_id,
            expires_at=grant.expires_at,
        )

    @api.get("/files/shared/{share_id}", name="download_shared_file")
    def download_shared_file(share_id: str):
        path, stored = shares.redeem(share_id)
        return send_file(path, stored)

    @api.get("/notes")
    def list_notes(_: CurrentUser) -> NoteListResponse:
        return NoteListResponse(notes=notes.list())

    @api.get("/notes/{note_id}")
    def get_note(_: CurrentUser, note_id: str) -> NoteResponse:
        return NoteResponse(note=notes.get(note_id))

    @api.post("/notes")
    def save_note(_: CurrentUser, payload: NoteUpsertRequest) -> NoteResponse:
        return NoteResponse(note=notes.upsert(payload.title, payload.content))

    @api.delete("/notes/{note_id}")
    def delete_note(_: CurrentUser, note_id: str) -> StatusResponse:
        notes.delete(note_id)
        return StatusResponse(message="Note deleted successfully")

    app.include_router(api)
    return app
