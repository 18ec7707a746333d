import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.api import candidates, catalog, imports, meta, people, reports, review
from backend.config import Settings
from backend.core.errors import StorageError, TrackerError, ValidationError
from backend.core.models import UserRole
from backend.core.pipeline import TrackerService
from backend.core.repositories import DocumentStore
from backend.core.security import hash_password
from backend.core.stamps import iso
from backend.storage.json_store import JsonFileStore
from backend.storage.repositories import Repositories
from backend.storage.sql_store import SqlStore

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> DocumentStore:
    if settings.storage_backend == "sql":
        if not settings.database_url:
            raise StorageError("STORAGE_BACKEND=sql needs DATABASE_URL")
        return SqlStore(settings.database_url)
    if settings.storage_backend == "json":
        return JsonFileStore(settings.data_dir)
    raise StorageError(f"Unsupported storage backend: {settings.storage_backend}")


def admin_seed(settings: Settings):
    """Users written the first time the users collection is created."""
    return {
        "users": [{
            "email": settings.admin_email.strip().lower(),
            "password": hash_password(settings.admin_password),
            "role": UserRole.ADMIN.value,
            "name": settings.admin_name,
            "createdAt": iso(),
            "verified": True,
            "applicantStatus": "None",
            "docs": {},
        }],
    }


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def register_error_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(TrackerError)
    async def tracker_error(request: Request, exc: TrackerError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        if isinstance(exc, ValidationError) and exc.issues:
            return _error(exc.status_code, exc.message, issues=exc.issues)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_invalid(request: Request, exc: RequestValidationError):
        return _error(
            status.HTTP_422_UNPROCESSABLE_ENTITY, "Invalid request", issues=jsonable_encoder(exc.errors()),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND and request.url.path.startswith("/api"):
            return _error(exc.status_code, "API route not found")
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        if settings.is_production:
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", message=str(exc))


def mount_frontend(app: FastAPI, dist: str) -> None:
    """Serve the built dashboard; every non-API path falls back to index.html."""
    index = os.path.join(dist, "index.html")
    if not os.path.isfile(index):
        logger.info("No frontend build at %s; serving the API only", dist)
        return
    assets = os.path.join(dist, "assets")
    if os.path.isdir(assets):
        app.mount("/assets", StaticFiles(directory=assets), name="assets")

    @app.api_route("/{full_path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH"], include_in_schema=False)
    def spa(full_path: str, request: Request):
        # unknown API paths and non-GET requests never fall back to the page
        if full_path.split("/", 1)[0] == "api" or request.method != "GET":
            raise StarletteHTTPException(status_code=404)
        candidate = os.path.join(dist, full_path)
        if full_path and os.path.isfile(candidate):
            return FileResponse(candidate)
        return FileResponse(index)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = build_store(settings)
        store.initialize(admin_seed(settings))
        app.state.service = TrackerService(Repositories(store), stale_days=settings.stale_days)
        logger.info("Tracker ready (%s storage, %s)", settings.storage_backend, settings.env)
        yield

    app = FastAPI(title="FreshGrad Training Tracker", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials="*" not in settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app, settings)

    @app.get("/health")
    def health():
        return {"status": "ok", "storage": settings.storage_backend, "env": settings.env, "ts": iso()}

    for router in (
        candidates.router,
        catalog.courses,
        catalog.mentors,
        people.users,
        people.applicants,
        imports.router,
        review.graduation,
        review.hiring,
        reports.router,
        reports.activity,
        meta.router,
    ):
        app.include_router(router)

    mount_frontend(app, settings.frontend_dist)
    return app


_settings = Settings.from_env()
logging.basicConfig(
    level=_settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(_settings)


if __name__ == "__main__":
    uvicorn.run("backend.app:app", host="0.0.0.0", port=_settings.port, reload=not _settings.is_production)
