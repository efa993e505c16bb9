import logging
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from missmatch.core.container import Container, build_container
from missmatch.core.logging import configure_logging
from missmatch.routers import garments, tryon, uploads, webhooks
from missmatch.routers.deps import client_ip
from missmatch.services.errors import ArtifactStoreError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": exc.message, "field": exc.field},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or None
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": first.get("msg", "Invalid request"), "field": field},
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(SQLAlchemyError)
    @app.exception_handler(ArtifactStoreError)
    async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("request_failed", exc_info=exc, extra={"path": request.url.path})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Something went wrong. Please try again."},
        )


def create_app(container: Container | None = None) -> FastAPI:
    configure_logging()
    container = container or build_container()
    settings = container.settings
    app = FastAPI(title=settings.app_name, debug=settings.debug)
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        if request.url.path.startswith("/api/") and not request.url.path.startswith("/api/webhooks/"):
            if not app.state.container.api_limiter.hit(client_ip(request)):
                return JSONResponse(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    content={"detail": "Too many requests. Please try again later."},
                )
        return await call_next(request)

    app.include_router(uploads.router)
    app.include_router(garments.router)
    app.include_router(tryon.router)
    app.include_router(webhooks.router)
    app.mount("/artifacts", StaticFiles(directory=Path(settings.artifact_dir), check_dir=False), name="artifacts")

    @app.on_event("startup")
    def startup() -> None:
        if settings.auto_create_tables:
            import missmatch.models  # noqa: F401
            from missmatch.db.base import Base
            from missmatch.db.session import engine

            Base.metadata.create_all(bind=engine)

    @app.get("/health")
    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "drivers": container.registry.get_supported_drivers()}

    return app


app = create_app()
