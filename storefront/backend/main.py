"""
Storefront Admin - bulk user operations API.

Serves the bulk update/status/delete, CSV import and CSV export endpoints of
the admin back office.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from storefront.backend.core.config import get_web_settings
from storefront.backend.core.database import db_service
from storefront.backend.core.errors import E, default_message
from storefront.backend.core.logging_setup import configure_logging
from storefront.backend.core.rate_limit import limiter
from storefront.backend.api.v2 import users
from storefront.backend.schemas.common import HealthResponse

__version__ = "1.0.0"

_settings = get_web_settings()
configure_logging(_settings.log_level, _settings.log_dir)
logger = logging.getLogger("storefront")

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_web_settings()
    logger.info("Admin API %s starting on %s:%s", __version__, settings.host, settings.port)

    if not settings.database_url:
        logger.info("No DATABASE_URL, bulk operations run on in-memory stores")
    elif not await db_service.connect(database_url=settings.database_url):
        logger.warning("Database connection failed, bulk operations run on in-memory stores")

    yield

    if db_service.is_connected:
        await db_service.disconnect()
    logger.info("Admin API stopped")


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are shape errors: 400, not FastAPI's default 422."""
    return JSONResponse(
        status_code=400,
        content={
            "detail": {
                "detail": default_message(E.VALIDATION_FAILED),
                "code": E.VALIDATION_FAILED.value,
                "errors": jsonable_encoder(exc.errors()),
            }
        },
    )


def create_app() -> FastAPI:
    settings = get_web_settings()
    docs = settings.debug

    app = FastAPI(
        title="Storefront Admin API",
        description="Bulk user operations for the storefront back office",
        version=__version__,
        docs_url="/api/docs" if docs else None,
        redoc_url="/api/redoc" if docs else None,
        openapi_url="/api/openapi.json" if docs else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)

    # Credentials are allowed, so a wildcard origin is never passed through
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o for o in settings.cors_origins if o != "*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        expose_headers=["Content-Disposition"],
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for header, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    app.include_router(users.router, prefix="/api/v2/users", tags=["users"])

    @app.get("/api/v2/health", tags=["health"], response_model=HealthResponse)
    async def health():
        return HealthResponse(
            status="ok",
            version=__version__,
            service="storefront-admin",
            database="connected" if db_service.is_connected else "in-memory",
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storefront.backend.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug,
    )
