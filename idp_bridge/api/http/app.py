"""FastAPI application factory and setup."""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import JSONResponse

from idp_bridge.api.http.app_data import ApplicationDependencies
from idp_bridge.api.http.routers.auth import router as auth_router
from idp_bridge.api.http.routers.user import router as user_router
from idp_bridge.api.utils.app_startup import configure_logging
from idp_bridge.core.exceptions import ConfigurationError
from idp_bridge.core.services import ConfigurationService, DbSessionService
from idp_bridge.runtime.context import get_config


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        if get_config().app.environment == "production":
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )
        return response


async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    # The query string is left out: callbacks carry authorization codes.
    base_ctx = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "client_ip": request.client.host if request.client else "unknown",
    }

    start = time.perf_counter()
    with logger.contextualize(**base_ctx):
        try:
            logger.info("request.start")
            response = await call_next(request)
        except Exception as exc:
            logger.bind(error_type=type(exc).__name__).exception("request.error")
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error", "request_id": request_id},
                headers={"X-Request-ID": request_id},
            )

        duration_ms = (time.perf_counter() - start) * 1000
        logger.bind(
            status_code=response.status_code, duration_ms=round(duration_ms, 1)
        ).info("request.end")
        response.headers.setdefault("X-Request-ID", request_id)
        return response


def build_dependencies() -> ApplicationDependencies:
    """Application-wide services from the bootstrap config."""
    config = get_config()
    database_service = DbSessionService(config.database)
    database_service.create_all()
    return ApplicationDependencies(
        configuration_service=ConfigurationService.from_config(config.idp),
        database_service=database_service,
    )


def create_app(dependencies: ApplicationDependencies | None = None) -> FastAPI:
    """Build the web app.

    Args:
        dependencies: Prebuilt services (tests); built from the config when None

    Raises:
        ConfigurationError: If no cookie secret is configured
    """
    config = get_config()
    deps = dependencies or build_dependencies()

    settings = deps.configuration_service.settings()
    if not settings.cookie_secret:
        raise ConfigurationError("cookie_secret is required to sign the session cookie")
    try:
        deps.configuration_service.settings(require_complete=True)
    except ConfigurationError as e:
        # The app still starts so the settings can be completed through the CLI.
        logger.warning(f"IdP login is not usable yet: {e}")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up application in {} environment", config.app.environment)
        yield
        logger.info("Shutting down application")

    is_production = config.app.environment == "production"
    app = FastAPI(
        lifespan=lifespan,
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
    )
    app.state.app_dependencies = deps

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.cookie_secret,
        session_cookie=config.app.session_cookie,
        max_age=config.app.session_max_age,
        same_site="lax",
        https_only=is_production,
    )
    app.middleware("http")(log_requests)

    app.include_router(auth_router)
    app.include_router(user_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def readiness() -> JSONResponse:
        """Readiness: the user store answers and the IdP settings are complete."""
        try:
            deps.configuration_service.settings(require_complete=True)
        except ConfigurationError as e:
            return JSONResponse(status_code=503, content={"status": "not ready", "detail": str(e)})
        if not deps.database_service.health_check():
            return JSONResponse(status_code=503, content={"status": "not ready"})
        return JSONResponse(content={"status": "ready"})

    return app


if __name__ == "__main__":
    import uvicorn

    configure_logging()
    main_config = get_config()
    uvicorn.run(
        create_app(),
        host=main_config.app.host,
        port=main_config.app.port,
        access_log=False,
    )
