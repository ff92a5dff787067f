"""FastAPI application entry point."""

import asyncio
import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from connectapp.auth.tokens import TokenManager
from connectapp.config import Settings, settings as default_settings
from connectapp.database.engine import build_engine, build_session_factory, init_db
from connectapp.errors import AppError, InternalError
from connectapp.otp.channels import DeliveryChannel, build_channels
from connectapp.otp.service import OTPService
from connectapp.otp.store import OTPStore
from connectapp.ratelimit import RateLimiter
from connectapp.routers.admin import router as admin_router
from connectapp.routers.auth import router as auth_router
from connectapp.routers.otp import router as otp_router
from connectapp.routers.vendor import router as vendor_router

logging.basicConfig(
    level=logging.DEBUG if default_settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


async def _sweep_forever(store: OTPStore, limiter: RateLimiter, interval: float) -> None:
    """Periodically drop expired OTPs and closed rate-limit windows."""
    while True:
        await asyncio.sleep(interval)
        store.sweep()
        limiter.sweep()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    cfg: Settings = app.state.settings
    logger.info("Starting %s (%s) …", cfg.app_name, cfg.environment)
    if not cfg.jwt_secret:
        logger.error("JWT_SECRET is not set — every login will be rejected")
    await init_db(app.state.db_engine)
    logger.info("Database initialised")

    sweeper = asyncio.create_task(
        _sweep_forever(
            app.state.otp_store, app.state.rate_limiter, cfg.otp_sweep_interval_seconds
        )
    )
    yield
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    await app.state.db_engine.dispose()
    logger.info("Shutting down %s …", cfg.app_name)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()]
    logger.info("Validation error on %s: %s", request.url.path, fields)
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation error", "fields": fields},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=InternalError().to_dict())


def create_app(
    settings: Settings | None = None,
    store: OTPStore | None = None,
    limiter: RateLimiter | None = None,
    channels: Mapping[str, DeliveryChannel] | None = None,
) -> FastAPI:
    """Build the application and wire its process-wide collaborators.

    The OTP store, rate limiter and database engine live on ``app.state``
    and are shared by every request handled by this process.
    """
    cfg = settings if settings is not None else default_settings
    otp_store = store if store is not None else OTPStore()
    delivery = channels if channels is not None else build_channels(cfg)

    app = FastAPI(
        title=cfg.app_name,
        description="Authentication and verification backend for the ConnectApp marketplace",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.otp_store = otp_store
    app.state.rate_limiter = limiter if limiter is not None else RateLimiter()
    app.state.db_engine = build_engine(cfg.database_url)
    app.state.session_factory = build_session_factory(app.state.db_engine)
    app.state.otp_service = OTPService.from_settings(cfg, otp_store, delivery)
    app.state.tokens = TokenManager(
        cfg.jwt_secret,
        algorithm=cfg.jwt_algorithm,
        ttl_seconds=cfg.session_ttl_seconds,
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(otp_router)
    app.include_router(auth_router)
    app.include_router(admin_router)
    app.include_router(vendor_router)

    @app.get("/health")
    async def health_check():
        """Simple liveness probe."""
        return {"status": "healthy", "app": cfg.app_name}

    return app


app = create_app()
