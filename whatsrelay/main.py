"""
WhatsRelay - WhatsApp Web dashboard backend and webhook relay.
Main FastAPI application entry point.
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from whatsrelay.config import Settings, get_settings
from whatsrelay.api.router import api_router
from whatsrelay.errors import RelayError
from whatsrelay.integrations.evolution import EvolutionClient
from whatsrelay.integrations.messaging_base import MessagingClient
from whatsrelay.schemas.api_responses import fail
from whatsrelay.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("whatsrelay")

SHUTDOWN_GRACE_SECONDS = 10.0


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


def build_messaging_client(settings: Settings) -> MessagingClient:
    return EvolutionClient(
        base_url=settings.evolution_api_url,
        api_key=settings.evolution_api_key,
        instance_name=settings.evolution_instance_name,
        queue_size=settings.event_queue_size,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    from whatsrelay.database import async_session_factory, dispose_engine, init_db
    from whatsrelay.services.media_storage import MediaStorage
    from whatsrelay.services.session_state import ConnectionState
    from whatsrelay.services.webhook_dispatcher import WebhookDispatcher
    from whatsrelay.workers.session_bridge import SessionBridge, delayed_connect

    settings = get_settings()
    logger.info("WhatsRelay starting up (env=%s)", settings.app_env)

    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    if settings.database_auto_create:
        await init_db()

    if settings.default_webhook_url:
        logger.info("Default webhook destination: %s", settings.default_webhook_url)

    media_storage = MediaStorage(settings.media_dir)
    media_storage.ensure_dir()
    connection_state = ConnectionState()
    messaging_client = build_messaging_client(settings)
    dispatcher = WebhookDispatcher(async_session_factory, default_url=settings.default_webhook_url)
    bridge = SessionBridge(
        client=messaging_client,
        state=connection_state,
        dispatcher=dispatcher,
        media_storage=media_storage,
        session_factory=async_session_factory,
        echo_log_delay=settings.sent_echo_log_delay_seconds,
    )

    app.state.media_storage = media_storage
    app.state.connection_state = connection_state
    app.state.messaging_client = messaging_client
    app.state.dispatcher = dispatcher
    app.state.started_at = time.monotonic()

    worker_tasks: list[asyncio.Task] = [asyncio.create_task(bridge.run())]
    if settings.messaging_auto_connect:
        worker_tasks.append(asyncio.create_task(
            delayed_connect(messaging_client, connection_state, settings.messaging_connect_delay_seconds)
        ))
    else:
        logger.info("Messaging auto-connect disabled (MESSAGING_AUTO_CONNECT=false)")

    yield

    logger.info("WhatsRelay shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    await asyncio.wait(worker_tasks, timeout=SHUTDOWN_GRACE_SECONDS)
    await asyncio.gather(*worker_tasks, return_exceptions=True)

    await bridge.drain()
    await dispatcher.drain()
    await messaging_client.close()
    await dispose_engine()
    logger.info("WhatsRelay shutdown complete")


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=fail(exc.message))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=fail(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "form"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content=fail(message))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=fail("Internal server error"))


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="WhatsRelay",
        description="WhatsApp Web dashboard backend and webhook relay",
        version="1.0.0",
        lifespan=lifespan,
    )

    origins = ["http://localhost:3000", "http://localhost:5173", "http://localhost:8080"]
    origins += [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Correlation-ID", "X-Webhook-Source", "Accept", "Origin"],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.add_exception_handler(RelayError, relay_error_handler)
    application.add_exception_handler(StarletteHTTPException, http_error_handler)
    application.add_exception_handler(RequestValidationError, request_validation_handler)
    application.add_exception_handler(Exception, unhandled_error_handler)

    application.include_router(api_router)
    application.mount(
        "/uploads",
        StaticFiles(directory=settings.media_dir, check_dir=False),
        name="uploads",
    )

    return application


app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("whatsrelay.main:app", host=settings.app_host, port=settings.app_port)


if __name__ == "__main__":
    run()
