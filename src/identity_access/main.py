from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import time

from identity_access.auth.authorization import AuthorizationEngine
from identity_access.auth.jwt import TokenService
from identity_access.auth.verification import OneTimeCodeVerifier
from identity_access.configs.settings import Settings, get_settings
from identity_access.configs.logging_config import get_logger, setup_logging
from identity_access.errors import AppError
from identity_access.events.handlers import register_default_handlers
from identity_access.events.publisher import EventPublisher
from identity_access.repositories.code_store import (
    InMemoryVerificationCodeStore,
    RedisVerificationCodeStore,
    VerificationCodeStore,
)
from identity_access.repositories.credential_store import CredentialStore
from identity_access.repositories.mongo import get_mongo_client, get_mongo_db
from identity_access.repositories.mongo_credential_store import MongoCredentialStore
from identity_access.repositories.redis_client import redis_client
from identity_access.routers.auth_router import router as auth_router
from identity_access.routers.health_router import router as health_router
from identity_access.routers.iam_router import router as iam_router
from identity_access.routers.user_router import router as user_router
from identity_access.services.iam_service import IamService
from identity_access.services.session_service import SessionService
from identity_access.services.user_service import UserService
from identity_access.utils.response import failure
from identity_access.webclient.TelegramBotClient import TelegramNotifier
from identity_access.webclient.notifier import DisabledNotifier, Notifier

log = get_logger(__name__)


def wire_services(
    app: FastAPI,
    settings: Settings,
    *,
    store: CredentialStore,
    code_store: VerificationCodeStore,
    notifier: Notifier,
    events: EventPublisher,
) -> None:
    """Build the service graph on ``app.state``; infrastructure is passed in."""
    tokens = TokenService(settings)
    verifier = OneTimeCodeVerifier(
        code_store,
        notifier,
        ttl_seconds=settings.otp_ttl_seconds,
        max_attempts=settings.otp_max_attempts,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.events = events
    app.state.notifier = notifier
    app.state.token_service = tokens
    app.state.authorization = AuthorizationEngine(store)
    app.state.session_service = SessionService(store, tokens, verifier, notifier, events)
    app.state.iam_service = IamService(store, events)
    app.state.user_service = UserService(store, events)


def create_app() -> FastAPI:
    app = FastAPI(title="identity_access", version="0.1.0")
    settings: Settings = get_settings()
    # Normalize CORS origins from settings (.env can provide a comma-separated string)
    raw_origins = settings.CORS_ORIGINS
    if isinstance(raw_origins, str):
        origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    elif isinstance(raw_origins, (list, tuple, set)):
        origins = list(raw_origins)
    else:
        origins = []
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        start = time.perf_counter()
        method = request.method
        path = request.url.path
        request_id = request.headers.get("x-request-id") or request.headers.get("x-correlation-id")

        log.info("request.start method=%s path=%s request_id=%s", method, path, request_id)
        status_code = "unknown"
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            log.info(
                "request.end method=%s path=%s status=%s request_id=%s elapsed_ms=%s",
                method,
                path,
                status_code,
                request_id,
                elapsed_ms,
            )
        return response

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(user_router)
    app.include_router(iam_router)

    @app.exception_handler(AppError)
    async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
        log.info(
            "request.error type=%s status=%s message=%s",
            type(exc).__name__,
            exc.http_status,
            exc.message,
        )
        return JSONResponse(status_code=exc.http_status, content=failure(exc.message))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
        log.exception("Unhandled error: %s", str(exc))
        return JSONResponse(status_code=500, content=failure("internal server error"))

    @app.on_event("startup")
    async def startup() -> None:
        settings: Settings = get_settings()
        setup_logging(settings.log_level)

        mongo_client = get_mongo_client(settings)
        mongo_db = get_mongo_db(mongo_client, settings)
        app.state.mongo_client = mongo_client
        store = MongoCredentialStore(mongo_db)
        await store.ensure_indexes()

        if settings.otp_store == "redis":
            code_store = RedisVerificationCodeStore(
                await redis_client.connect(settings), prefix=settings.otp_key_prefix
            )
        else:
            code_store = InMemoryVerificationCodeStore()

        if settings.telegram_bot_token:
            notifier = TelegramNotifier(
                settings.telegram_bot_token,
                api_url=settings.telegram_api_url,
                timeout=settings.telegram_timeout_seconds,
            )
        else:
            log.warning("startup.telegram_disabled reason=no_bot_token")
            notifier = DisabledNotifier()

        events = EventPublisher(settings)
        register_default_handlers(events)
        # Broker outages must not block startup; the supervisor keeps retrying.
        events.start()

        wire_services(
            app, settings, store=store, code_store=code_store, notifier=notifier, events=events
        )
        log.info("startup.done otp_store=%s", settings.otp_store)

    @app.on_event("shutdown")
    async def shutdown() -> None:
        log.info("shutdown.begin")
        events = getattr(app.state, "events", None)
        if events is not None:
            await events.close()
        notifier = getattr(app.state, "notifier", None)
        if isinstance(notifier, TelegramNotifier):
            await notifier.aclose()
        await redis_client.close()
        mongo_client = getattr(app.state, "mongo_client", None)
        if mongo_client is not None:
            mongo_client.close()
        log.info("shutdown.done")

    return app


app = create_app()
