"""FastAPI backend for ReplyGate: inbound enqueue, queue operations, prompts, approvals."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from replygate.errors import (
    AiDisabledError,
    DuplicatePromptError,
    MessagingError,
    NoActivePromptError,
    NotFoundError,
    OptedOutError,
    ProviderError,
    ReplyGateError,
    StateConflictError,
)
from replygate.services import Services, build_services
from backend.auth import is_public, validate_token

logger = logging.getLogger(__name__)

# Most specific first
_ERROR_STATUS: list[tuple[type[ReplyGateError], int]] = [
    (NotFoundError, 404),
    (StateConflictError, 409),
    (DuplicatePromptError, 409),
    (OptedOutError, 409),
    (AiDisabledError, 422),
    (NoActivePromptError, 422),
    (ProviderError, 502),
    (MessagingError, 502),
]


def error_status(exc: ReplyGateError) -> int:
    for error_type, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return 500


class HealthResponse(BaseModel):
    status: str
    store: str
    queue: str


def create_app(services: Services | None = None) -> FastAPI:
    """Build the API around ``services`` (default: from environment settings)."""
    services = services or build_services()
    settings = services.settings
    logging.basicConfig(level=settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        services.queue.close()

    app = FastAPI(
        title="ReplyGate API",
        description="Safety-gated AI reply pipeline.",
        version="0.3.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.api_tokens = settings.api_token_set
    if not app.state.api_tokens:
        logger.warning("REPLYGATE_API_TOKENS is empty: every /api/ route will answer 401")

    # -----------------------------------------------------------------------
    # Authentication middleware: reject unauthenticated requests to /api/
    # -----------------------------------------------------------------------
    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        path = request.url.path
        if request.method == "OPTIONS" or is_public(path) or not path.startswith("/api/"):
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        if not auth_header.lower().startswith("bearer "):
            return Response(
                content='{"detail":"Authentication required"}',
                status_code=401,
                media_type="application/json",
                headers={"WWW-Authenticate": "Bearer"},
            )
        token = auth_header.split(" ", 1)[1].strip()
        if not validate_token(token, request.app.state.api_tokens):
            return Response(
                content='{"detail":"Invalid token"}',
                status_code=401,
                media_type="application/json",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return await call_next(request)

    # CORS last so it is the outermost middleware and 401s carry its headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ReplyGateError)
    async def replygate_error_handler(request: Request, exc: ReplyGateError):
        code = error_status(exc)
        if code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=code, content={"detail": str(exc)})

    @app.get("/health", response_model=HealthResponse)
    @app.get("/api/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(
            status="ok",
            store=settings.replygate_store_backend,
            queue=settings.replygate_queue_backend,
        )

    from backend.routes import generations, inbound, jobs, prompts

    app.include_router(inbound.router, prefix="/api", tags=["inbound"])
    app.include_router(jobs.router, prefix="/api", tags=["jobs"])
    app.include_router(generations.router, prefix="/api", tags=["generations"])
    app.include_router(prompts.router, prefix="/api", tags=["prompts"])

    return app
