"""FastAPI application factory.

Run with ``uvicorn --factory clubrank.main:create_app``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .config import API_PREFIX, rating_k_factor
from .exceptions import DomainException, ProblemDetail
from .identity import IdentityVerifier, JwtIdentityVerifier
from .locks import KeyedLocks
from .routers import clubs, matches
from .services import MatchService, RankingService
from .stores import StoreBackend, build_backend
from .utils.sentry import init_sentry

logger = logging.getLogger(__name__)


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    problem = ProblemDetail(
        type=exc.type,
        title=exc.title,
        detail=exc.detail,
        status=exc.status_code,
        code=exc.code,
    )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=problem.model_dump(),
        media_type="application/problem+json",
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    code = getattr(exc, "code", f"http_{exc.status_code}")
    problem = ProblemDetail(
        title=detail,
        detail=detail,
        status=exc.status_code,
        code=code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=problem.model_dump(),
        media_type="application/problem+json",
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception", exc_info=(type(exc), exc, exc.__traceback__))
    problem = ProblemDetail(
        title="Internal Server Error",
        status=500,
        detail=str(exc),
        code="internal_server_error",
    )
    return JSONResponse(
        status_code=500,
        content=problem.model_dump(),
        media_type="application/problem+json",
    )


def create_app(
    backend: Optional[StoreBackend] = None,
    verifier: Optional[IdentityVerifier] = None,
    *,
    k_factor: Optional[int] = None,
) -> FastAPI:
    """Build the API around an explicit store backend and identity verifier.

    Without a ``backend`` one is built from the environment and disposed on
    shutdown; a backend passed in stays owned by the caller.
    """

    init_sentry()

    owns_backend = backend is None
    if backend is None:
        backend = build_backend()
    if verifier is None:
        # Fail fast if JWT_SECRET is missing or weak
        verifier = JwtIdentityVerifier.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_backend:
            await backend.dispose()

    app = FastAPI(
        title="Club Rank API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.backend = backend
    app.state.verifier = verifier
    app.state.match_service = MatchService(
        backend,
        k_factor=k_factor if k_factor is not None else rating_k_factor(),
        locks=KeyedLocks(),
    )
    app.state.ranking_service = RankingService(backend)

    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/healthz", tags=["health"])  # Unprefixed for reverse proxy / uptime checks
    def root_healthz():
        return {"status": "ok"}

    api_router = APIRouter(prefix=API_PREFIX, tags=["meta"])

    @api_router.get("/healthz", tags=["health"])
    def api_healthz():
        return {"status": "ok"}

    @api_router.get("")
    def api_root():
        return {"message": "Club Rank API. See /docs."}

    v0_router = APIRouter(prefix="/v0")
    v0_router.include_router(clubs.router)
    v0_router.include_router(matches.router)

    api_router.include_router(v0_router)
    app.include_router(api_router)

    logger.info("API_PREFIX=%r", API_PREFIX)
    return app
