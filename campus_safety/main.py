"""
Campus Safety API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups,
maps domain errors to HTTP responses, and manages the MongoDB
connection lifecycle.

Run locally:
    uvicorn campus_safety.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from campus_safety import __version__
from campus_safety.core import database
from campus_safety.core.config import settings
from campus_safety.core.errors import AuthError, CampusSafetyError
from campus_safety.core.rate_limit import limiter
from campus_safety.routes.auth import router as auth_router
from campus_safety.routes.health import router as health_router
from campus_safety.routes.heatmap import router as heatmap_router
from campus_safety.routes.incidents import router as incidents_router
from campus_safety.routes.users import router as users_router

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Code before `yield` runs on startup; code after runs on shutdown."""
    logger.info("Starting Campus Safety API (env: %s)", settings.environment)
    # Module reference so tests can patch the connect / close functions
    await database.connect_to_mongo()
    yield
    logger.info("Shutting down Campus Safety API")
    await database.close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Campus Safety API",
    description=(
        "Campus incident reporting: students submit safety reports, staff triage "
        "them, and a per-location heatmap shows where incidents cluster."
    ),
    version=__version__,
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Routes opt-in with @limiter.limit(...) + a `request: Request` parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ─── Domain errors ─────────────────────────────────────────────────────────────
@app.exception_handler(CampusSafetyError)
async def campus_safety_error_handler(request: Request, exc: CampusSafetyError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if type(exc) is AuthError else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


# ─── Middleware ─────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(incidents_router)
app.include_router(heatmap_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "Campus Safety API",
        "version": __version__,
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
