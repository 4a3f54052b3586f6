import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import health
from app.api.v1 import contact
from app.core.config import settings
from app.core.email import verify_transport
from app.core.errors import register_exception_handlers
from app.core.logging import setup_logging
from app.core.middleware import (
    BodySizeLimitMiddleware,
    LatencyMonitorMiddleware,
    RequestIdMiddleware,
    expand_origin_variants,
)
from app.core.security_headers import SecurityHeadersMiddleware
from app.db.session import init_db

# Setup logging
logger = setup_logging()


tags_metadata = [
    {
        "name": "contact",
        "description": "**Contact** - Public contact form: submit, per-sender stats and service health.",
    },
    {
        "name": "admin",
        "description": "**Admin** - Submission analytics. **Requires API key.**",
    },
    {
        "name": "health",
        "description": "**Health** - Liveness, readiness and dependency probes.",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info(f"Starting {settings.PROJECT_NAME} v{settings.VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    if settings.DB_INIT_ON_STARTUP:
        # Failure is logged inside; the limiter then answers per its failure mode
        await asyncio.to_thread(init_db)

    email_ready = await asyncio.to_thread(verify_transport)
    logger.info(f"Email transport ready: {email_ready}")

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## Portfolio Contact API

Receives contact form submissions, screens them for spam, limits repeat
senders and emails a confirmation to the sender and a notification to the
site owner.
    """,
    openapi_tags=tags_metadata,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
)

# Middleware runs in reverse order of registration: request ID first
app.add_middleware(
    BodySizeLimitMiddleware,
    max_body_bytes=settings.MAX_BODY_BYTES,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=expand_origin_variants(settings.ALLOWED_ORIGINS),
    allow_credentials=True,
    allow_methods=settings.ALLOWED_METHODS,
    allow_headers=settings.ALLOWED_HEADERS,
    expose_headers=settings.EXPOSED_HEADERS,
    max_age=settings.CORS_MAX_AGE,
)

app.add_middleware(SecurityHeadersMiddleware)

# Latency Monitoring (SLO Check)
app.add_middleware(LatencyMonitorMiddleware)

# Request ID Tracing
app.add_middleware(RequestIdMiddleware)

register_exception_handlers(app)

app.include_router(
    contact.router,
    prefix=f"{settings.API_PREFIX}/contact",
    tags=["contact"],
)

app.include_router(
    contact.admin_router,
    prefix=f"{settings.API_PREFIX}/admin/contact",
    tags=["admin"],
)

app.include_router(
    health.router,
    prefix=f"{settings.API_PREFIX}/health",
    tags=["health"],
)


# Same payload as /api/health, at the root for load balancers
app.add_api_route("/health", health.service_status, methods=["GET"], tags=["health"])


@app.get("/", include_in_schema=False)
async def root():
    return {
        "message": settings.PROJECT_NAME,
        "docs": "/docs",
        "health": "/health",
    }
