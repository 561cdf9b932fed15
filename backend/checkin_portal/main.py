"""
Event Check-in Portal - FastAPI Application Entry Point.

This module:
1. Sets up structured JSON logging
2. Builds the record store (sql, postgrest or memory) at startup
3. Implements request ID middleware (X-Request-ID header)
4. Registers the students, events, check-in and token routes
5. Provides health check endpoint

Layout:
- routes/: API endpoint handlers
- services/: token issuing, check-in flow, registration
- store/: record store backends
- models/: SQLAlchemy ORM models (sql backend and migrations)
"""

import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from checkin_portal import __version__
from checkin_portal.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from checkin_portal.routes import checkin, events, students, tokens
from checkin_portal.store import RecordStore, build_store

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the record store on startup and close it on shutdown."""
    owned = getattr(app.state, "store", None) is None
    if owned:
        app.state.store = build_store()

    store = app.state.store
    if store.name == "sql":
        from checkin_portal.database import create_tables
        if store.engine.url.get_backend_name() == "sqlite":
            logger.info("Using SQLite, creating tables directly")
            create_tables(store.engine)

    log_with_context(logger, "INFO", "Record store ready: {}".format(store.name))
    try:
        yield
    finally:
        if owned:
            await store.close()
            app.state.store = None


def create_app(store: RecordStore = None) -> FastAPI:
    """
    Build the application. Pass a store to use it instead of the one
    RECORD_STORE selects.
    """
    app = FastAPI(
        title="Event Check-in Portal",
        description=(
            "Student registration with QR codes, event registration, "
            "and idempotent door check-in by scanning those codes."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    if store is not None:
        app.state.store = store

    # ──────────────────────────────────────────────────────────
    # CORS: the browser front end and scanner stations call us
    # from another origin
    # ──────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"]
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """
        Tag every request with a UUID, expose it as X-Request-ID and log
        start and completion with latency.
        """
        req_id = request.headers.get("x-request-id") or generate_request_id()
        request_id_var.set(req_id)
        start_time = time.time()

        log_with_context(logger, "INFO",
            f"Request started: {request.method} {request.url.path}",
            context={"request_id": req_id},
            extra_data={
                "ip": request.client.host if request.client else "unknown",
                "user_agent": request.headers.get("user-agent", ""),
                "query_params": dict(request.query_params)
            })

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        response.headers["X-Request-ID"] = req_id

        log_with_context(logger, "INFO",
            f"Request completed: {request.method} {request.url.path} → {response.status_code}",
            context={"request_id": req_id},
            extra_data={
                "duration_ms": round(duration_ms, 2),
                "status_code": response.status_code
            })
        return response

    app.include_router(students.router, tags=["Students"])
    app.include_router(events.router, tags=["Events"])
    app.include_router(checkin.router, tags=["Check-in"])
    app.include_router(tokens.router, tags=["Tokens"])

    @app.get("/health", tags=["Health"])
    def health_check(request: Request):
        """Liveness probe for container health checks."""
        store = getattr(request.app.state, "store", None)
        return {
            "status": "healthy",
            "service": "checkin-portal",
            "version": __version__,
            "record_store": store.name if store else None,
        }

    @app.get("/", tags=["Root"])
    def root():
        """Root endpoint with API information."""
        return {
            "service": "Event Check-in Portal",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "register_student": "POST /api/students",
                "students": "GET /api/students",
                "student_qr": "GET /api/students/{id}/qr.png",
                "events": "GET|POST /api/events",
                "event_registration": "POST /api/events/{id}/registrations",
                "checkin": "POST /api/checkin",
                "reissue_tokens": "POST /api/tokens/reissue"
            }
        }

    return app


app = create_app()
