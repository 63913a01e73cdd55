from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import structlog
from prometheus_fastapi_instrumentator import Instrumentator

from app.api import database, itinerary, points, share, trips, users
from app.api.deps import limiter
from app.core.directions import DirectionsClient
from app.core.exceptions import TripPlannerError
from app.core.geocoding import Geocoder
from app.core.logging import configure_logging
from app.core.settings import settings
from app.db.session import db_manager, database_health_check
from app.middleware.logging import RequestLoggingMiddleware

configure_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)

logger = structlog.get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting application...")
    try:
        await db_manager.initialize()
        if settings.DB_CREATE_TABLES:
            await db_manager.init_db()
        logger.info("Database manager initialized successfully")
    except Exception:
        logger.exception("Failed to initialize database manager")
        raise

    app.state.directions_client = DirectionsClient(settings)
    app.state.geocoder = Geocoder(settings)

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await app.state.directions_client.aclose()
    try:
        await db_manager.close()
        logger.info("Database connections closed successfully")
    except Exception as e:
        logger.error("database_cleanup_failed", error=str(e))


app = FastAPI(
    title="Trip Planner API",
    description="Trips, day itineraries, route composition and public share links",
    version=VERSION,
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Instrumentator().instrument(app).expose(app, endpoint="/metrics")


@app.exception_handler(TripPlannerError)
async def trip_planner_exception_handler(request: Request, exc: TripPlannerError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_rejected",
        code=exc.code,
        status_code=exc.status_code,
        error=exc.message,
        path=request.url.path,
    )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, **exc.context},
        headers=headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


@app.get("/")
def health_check():
    return {"status": "API active", "version": VERSION}


@app.get("/health")
async def health_check_detailed():
    """Service health including database connectivity"""
    db_health = await database_health_check()
    db_status = db_health["status"]
    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "version": VERSION,
        "components": {
            "database": db_status,
            "route_provider": "configured" if settings.GOOGLE_MAPS_API_KEY else "unconfigured",
            "api": "healthy"
        },
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


prefix = settings.API_PREFIX

app.include_router(users.router, prefix=prefix, tags=["users"])
app.include_router(trips.router, prefix=prefix)
app.include_router(points.router, prefix=prefix)
app.include_router(itinerary.router, prefix=prefix)
app.include_router(share.router, prefix=prefix)
app.include_router(share.public_router, prefix=prefix)
app.include_router(database.router, prefix=f"{prefix}/database", tags=["database"])
