import logging
from datetime import datetime
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from redis.asyncio import Redis

from saveplate.core.config import settings
from saveplate.core.cache import RedisCache
from saveplate.core.database import init_db
from saveplate.core.exceptions import AuthError
from saveplate.core.logging_config import setup_logging
from saveplate.core.security import TokenCodec
from saveplate.api.endpoints import auth, google_auth, health

# Configure logging
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_logs=settings.JSON_LOGS,
    environment=settings.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Startup fails if JWT_SECRET is missing.
    """
    # Startup
    logger.info("Starting up SavePlate API...")
    init_db()

    app.state.token_codec = TokenCodec(settings.JWT_SECRET, settings.JWT_ALGORITHM)

    app.state.redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    app.state.cache = RedisCache(app.state.redis)
    logger.info(f"Redis client configured for {settings.REDIS_HOST}:{settings.REDIS_PORT}")

    yield

    # Shutdown
    logger.info("Shutting down SavePlate API...")
    await app.state.redis.aclose()


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Authentication and session tokens for the SavePlate marketplace",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    body = exc.to_dict()
    body["timestamp"] = datetime.utcnow().isoformat() + "Z"
    body["path"] = request.url.path
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing input is a 400 in the same shape as every other error."""
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{field}: {error.get('msg')}" if field else error.get("msg", "Invalid request"))
    logger.warning(f"Rejected request to {request.url.path}: {problems}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "statusCode": status.HTTP_400_BAD_REQUEST,
            "message": "; ".join(problems) or "Invalid request",
            "error": "BadRequestError",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "path": request.url.path,
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "statusCode": 500,
            "message": "Internal server error",
            "error": "InternalServerError",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "path": request.url.path,
        },
    )


# Include routers
app.include_router(auth.router)
app.include_router(google_auth.router)
app.include_router(health.router)


@app.get("/")
async def root():
    """Root endpoint - API health check"""
    return {
        "message": "SavePlate API",
        "version": "1.0.0",
        "status": "healthy"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=3001,
        reload=True,  # Enable auto-reload during development
        log_level="info"
    )
