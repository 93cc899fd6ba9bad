# Essential imports
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Importing models registers every table on Base.metadata
import models  # noqa: F401
from core.config import settings
from core.database import close_db, init_db
from core.errors import AuthError, InternalError
from core.logging_config import setup_logging, get_logger
from middleware import RequestIDMiddleware, get_request_id
from routers import auth, users
from services.cleanup import create_cleanup_scheduler
from services.email_service import EmailService
from utils.logger import log_request

# Rate limiter imports
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from middleware.rate_limiter import limiter

setup_logging(
    log_level=settings.LOG_LEVEL,
    log_dir=settings.LOG_DIR
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.validate_jwt_config()
    await init_db()

    scheduler = create_cleanup_scheduler()
    scheduler.start()
    logger.info("Application startup complete", extra={"event": "startup"})

    yield

    scheduler.shutdown(wait=False)
    await close_db()
    logger.info("Application shutting down", extra={"event": "shutdown"})


app = FastAPI(
    title="Auth API",
    description="Credential lifecycle: login, refresh, logout, password reset and email verification",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.state.email_service = EmailService(settings)


# Refresh cookie is sent cross-origin from the frontend, so credentials must be allowed
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code and duration.
    """
    start_time = time.perf_counter()

    response = await call_next(request)

    duration = (time.perf_counter() - start_time) * 1000
    client_ip = request.client.host if request.client else "unknown"

    log_request(
        logger,
        request.method,
        request.url.path,
        response.status_code,
        duration,
        extra={
            "client_ip": client_ip,
            "user_agent": request.headers.get("user-agent"),
            "authorization": request.headers.get("authorization"),
        }
    )

    return response


app.add_middleware(RequestIDMiddleware)


@app.get("/health")
async def health_check():
    logger.debug("Health check requested")
    return {"status": "Healthy"}


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    """
    Map the error taxonomy to responses. Messages are already generic;
    the log line carries the detail.
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{type(exc).__name__}: {exc.message}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "status_code": exc.status_code,
            "error_code": exc.error_code,
            "request_id": get_request_id(request)
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.error_code},
        headers=exc.headers or None
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch all unhandled exceptions, log them with a stack trace and return a
    generic error that exposes no internals.
    """
    if isinstance(exc, (HTTPException, RequestValidationError)):
        raise exc

    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "request_id": get_request_id(request)
        },
        exc_info=True
    )

    error = InternalError()
    return JSONResponse(
        status_code=error.status_code,
        content={"detail": error.message, "code": error.error_code}
    )


app.include_router(auth.router)
app.include_router(users.router)


app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
