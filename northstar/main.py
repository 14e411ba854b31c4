import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models to ensure they're registered with SQLAlchemy Base
# This is needed for relationships between models in different files
from . import (
    models,  # noqa: F401
    models_icloud,  # noqa: F401
    models_invoice,  # noqa: F401
)
from .cache import get_redis_client
from .config import ALLOWED_ORIGINS, BUSINESS_NAME
from .database import Base, engine
from .domain.billing.router import router as billing_router
from .domain.scheduling.router import router as scheduling_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    try:
        if get_redis_client() is not None:
            logger.info("Redis connection established")
        else:
            logger.info("Redis not configured - external calendar lookups will not be cached")
    except Exception as e:
        logger.warning(f"Redis connection failed - calendar cache will operate in fail-open mode: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title=f"{BUSINESS_NAME} API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log request validation failures and return them as 422"""
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors may carry exception objects in ctx; keep them printable"""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise
    elapsed_ms = (time.time() - start) * 1000
    logger.info(f"{request.method} {request.url.path} - {response.status_code} ({elapsed_ms:.0f}ms)")
    return response


# CORS Configuration
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(scheduling_router)
app.include_router(billing_router)


@app.get("/")
def root():
    return {"message": f"{BUSINESS_NAME} API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
