import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Every model module must be imported before create_all
from . import (
    models,  # noqa: F401
    models_delivery,  # noqa: F401
    models_payment,  # noqa: F401
)
from .config import ALLOWED_ORIGINS
from .database import Base, engine
from .domain.adjustments.router import router as adjustments_router
from .domain.bank_accounts.router import router as bank_accounts_router
from .domain.completion.router import router as completion_router
from .domain.deliveries.router import router as deliveries_router
from .domain.jobs.router import router as jobs_router
from .domain.settlement.router import payments_router
from .domain.settlement.router import router as payouts_router
from .domain.webhooks.router import router as webhooks_router
from .errors import UpstreamProviderError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Courier and payment clients log every request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

SLOW_REQUEST_SECONDS = 1.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 FixBudi API starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("✅ Ledger tables ready")
    except Exception as e:
        # Several workers may race to create the schema
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Ledger tables already exist (created by another worker)")
        else:
            logger.error(f"❌ Failed to create ledger tables: {e}")

    yield
    logger.info("FixBudi API shutting down...")


app = FastAPI(
    title="FixBudi API",
    description="Appliance repair jobs, courier legs and repair center settlement",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """A missing or malformed Authorization header is an authentication failure, not a 422"""
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(f"⚠️ Missing or invalid Authorization header on {request.url.path}")
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"⚠️ Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


@app.exception_handler(UpstreamProviderError)
async def upstream_provider_handler(request: Request, exc: UpstreamProviderError):
    logger.error(
        f"❌ {exc.provider} failed at step '{exc.step}' ({exc.kind}) during {request.method} {request.url.path}"
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "provider": exc.provider, "step": exc.step, "kind": exc.kind},
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"❌ {request.method} {request.url.path} - Error: {str(e)}")
        raise

    duration = time.time() - start_time
    if duration > SLOW_REQUEST_SECONDS:
        logger.warning(f"🐌 Slow request: {request.method} {request.url.path} took {duration:.2f}s")
    return response


logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
)

for router in (
    jobs_router,
    adjustments_router,
    completion_router,
    payments_router,
    deliveries_router,
    payouts_router,
    bank_accounts_router,
    webhooks_router,
):
    app.include_router(router)


@app.get("/")
def root():
    return {"message": "FixBudi API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
