import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.database import engine, SessionLocal
from app.errors import MarketplaceError
from app import models

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

CORS_ALLOW_HEADERS = [
    "authorization",
    "x-client-info",
    "apikey",
    "content-type",
    "x-razorpay-signature",
    "x-razorpay-event-id",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables
    models.Base.metadata.create_all(bind=engine)
    # Seed a demo catalog if empty
    if settings.seed_demo_data:
        db = SessionLocal()
        try:
            count = db.query(models.Service).count()
        finally:
            db.close()
        if count == 0:
            import subprocess
            import sys
            subprocess.run([sys.executable, "scripts/seed_catalog.py"], check=False)
    logger.info("Marketplace payments API started")
    yield


app = FastAPI(
    title="Marketplace Payments API",
    description="Payment capture, gateway webhooks, refunds and review notifications",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=CORS_ALLOW_HEADERS,
)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error in {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
def health_check():
    return {"status": "ok", "service": "marketplace-payments-api"}


from app.routers import payments, refunds, reviews, ledger  # noqa: E402
app.include_router(payments.router, prefix="/api/v1/payments", tags=["payments"])
app.include_router(refunds.router, prefix="/api/v1/refunds", tags=["refunds"])
app.include_router(reviews.router, prefix="/api/v1/reviews", tags=["reviews"])
app.include_router(ledger.router, prefix="/api/v1", tags=["ledger"])
