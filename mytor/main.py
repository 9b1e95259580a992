from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mytor.api import dashboard, otp, public
from mytor.api.deps import get_business_directory
from mytor.core.config import settings
from mytor.core.exceptions import (
    BookingEngineError,
    CodeMismatchError,
    ConflictError,
    ExpiredCodeError,
    NotFoundError,
    RateLimitError,
    TransientError,
    ValidationError,
    VerificationRequiredError,
)
from mytor.core.logger import logger, setup_logging

setup_logging()

# Most specific first: VerificationRequiredError is also a ValidationError
STATUS_CODES = [
    (VerificationRequiredError, 401),
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ExpiredCodeError, 410),
    (CodeMismatchError, 400),
    (RateLimitError, 429),
    (TransientError, 503),
]


def status_code_for(exc: BookingEngineError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"🚀 Starting {settings.PROJECT_NAME} ({settings.ENVIRONMENT}, store={settings.STORE_PROVIDER})")
    get_business_directory()
    yield
    # Shutdown
    logger.info("🛑 Shutting down backend")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan
)


@app.exception_handler(BookingEngineError)
async def booking_error_handler(request: Request, exc: BookingEngineError):
    status_code = status_code_for(exc)
    content = {"error": exc.kind, "message": exc.reason}
    headers = None

    if isinstance(exc, RateLimitError):
        content["retry_after"] = exc.retry_after
        headers = {"Retry-After": str(exc.retry_after)}
    if isinstance(exc, ConflictError) and exc.conflicting_start:
        content["conflicting_start"] = exc.conflicting_start

    if status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} -> {status_code}: {exc.reason}")
    else:
        logger.info(f"↩️ {request.method} {request.url.path} -> {status_code} {exc.kind}: {exc.reason}")
    return JSONResponse(status_code=status_code, content=content, headers=headers)


# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"🔥 UNHANDLED ERROR: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "An unexpected error occurred. Please try again later."}
    )


# Include routers
app.include_router(public.router)
app.include_router(otp.router)
app.include_router(dashboard.router)


@app.get("/health")
async def health_check():
    return {"status": "ok", "environment": settings.ENVIRONMENT, "timestamp": datetime.now().isoformat()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("mytor.main:app", host="0.0.0.0", port=settings.PORT, reload=True)
