"""
FastAPI application
Hanami Spa - scheduling and voucher backend
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .database import init_db
from .exceptions import BookingError
from .routes.appointments import router as appointments_router
from .routes.vouchers import router as vouchers_router

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(f"Hanami Spa API started ({settings.ENVIRONMENT})")
    yield


def create_app(create_tables: bool = True) -> FastAPI:
    app = FastAPI(
        title="Hanami Spa API",
        description="Appointment scheduling and gift voucher ledger",
        version="1.0.0",
        lifespan=lifespan if create_tables else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.ENVIRONMENT == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError):
        if exc.http_status >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.code} - {exc.message}")
        return JSONResponse(
            status_code=exc.http_status,
            content={"detail": exc.message, "code": exc.code}
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(appointments_router)
    app.include_router(vouchers_router)

    return app


app = create_app()
