import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load env from the project .env before settings are read
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from habitmomentum.core.config import settings, validate_config
from habitmomentum.core.database import create_all_tables
from habitmomentum.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from habitmomentum.core.logging import LOGGER_NAME, configure_logging
from habitmomentum.core.middleware.request_id import RequestIdMiddleware
from habitmomentum.core.validation import validate_env
from habitmomentum.api import cron, habits, health, metrics, momentum

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger(LOGGER_NAME)
    logger.info("Starting habit momentum backend...")
    app.state.startup_time = time.time()
    if settings.ENV != "production":
        # Production schemas are managed out of band
        create_all_tables()
    try:
        yield
    finally:
        logger.info("Stopping habit momentum backend...")


app = FastAPI(title="Habit Momentum", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ALLOW_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(habits.router)
app.include_router(momentum.router)
app.include_router(cron.router)
app.include_router(health.router)
app.include_router(metrics.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("habitmomentum.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
