import sys
import logging
from contextlib import asynccontextmanager
from datetime import datetime

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from onboarding import __version__
from onboarding.api.dependencies import get_schema
from onboarding.api.middleware import setup_middleware
from onboarding.api.routes import router
from onboarding.config import settings
from onboarding.utils.validation import ValidationError

logger = logging.getLogger(__name__)


def setup_logging():
    """Configure application logging"""
    log_level = settings.LOG_LEVEL.upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logger.info(f"Logging configured at {log_level} level")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Onboarding Questionnaire service...")

    try:
        schema = get_schema()
        logger.info(f"Questionnaire ready: {', '.join(schema.department_ids())}")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down...")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Onboarding Questionnaire",
        description="Multi-department onboarding form engine",
        version=__version__,
        lifespan=lifespan
    )

    setup_middleware(app)
    app.include_router(router, prefix="/api/v1", tags=["Onboarding"])

    @app.get("/")
    async def root():
        return {
            "service": "Onboarding Questionnaire",
            "version": __version__,
            "docs": "/docs",
            "health": "/api/v1/health",
        }

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        logger.warning(f"Validation error: {exc}")
        return JSONResponse(
            status_code=400,
            content={
                "error": str(exc),
                "details": exc.errors,
                "timestamp": datetime.now().isoformat()
            }
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unexpected error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "timestamp": datetime.now().isoformat()
            }
        )

    return app


setup_logging()
app = create_app()


def main():
    """Entry point of the onboarding-server script"""
    logger.info(f"Starting server on {settings.HOST}:{settings.PORT}")
    uvicorn.run(
        "onboarding.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level="debug" if settings.DEBUG else settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
