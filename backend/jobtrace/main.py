from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from jobtrace.core.config import settings
from jobtrace.core.errors import StorageError, ValidationError
from jobtrace.core.logging import configure_logging
from jobtrace.api.routes import router as api_router


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on {} {}: {}", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Job Trace API",
        version="1.0.0",
        docs_url="/event-trace-api/docs",
        redoc_url="/event-trace-api/redoc",
        openapi_url="/event-trace-api/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.include_router(api_router, prefix="/event-trace-api")

    return app


app = create_app()
