import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DataError, IntegrityError

from grantflow.api.v1.router import api_router
from grantflow.core.config import settings
from grantflow.core.errors import DomainError
from grantflow.core.logging import setup_logging
from grantflow.db.init_db import init_database
from grantflow.db.session import engine

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL)

    tags_metadata = [
        {"name": "investments", "description": "Recording, confirming and reclaiming investments"},
        {"name": "applications", "description": "Funding progress and milestone creation"},
        {"name": "milestones", "description": "Milestone updates, submission and review"},
        {"name": "programs", "description": "Program phases, funding settlement and host fee claims"},
    ]

    try:
        settings.validate_security()
    except ValueError as e:
        logger.warning("[SECURITY WARNING] %s", e)

    app = FastAPI(
        title="Grantflow",
        version="1.0.0",
        description="Funding programs, investments, milestones and fee claims",
        openapi_url="/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=tags_metadata,
        redirect_slashes=False,
    )

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        logger.info("%s at %s: %s", exc.code, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        """Handle database integrity errors (unique constraints, foreign keys)"""
        error_msg = str(exc.orig) if exc.orig else str(exc)
        if "unique" in error_msg.lower():
            detail = "The record already exists."
            status_code = 409
        elif "foreign key" in error_msg.lower():
            detail = "The operation references a record that does not exist."
            status_code = 400
        else:
            detail = "Database error."
            status_code = 400
        logger.warning("Integrity error at %s: %s", request.url.path, error_msg)
        return JSONResponse(status_code=status_code, content={"detail": detail})

    @app.exception_handler(DataError)
    async def data_error_handler(request: Request, exc: DataError):
        return JSONResponse(
            status_code=400,
            content={"detail": "The submitted data is invalid (wrong type or value too long)."},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Flatten pydantic validation errors into field: message strings"""
        errors = []
        for error in exc.errors():
            field = ".".join(str(x) for x in error["loc"] if x != "body")
            errors.append(f"{field}: {error['msg']}")
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": errors},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error at %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal Server Error. Please contact support."},
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"],
        allow_headers=["*"],
        max_age=3600,
    )

    @app.on_event("startup")
    async def on_startup() -> None:
        await init_database(engine)

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema
        openapi_schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        openapi_schema.setdefault("components", {}).setdefault("securitySchemes", {}).update({
            "bearerAuth": {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
            }
        })
        openapi_schema["security"] = [{"bearerAuth": []}]
        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi  # type: ignore[assignment]

    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "message": "Grantflow is running"}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
