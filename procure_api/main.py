from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from procure_api.config import DEFAULT_JWT_SECRET, settings
from procure_api.database import init_db, close_db, get_db
from procure_api.exceptions import ProcureError
from procure_api.logging_config import setup_logging
from procure_api.middleware.correlation import CorrelationIdMiddleware

# Import models so they are registered with Base.metadata
import procure_api.models  # noqa: F401

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("starting_procure_api", env=settings.ENVIRONMENT)
    if settings.is_production and settings.JWT_SECRET_KEY == DEFAULT_JWT_SECRET:
        raise RuntimeError("JWT_SECRET_KEY must be set in production")
    await init_db()
    yield
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers: every error leaves as
# {"error": {"code": "...", "message": "...", "details": {...}}}
# ---------------------------------------------------------------------------

@app.exception_handler(ProcureError)
async def procure_error_handler(request: Request, exc: ProcureError) -> JSONResponse:
    logger.info(
        "request_rejected",
        code=exc.code,
        status_code=exc.status_code,
        message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("integrity_conflict", path=request.url.path, error=str(exc.orig))
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "error": {
                "code": "CONFLICT",
                "message": "The change conflicts with existing data",
            }
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, str):
        detail = {"error": {"code": "HTTP_ERROR", "message": detail}}
    elif isinstance(detail, dict) and "error" not in detail:
        detail = {"error": detail}
    return JSONResponse(status_code=exc.status_code, content=detail, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": [
                    {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                    for e in exc.errors()
                ],
            }
        },
    )


app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Request-ID"],
)


@app.get("/health", tags=["System"])
async def health(response: Response, db: AsyncSession = Depends(get_db)):
    health_status = {"status": "healthy", "version": settings.APP_VERSION, "checks": {}}

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["db"] = "ok"
    except SQLAlchemyError as e:
        logger.error("health_check_db_failed", error=str(e))
        health_status["checks"]["db"] = "error"
        health_status["status"] = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return health_status


# --- Routers ---
from procure_api.routes.auth import router as auth_router  # noqa: E402
from procure_api.routes.requests import router as requests_router  # noqa: E402
from procure_api.routes.dashboard import router as dashboard_router  # noqa: E402
from procure_api.routes.notifications import router as notifications_router  # noqa: E402
from procure_api.routes.departments import router as departments_router  # noqa: E402
from procure_api.routes.department_types import router as department_types_router  # noqa: E402
from procure_api.routes.users import router as users_router  # noqa: E402
from procure_api.routes.system_parameters import router as parameters_router  # noqa: E402
from procure_api.routes.catalog import (  # noqa: E402
    acquisition_types_router,
    contract_types_router,
    exclusions_router,
    item_categories_router,
    item_types_router,
    items_router,
)

app.include_router(auth_router, prefix="/api/v1/auth", tags=["Auth"])
app.include_router(requests_router, prefix="/api/v1/requests", tags=["Requests"])
app.include_router(dashboard_router, prefix="/api/v1/dashboard", tags=["Dashboard"])
app.include_router(notifications_router, prefix="/api/v1/notifications", tags=["Notifications"])
app.include_router(departments_router, prefix="/api/v1/departments", tags=["Departments"])
app.include_router(department_types_router, prefix="/api/v1/department-types", tags=["Departments"])
app.include_router(users_router, prefix="/api/v1/users", tags=["Users"])
app.include_router(item_types_router, prefix="/api/v1/item-types", tags=["Master Data"])
app.include_router(item_categories_router, prefix="/api/v1/item-categories", tags=["Master Data"])
app.include_router(contract_types_router, prefix="/api/v1/contract-types", tags=["Master Data"])
app.include_router(acquisition_types_router, prefix="/api/v1/acquisition-types", tags=["Master Data"])
app.include_router(items_router, prefix="/api/v1/items", tags=["Master Data"])
app.include_router(exclusions_router, prefix="/api/v1/item-exclusions", tags=["Master Data"])
app.include_router(parameters_router, prefix="/api/v1/system-parameters", tags=["System Parameters"])
