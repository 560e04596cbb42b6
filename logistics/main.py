from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from logistics.config import get_settings
from logistics.db import create_db_and_tables
from logistics.error import LogisticsError
from logistics.logging_config import LogContext, configure_logging, get_logger
from logistics.routers import admin, categories, issuances, notifications, repairs, requests, stock

logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)
    create_db_and_tables()
    logger.info("startup")
    yield
    logger.info("shutdown")


app = FastAPI(title="Logistics - Request Fulfillment", lifespan=lifespan)

app.include_router(stock.router)
app.include_router(categories.router)
app.include_router(requests.router)
app.include_router(issuances.router)
app.include_router(repairs.router)
app.include_router(notifications.router)
app.include_router(admin.router)


@app.middleware("http")
async def bind_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    with LogContext.bind(correlation_id=request_id):
        response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/health")
def health():
    return {"ok": True}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder(
            {"detail": {"code": "VALIDATION_ERROR", "message": "Request validation failed",
                        "errors": exc.errors()}}
        ),
    )


@app.exception_handler(LogisticsError)
async def logistics_exception_handler(request: Request, exc: LogisticsError):
    if exc.status_code >= 500:
        logger.error("request_failed", extra={"code": exc.code, "path": request.url.path})
    else:
        logger.info("request_rejected", extra={"code": exc.code, "path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder({"detail": exc.to_detail()}))
