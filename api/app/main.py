import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import admin, approvals, imports, orders
from app.core.config import get_settings
from app.db.base import Base
from app.db.session import engine

logger = logging.getLogger(__name__)

settings = get_settings()
app = FastAPI(title=settings.app_name)

# The browser importer posts from the source platform's origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.on_event("startup")
def startup() -> None:
    Base.metadata.create_all(bind=engine)
    logger.info("%s started (env=%s, source_platform=%s)", settings.app_name, settings.env, settings.source_platform)


@app.exception_handler(RequestValidationError)
def request_validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"code": "validation_error", "message": "Invalid request", "details": exc.errors()})


app.include_router(imports.router)
app.include_router(approvals.router)
app.include_router(orders.router)
app.include_router(admin.router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
