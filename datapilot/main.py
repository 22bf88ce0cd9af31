from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from datapilot.core.errors import ConfigurationError, http_status_for
from datapilot.core.logging import configure_logging, get_logger
from datapilot.core.middleware import RequestIdMiddleware
from datapilot.core.settings import get_settings
from datapilot.routers.ask import error_detail
from datapilot.routers.ask import router as ask_router
from datapilot.routers.cache import router as cache_router
from datapilot.routers.health import router as health_router

settings = get_settings()
configure_logging()
logger = get_logger(__name__)

app = FastAPI(title=settings.app_name)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_origin_regex=settings.cors_allow_origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id"],
)


@app.exception_handler(ConfigurationError)
def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    logger.error("Configuration error: %s", exc.message, extra={"request_id": request_id, "error_code": str(exc.code)})
    return JSONResponse(status_code=http_status_for(exc), content={"detail": error_detail(exc, request_id)})


app.include_router(health_router)
app.include_router(ask_router)
app.include_router(cache_router)
