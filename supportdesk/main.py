from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from supportdesk.api.v1.router import api_router
from supportdesk.core.config import settings
from supportdesk.core.errors import (
    AccessDenied,
    InvalidInput,
    NotFound,
    StoreError,
    SupportDeskError,
    Unauthenticated,
    WorkflowError,
)
from supportdesk.core.logging import configure_logging
from supportdesk.websockets.changes import changes_ws_router

configure_logging()
logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[SupportDeskError], int] = {
    InvalidInput: 422,
    NotFound: 404,
    AccessDenied: 403,
    Unauthenticated: 401,
    WorkflowError: 409,
    StoreError: 502,
}

app = FastAPI(title=settings.app_name, default_response_class=ORJSONResponse, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SupportDeskError)
async def supportdesk_error_handler(request: Request, exc: SupportDeskError) -> ORJSONResponse:
    status_code = next((code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 500)
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return ORJSONResponse(status_code=status_code, content={"detail": str(exc) or exc.__class__.__name__})


app.include_router(api_router, prefix=settings.api_prefix)
app.include_router(changes_ws_router, prefix=settings.ws_prefix)

Instrumentator().instrument(app).expose(app)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
