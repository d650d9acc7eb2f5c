"""
Pipeline error → HTTP response translation.

Domain modules raise core.exceptions types; this is the only place that
decides status codes for them.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.exceptions import AuthError, PipelineError, StorageError, UpstreamError, ValidationError

logger = structlog.get_logger()


def status_code_for(exc: PipelineError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, AuthError):
        return 401
    if isinstance(exc, UpstreamError):
        # Bad credentials, URL, or permissions are fixable in Settings.
        return 400 if exc.caused_by_configuration else 500
    return 500


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    status_code = status_code_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "api.pipeline_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        status_code=status_code,
        error=exc.message,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    for exc_type in (ValidationError, AuthError, UpstreamError, StorageError, PipelineError):
        app.add_exception_handler(exc_type, pipeline_error_handler)
