"""Custom exception handlers for FastAPI application"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.exceptions import ActionEngineError
from app.core.logging_config import get_logger


logger = get_logger(__name__)


async def action_engine_exception_handler(
    request: Request,
    exc: ActionEngineError
) -> JSONResponse:
    """
    Handle engine errors.

    Client errors are logged as warnings, upstream and internal failures as
    errors. The response body comes from the exception itself.
    """
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        "action_engine_error_handled",
        request_path=request.url.path,
        request_method=request.method,
        request_id=getattr(request.state, "request_id", None),
        error_type=exc.error_type,
        execution_id=exc.execution_id,
        error_message=exc.message
    )

    return JSONResponse(
        status_code=exc.http_status,
        content=exc.get_api_response()
    )


async def request_validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Handle malformed request bodies with field-level details"""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "type": "request_validation_error",
            "errors": errors,
            "request_id": getattr(request.state, "request_id", "unknown")
        }
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler; never leaks internals"""
    logger.error(
        "unhandled_exception",
        request_path=request.url.path,
        request_method=request.method,
        request_id=getattr(request.state, "request_id", None),
        error_type=type(exc).__name__,
        error_message=str(exc),
        exc_info=exc
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "type": "internal_error",
            "request_id": getattr(request.state, "request_id", "unknown")
        }
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ActionEngineError, action_engine_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
