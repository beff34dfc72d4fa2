"""Exception handlers mapping the error taxonomy onto the error envelope."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from crudforge.domain.errors import CrudError, ValidationError

from .responses import ApiResponse

logger = logging.getLogger(__name__)

# request locations that carry no field information for the caller
_LOCATIONS = {"body", "query", "path", "header"}


def _field_path(loc: tuple[object, ...]) -> str:
    parts = [str(p) for p in loc if p not in _LOCATIONS]
    return ".".join(parts) or "body"


async def crud_error_handler(request: Request, exc: CrudError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    data = None
    if isinstance(exc, ValidationError) and exc.field_errors:
        data = exc.field_errors
    return ApiResponse.failure(
        exc.message, exc.status_code, exc.code, details=exc.details, data=data
    ).to_response()


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    field_errors = {_field_path(tuple(err["loc"])): err["msg"] for err in exc.errors()}
    return ApiResponse.failure(
        "Request validation failed",
        400,
        ValidationError.code,
        details=None,
        data=field_errors,
    ).to_response()


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CrudError, crud_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
