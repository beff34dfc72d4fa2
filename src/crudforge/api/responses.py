"""Uniform success/error response envelope.

Success: {success, message, statusCode, status, data, timestamp}
Error:   {success, message, statusCode, status, data, error: {code, details}, timestamp}
"""

from __future__ import annotations

from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _status_name(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).name
    except ValueError:
        return str(status_code)


class ErrorInfo(BaseModel):
    code: str
    details: Any = None


class ApiResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    status_code: int
    status: str
    data: Any = None
    error: ErrorInfo | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def ok(cls, data: Any, message: str, status_code: int = 200) -> ApiResponse:
        return cls(
            success=True,
            message=message,
            status_code=status_code,
            status=_status_name(status_code),
            data=data,
        )

    @classmethod
    def failure(
        cls,
        message: str,
        status_code: int,
        code: str,
        details: Any = None,
        data: Any = None,
    ) -> ApiResponse:
        return cls(
            success=False,
            message=message,
            status_code=status_code,
            status=_status_name(status_code),
            data=data,
            error=ErrorInfo(code=code, details=details),
        )

    def to_response(self) -> JSONResponse:
        content = self.model_dump(mode="json", by_alias=True)
        if self.success:
            content.pop("error", None)
        return JSONResponse(status_code=self.status_code, content=content)
