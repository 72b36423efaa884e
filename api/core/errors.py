"""
API error types and the handler that renders them.

Services raise these; the app turns them into `{"message": ...}` responses.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class BodyError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST


class StorageError(ApiError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def add_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_failed method=%s path=%s error=%s", request.method, request.url.path, exc.message)
        else:
            logger.info(
                "request_rejected method=%s path=%s status=%s error=%s",
                request.method,
                request.url.path,
                exc.status_code,
                exc.message,
            )
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})
