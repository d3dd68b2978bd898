"""Request-id middleware and uniform JSON error responses."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import uuid4

from fastapi import status
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import WorkflowError
from app.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fastapi import FastAPI
    from starlette.requests import Request
    from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-Id"
logger = get_logger(__name__)


def _get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    request_id = request.headers.get(REQUEST_ID_HEADER, "").strip() or uuid4().hex
    request.state.request_id = request_id
    return request_id


def _error_payload(
    *,
    detail: Any,
    request_id: str,
    code: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"detail": detail, "request_id": request_id}
    if code is not None:
        payload["code"] = code
    return payload


def _json_error(
    request: Request,
    *,
    status_code: int,
    detail: Any,
    code: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    request_id = _get_request_id(request)
    response_headers = dict(headers or {})
    response_headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            _error_payload(detail=detail, request_id=request_id, code=code),
        ),
        headers=response_headers,
    )


async def _workflow_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, WorkflowError):
        return await _unhandled_exception_handler(request, exc)
    logger.info(
        "request.workflow_error path=%s code=%s message=%s",
        request.url.path,
        exc.code,
        exc.message,
    )
    return _json_error(
        request,
        status_code=exc.status_code,
        detail=exc.to_detail(),
        code=exc.code,
    )


async def _http_exception_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    if not isinstance(exc, StarletteHTTPException):
        return await _unhandled_exception_handler(request, exc)
    return _json_error(
        request,
        status_code=exc.status_code,
        detail=exc.detail,
        headers=getattr(exc, "headers", None),
    )


async def _request_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    return _json_error(
        request,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        # Raw bytes bodies are not JSON serializable; keep only structured fields.
        detail=[
            {key: value for key, value in error.items() if key != "input"}
            for error in errors
        ],
    )


async def _response_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.error("request.response_validation_failed path=%s error=%s", request.url.path, exc)
    return _json_error(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal Server Error",
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.unhandled_exception path=%s", request.url.path, exc_info=exc)
    return _json_error(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal Server Error",
    )


def install_error_handling(app: FastAPI) -> None:
    """Attach request-id propagation and JSON error handlers to an app."""

    @app.middleware("http")
    async def _request_id_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = _get_request_id(request)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.add_exception_handler(WorkflowError, _workflow_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_exception_handler)
    app.add_exception_handler(ResponseValidationError, _response_validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
