"""RFC 7807 style error bodies shared by every exception handler."""

import uuid
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from courtbook.domain.errors import PROBLEM_TYPE_BASE

PROBLEM_CONTENT_TYPE = "application/problem+json"

PROBLEM_TYPE_VALIDATION = f"{PROBLEM_TYPE_BASE}/validation-error"
PROBLEM_TYPE_DOMAIN = f"{PROBLEM_TYPE_BASE}/domain-error"
PROBLEM_TYPE_UNAUTHORIZED = f"{PROBLEM_TYPE_BASE}/unauthorized"
PROBLEM_TYPE_NOT_FOUND = f"{PROBLEM_TYPE_BASE}/not-found"
PROBLEM_TYPE_SERVER = f"{PROBLEM_TYPE_BASE}/server-error"

_DEFAULT_TYPES = {
    401: PROBLEM_TYPE_UNAUTHORIZED,
    404: PROBLEM_TYPE_NOT_FOUND,
    422: PROBLEM_TYPE_VALIDATION,
}


def _default_type(status: int) -> str:
    if status >= 500:
        return PROBLEM_TYPE_SERVER
    return _DEFAULT_TYPES.get(status, PROBLEM_TYPE_DOMAIN)


def _default_title(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    request.state.request_id = request_id
    return request_id


def problem_details(
    request: Request,
    *,
    status: int,
    title: str | None,
    detail: str,
    errors: list[dict[str, Any]] | None = None,
    type_: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    request_id = _request_id(request)
    body = {
        "type": type_ or _default_type(status),
        "title": title or _default_title(status),
        "status": status,
        "detail": detail,
        "request_id": request_id,
        "errors": errors or [],
    }
    response = JSONResponse(status_code=status, content=body, headers=headers, media_type=PROBLEM_CONTENT_TYPE)
    response.headers.setdefault("X-Request-ID", request_id)
    return response
