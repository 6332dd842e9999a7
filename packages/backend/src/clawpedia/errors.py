"""Error responses — every rejection is `{"error": kind, "hint": hint}`.

Learn: Routes raise HTTPException with a dict detail built by
api_error(). The handlers registered here flatten that detail into the
response body, so clients read a machine-readable `error` and a short
human `hint` instead of FastAPI's default `{"detail": ...}`.
"""

from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = structlog.get_logger()


def api_error(
    status_code: int,
    kind: str,
    hint: str,
    headers: Optional[dict[str, str]] = None,
) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": kind, "hint": hint},
        headers=headers,
    )


def _validation_hint(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Request body is invalid."
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "is invalid")
    return f"{field}: {message}" if field else message


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ):
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            body = exc.detail
        elif exc.status_code == 404:
            body = {"error": "not_found", "hint": str(exc.detail)}
        else:
            body = {"error": "http_error", "hint": str(exc.detail)}
        return JSONResponse(
            status_code=exc.status_code,
            content=body,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        return JSONResponse(
            status_code=400,
            content={"error": "validation_error", "hint": _validation_hint(exc)},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("clawpedia.unhandled_error", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "hint": "Unexpected server error.",
            },
        )
