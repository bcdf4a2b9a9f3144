from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.logging import get_logger

logger = get_logger(__name__)

_ERROR_CODES = {
    400: "INVALID_INPUT",
    401: "UNAUTHENTICATED",
    404: "NOT_FOUND",
    409: "CONFLICT",
    500: "INTERNAL",
}


class CaptionPreviewError(Exception):
    """Caller error in a preview/parity request (rendered as HTTP 400)."""

    def __init__(self, detail: str, status_code: int = 400, error: str = "INVALID_INPUT"):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.error = error


def ok(data: Any) -> dict:
    return {"ok": True, "data": data}


def fail(status_code: int, detail: Any, error: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "ok": False,
            "error": error or _ERROR_CODES.get(status_code, "ERROR"),
            "detail": detail,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return fail(exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
        # 400 rather than FastAPI's 422 to match the caller-error contract
        return fail(400, jsonable_errors(exc))

    @app.exception_handler(CaptionPreviewError)
    async def caption_error_handler(request: Request, exc: CaptionPreviewError):
        logger.info("Caption request rejected (%s): %s", exc.error, exc.detail)
        return fail(exc.status_code, exc.detail, exc.error)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
