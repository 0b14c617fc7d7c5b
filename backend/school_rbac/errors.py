import logging
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "internal"

    def __init__(self, message: str):
        super().__init__(status_code=self.status_code, detail=message)

    @property
    def message(self) -> str:
        return self.detail


class ValidationFailed(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "validation"


class Unauthenticated(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    kind = "unauthenticated"


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    kind = "forbidden"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class Conflict(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "conflict"


class InternalError(ApiError):
    pass


_KIND_BY_STATUS = {
    400: "validation",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
}


@contextmanager
def store_errors(db: Session, message: str, conflict_message: str | None = None) -> Iterator[None]:
    """Turn store failures into API errors, rolling back the session."""
    try:
        yield
    except IntegrityError as exc:
        db.rollback()
        logger.warning("%s: %s", message, exc.orig)
        raise Conflict(conflict_message or message) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(message)
        raise InternalError(message) from exc


def envelope(success: bool, message: str, data=None, kind: str | None = None) -> dict:
    body = {"success": success, "message": message, "data": data}
    if kind is not None:
        body["kind"] = kind
    return body


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = getattr(exc, "kind", None) or _KIND_BY_STATUS.get(exc.status_code, "error")
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(False, str(exc.detail), kind=kind),
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    message = "Zorunlu alanlar eksik veya geçersiz"
    if fields:
        message = f"{message} ({', '.join(fields)})"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=envelope(False, message, kind="validation"),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=envelope(False, "Beklenmeyen bir sunucu hatası oluştu", kind="internal"),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
