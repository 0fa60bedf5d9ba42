from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AppError(Exception):
  kind = "Internal"
  status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message


class Unauthenticated(AppError):
  kind = "Unauthenticated"
  status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(AppError):
  kind = "Forbidden"
  status_code = status.HTTP_403_FORBIDDEN


class NotFound(AppError):
  kind = "NotFound"
  status_code = status.HTTP_404_NOT_FOUND


class InvalidInput(AppError):
  kind = "InvalidInput"
  status_code = status.HTTP_400_BAD_REQUEST


class Conflict(AppError):
  kind = "Conflict"
  status_code = status.HTTP_409_CONFLICT


class AlreadyMember(Conflict):
  kind = "AlreadyMember"


class Internal(AppError):
  pass


def error_body(kind: str, message: str, **extra) -> dict:
  err = {"kind": kind, "message": message}
  err.update(extra)
  return {"ok": False, "error": err}


async def _app_error_handler(_: Request, exc: AppError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content=error_body(exc.kind, exc.message))


async def _validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
  details = jsonable_encoder(exc.errors())
  first = details[0] if details else {}
  loc = ".".join(str(p) for p in first.get("loc", []) if p != "body")
  message = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg") or "Invalid request")
  return JSONResponse(
    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    content=error_body("InvalidInput", message, details=details),
  )


async def _store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
  logger.exception("store failure on %s %s", request.method, request.url.path, exc_info=exc)
  return JSONResponse(status_code=500, content=error_body("Internal", "Internal error"))


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
  logger.exception("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
  return JSONResponse(status_code=500, content=error_body("Internal", "Internal error"))


def install_error_handlers(app: FastAPI) -> None:
  app.add_exception_handler(AppError, _app_error_handler)
  app.add_exception_handler(RequestValidationError, _validation_error_handler)
  app.add_exception_handler(SQLAlchemyError, _store_error_handler)
  app.add_exception_handler(Exception, _unhandled_error_handler)
