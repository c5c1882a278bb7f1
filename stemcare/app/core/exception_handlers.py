"""Exception handlers for converting custom exceptions to HTTP responses."""

import logging

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from stemcare.app.core.exceptions import (
    StemCareException,
    InvalidReportRequestError,
    UnknownCustomerError,
    CustomerInactiveError,
    ExamNotFoundError,
    ReportNotFoundError,
    DuplicateReportError,
    ReportNotReadyError,
    AnalysisServiceError,
    DocumentConversionError,
    StorageError,
)

logger = logging.getLogger(__name__)

REPORTS_PATH_PREFIX = "/api/reports"


def status_code_for(exc: StemCareException) -> int:
    """Map a StemCare exception to its HTTP status code."""
    if isinstance(exc, (InvalidReportRequestError, UnknownCustomerError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, CustomerInactiveError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, (ReportNotFoundError, ExamNotFoundError)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (DuplicateReportError, ReportNotReadyError)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, AnalysisServiceError):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, DocumentConversionError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    # StorageError and generic StemCareException
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def stemcare_exception_handler(request: Request, exc: StemCareException) -> JSONResponse:
    """
    Handle all StemCare custom exceptions and convert to appropriate HTTP responses.

    Args:
        request: The incoming request
        exc: The exception that was raised

    Returns:
        JSONResponse with appropriate status code and error details
    """
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"[ERROR] {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "type": exc.__class__.__name__,
            **({"info": exc.details} if exc.details else {}),
            **exc.extra_fields(),
        }
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Convert database errors that escaped a service into a StorageError response."""
    logger.exception(f"[ERROR] Database failure on {request.method} {request.url.path}")
    return await stemcare_exception_handler(request, StorageError("request", exc))


async def report_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Answer malformed report requests with the same 400 as other invalid input.

    A wrong-typed body, query or path value on a report route is reported
    like a missing field. Other routes keep FastAPI's 422 response.
    """
    if not request.url.path.startswith(REPORTS_PATH_PREFIX):
        return await request_validation_exception_handler(request, exc)

    logger.info(f"[VALIDATION] Rejected {request.method} {request.url.path}: {len(exc.errors())} error(s)")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": "Invalid report request",
            "type": InvalidReportRequestError.__name__,
            "errors": jsonable_encoder(exc.errors()),
        }
    )


def register_exception_handlers(app):
    """
    Register all custom exception handlers with the FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(StemCareException, stemcare_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(RequestValidationError, report_validation_exception_handler)
