"""
Kernel error -> HTTP response mapping.

Every ``TransformationKernelError`` becomes ``{success: false, error, code}``
plus ``insufficientItems`` for stock shortfalls.  The status follows the
error class: not found 404, state and stock conflicts 409, validation 400,
persistence 500.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from transformation_api.schemas import ErrorResponse, InsufficientItemResponse
from transformation_kernel.domain.dtos import InsufficientItem
from transformation_kernel.exceptions import (
    ConcurrencyError,
    ImmutabilityError,
    InsufficientStockError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceFailureError,
    TransformationKernelError,
    ValidationError,
)
from transformation_kernel.logging_config import get_logger

logger = get_logger("api.errors")

# First match wins; subclasses before their bases.
_STATUS_BY_ERROR: tuple[tuple[type[TransformationKernelError], int], ...] = (
    (NotFoundError, 404),
    (InsufficientStockError, 409),
    (InvalidStateError, 409),
    (InvalidTransitionError, 409),
    (ConcurrencyError, 409),
    (ImmutabilityError, 409),
    (ValidationError, 400),
    (PersistenceFailureError, 500),
)


def _error_classes(root: type[TransformationKernelError] = TransformationKernelError):
    yield root
    for sub in root.__subclasses__():
        yield from _error_classes(sub)


def status_for(error_type: type[TransformationKernelError]) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if issubclass(error_type, cls):
            return status
    return 500


def status_for_code(code: str | None) -> int:
    """HTTP status for a machine-readable error code (from ExecutionResult)."""
    for cls in _error_classes():
        if cls.code == code:
            return status_for(cls)
    return 500


def error_response(
    status_code: int,
    message: str,
    code: str,
    insufficient_items: tuple[InsufficientItem, ...] = (),
) -> JSONResponse:
    body = ErrorResponse(
        error=message,
        code=code,
        insufficient_items=[
            InsufficientItemResponse.model_validate(item) for item in insufficient_items
        ] or None,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


async def kernel_error_handler(request: Request, exc: TransformationKernelError) -> JSONResponse:
    status = status_for(type(exc))
    log = logger.error if status >= 500 else logger.info
    log("http_request_failed", extra={
        "path": request.url.path,
        "method": request.method,
        "status_code": status,
        "error_code": exc.code,
        "error": str(exc),
    })
    items = exc.items if isinstance(exc, InsufficientStockError) else ()
    return error_response(status, str(exc), exc.code, items)
