# checkout/api/errors.py
from fastapi import HTTPException

from checkout.domain.errors import (
    CheckoutError,
    ValidationError,
    NotFoundError,
    InsufficientStock,
    IllegalTransition,
    ConflictError,
    GatewayError,
)
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


def http_error(exc: CheckoutError) -> HTTPException:
    """Map a domain error to the HTTP status the routers answer with."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=exc.message)
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=exc.message)
    if isinstance(exc, InsufficientStock):
        return HTTPException(status_code=409, detail={"message": exc.message, "shortfalls": exc.shortfalls})
    if isinstance(exc, IllegalTransition):
        logger.warning(f"Rejected state change: {exc.message}")
        return HTTPException(status_code=409, detail=exc.message)
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=exc.message)
    if isinstance(exc, GatewayError):
        return HTTPException(status_code=502, detail={"message": exc.message, "retryable": exc.retryable})
    logger.warning(f"Unmapped checkout error {type(exc).__name__}: {exc.message}")
    return HTTPException(status_code=500, detail=exc.message)
