import logging

from fastapi import HTTPException

from callplane.services.exceptions import (
    CallServiceError,
    ValidationError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    UpstreamError,
    PersistenceError,
)

logger = logging.getLogger(__name__)


def http_error(e: CallServiceError) -> HTTPException:
    """Map a service error to the HTTP response the client sees."""
    if isinstance(e, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, PermissionDeniedError):
        return HTTPException(status_code=403, detail=e.reason)
    if isinstance(e, UpstreamError):
        logger.error(f"[API] Upstream failure: {e}")
        return HTTPException(status_code=502, detail="Call provider unavailable")
    if isinstance(e, PersistenceError):
        return HTTPException(status_code=500, detail=str(e))
    logger.error(f"[API] Unhandled call service error: {e}")
    return HTTPException(status_code=500, detail="Internal error")
