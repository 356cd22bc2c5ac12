"""Map domain errors to `{"success": false, "error": ...}` responses."""

import logging

from fastapi.responses import JSONResponse

from bevisible.exceptions import DataIntegrityError, NotFoundError, SchedulingExhaustion

logger = logging.getLogger(__name__)


def error_status(error: Exception) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, DataIntegrityError):
        return 409
    if isinstance(error, SchedulingExhaustion):
        return 503
    if isinstance(error, ValueError):
        return 400
    return 500


def error_response(error: Exception, **extra) -> JSONResponse:
    status_code = error_status(error)
    if status_code >= 500:
        logger.error(f"❌ [API] {error.__class__.__name__}: {error}", exc_info=status_code == 500)

    body = {"success": False, "error": str(error) or error.__class__.__name__}
    body.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(status_code=status_code, content=body)
