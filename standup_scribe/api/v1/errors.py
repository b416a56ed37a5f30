from fastapi import Request, status
from fastapi.responses import JSONResponse

from ...core.exceptions import (
    ConfigurationError,
    DeliveryError,
    InvalidStateError,
    NotAuthorizedError,
    NotFoundError,
    SessionExpiredError,
    StandupError,
    ValidationError,
)
from ...utils.logging import get_logger

logger = get_logger(__name__)

# Most specific first
STATUS_BY_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (SessionExpiredError, status.HTTP_410_GONE),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ConfigurationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotAuthorizedError, status.HTTP_403_FORBIDDEN),
    (DeliveryError, status.HTTP_502_BAD_GATEWAY),
)


def status_for(error: StandupError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def standup_error_handler(request: Request, exc: StandupError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.code}: {str(exc)}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": exc.code},
    )
