"""
Render domain errors as JSON: {"detail": message, "code": ERROR_CODE}.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ticketqueue.core.errors import DomainError, RateLimitExceeded
from ticketqueue.core.logging import get_logger

logger = get_logger(__name__)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitExceeded):
        headers = {"Retry-After": str(exc.retry_after_seconds)}

    logger.info(
        "domain_error",
        code=exc.code.value,
        status_code=exc.status_code,
        detail=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code.value},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
