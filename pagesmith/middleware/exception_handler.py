"""Maps ``PagesmithError`` to its JSON error body."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from ..exceptions import PagesmithError

logger = logging.getLogger(__name__)


async def pagesmith_exception_handler(request: Request, exc: PagesmithError) -> JSONResponse:
    # Bad signatures and malformed payloads are the sender's problem.
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        level,
        "%s %s failed: %s",
        request.method,
        request.url.path,
        exc.error_code.value,
        extra={
            "error_code": exc.error_code.value,
            "status_code": exc.status_code,
            "github_event": request.headers.get("x-github-event"),
            "details": exc.details,
        },
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
