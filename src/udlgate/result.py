"""Explicit handler results and their translation to HTTP responses.

Every handler returns either a :class:`Success` or a :class:`Failure`.
:func:`to_response` is the single place where a result becomes an HTTP
response, so the error-kind to status mapping lives in exactly one spot
(``errors.STATUS_BY_KIND``).
"""

import functools
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Union

from fastapi import Response
from fastapi.responses import JSONResponse, StreamingResponse

from udlgate.errors import GatewayError


@dataclass(frozen=True)
class Success:
    """A successful handler outcome.

    Attributes:
        body: JSON-serializable payload. Ignored when ``stream`` is set or the
            status is 204.
        status: HTTP status code.
        headers: Extra response headers.
        stream: Async byte iterator for raw-body responses (downloads).
        media_type: Content type of a streamed body.
    """

    body: Any = None
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    stream: AsyncIterator[bytes] | None = None
    media_type: str = "application/octet-stream"


@dataclass(frozen=True)
class Failure:
    """A failed handler outcome carrying the structured error."""

    error: GatewayError

    @property
    def status(self) -> int:
        return self.error.http_status


Result = Union[Success, Failure]


def returns_result(
    func: Callable[..., Awaitable[Result]],
) -> Callable[..., Awaitable[Result]]:
    """Turn a ``GatewayError`` raised inside ``func`` into a ``Failure``.

    Lets validation helpers short-circuit by raising while the handler's
    callers only ever see a result value. Other exceptions propagate.
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Result:
        try:
            return await func(*args, **kwargs)
        except GatewayError as exc:
            return Failure(exc)

    return wrapper


def error_body(error: GatewayError) -> dict[str, str]:
    """Render the JSON error body for ``error``."""
    return {"error": error.message}


def to_response(result: Result) -> Response:
    """Translate a handler result into a FastAPI response."""
    if isinstance(result, Failure):
        return JSONResponse(content=error_body(result.error), status_code=result.status)

    if result.stream is not None:
        return StreamingResponse(
            content=result.stream,
            status_code=result.status,
            headers=result.headers,
            media_type=result.media_type,
        )

    if result.status == 204:
        return Response(status_code=204, headers=result.headers)

    return JSONResponse(content=result.body, status_code=result.status, headers=result.headers)
