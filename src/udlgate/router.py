"""Request routing and dispatch for udlgate.

Every request goes through the same steps: auth gate, then route lookup,
then the handler. A raised ``GatewayError`` becomes a ``Failure``, and any
other exception is logged and reported as a generic ``InternalError`` so
internal detail never reaches the client.

Two equivalent route shapes are served. The flat one:

    POST   /start-upload       ?key
    POST   /upload-part        ?key&uploadId&partNumber
    POST   /complete-upload    ?key&uploadId
    DELETE /abort-upload       ?key&uploadId
    GET    /download           ?key
    GET    /stats              ?key
    GET    /objects            ?prefix
    DELETE /objects/{key}

and the resource-nested aliases used by the ``udl`` client:

    POST   /uploads/create, /uploads/upload-part, /uploads/complete
    DELETE /uploads/abort
    GET    /objects/{key}/download, /objects/{key}/stats

Nested object keys come from the path and may contain ``/``.
"""

import functools
import logging
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request

from udlgate.auth import AUTH_HEADER, AuthGate
from udlgate.errors import GatewayError, InternalError, MethodNotAllowed, NotFound
from udlgate.handlers.multipart import MultipartCoordinator
from udlgate.handlers.objects import ObjectHandler
from udlgate.result import Failure, Result

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Result]]

_OBJECTS = "objects"
_NESTED_OBJECT_ACTIONS = ("download", "stats")


class Router:
    """Maps method + path onto a handler and runs it behind the auth gate.

    Attributes:
        gate: The auth gate every request must pass.
    """

    def __init__(self, app: FastAPI, gate: AuthGate) -> None:
        """Build the route table.

        Args:
            app: The FastAPI application whose state holds the storage backend.
            gate: The auth gate built from configuration.
        """
        self.gate = gate
        coordinator = MultipartCoordinator(app)
        objects = ObjectHandler(app)

        start = {"POST": coordinator.start_upload}
        part = {"POST": coordinator.upload_part}
        complete = {"POST": coordinator.complete_upload}
        abort = {"DELETE": coordinator.abort_upload}

        # path -> (operation name, method -> handler)
        self._routes: dict[str, tuple[str, dict[str, Handler]]] = {
            "start-upload": ("start_upload", start),
            "uploads/create": ("start_upload", start),
            "upload-part": ("upload_part", part),
            "uploads/upload-part": ("upload_part", part),
            "complete-upload": ("complete_upload", complete),
            "uploads/complete": ("complete_upload", complete),
            "abort-upload": ("abort_upload", abort),
            "uploads/abort": ("abort_upload", abort),
            "download": ("download", {"GET": objects.download}),
            "stats": ("stats", {"GET": objects.stats}),
            _OBJECTS: ("list_objects", {"GET": objects.list_objects}),
        }
        self._nested: dict[str, Handler] = {
            "download": objects.download,
            "stats": objects.stats,
        }
        self._delete = objects.delete

    def resolve(self, method: str, path: str) -> tuple[str, Handler]:
        """Find the handler for ``method`` on ``path``.

        Args:
            method: The HTTP method.
            path: The decoded request path.

        Returns:
            The operation name and the handler to call.

        Raises:
            NotFound: If no route matches the path.
            MethodNotAllowed: If the path matches but not for this method.
        """
        name = path.lstrip("/")

        route = self._routes.get(name) or self._routes.get(name.rstrip("/"))
        if route is not None:
            operation, handlers = route
            handler = handlers.get(method)
            if handler is None:
                raise MethodNotAllowed()
            return operation, handler

        if name.startswith(_OBJECTS + "/"):
            return self._resolve_object(method, name[len(_OBJECTS) + 1:])

        raise NotFound()

    def _resolve_object(self, method: str, rest: str) -> tuple[str, Handler]:
        """Resolve ``/objects/{key}`` and ``/objects/{key}/{action}``."""
        if method == "GET":
            key, _, action = rest.rpartition("/")
            if key and action in _NESTED_OBJECT_ACTIONS:
                return action, functools.partial(self._nested[action], key=key)
            raise MethodNotAllowed()
        if method == "DELETE":
            return "delete", functools.partial(self._delete, key=rest)
        raise MethodNotAllowed()

    async def dispatch(self, request: Request) -> Result:
        """Authenticate, route and run a request.

        The operation name is stored on ``request.state.operation`` for
        metrics and logging.
        """
        request.state.operation = "unknown"
        try:
            self.gate.check(request.headers.get(AUTH_HEADER))
            operation, handler = self.resolve(request.method, request.scope["path"])
            request.state.operation = operation
            return await handler(request)
        except GatewayError as exc:
            return Failure(exc)
        except Exception:
            logger.exception(
                "Unhandled exception in %s %s", request.method, request.scope["path"]
            )
            return Failure(InternalError())
