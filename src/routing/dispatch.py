"""Late-bound request dispatch on top of a Starlette router.

Every distinct path template gets exactly one Starlette ``Route``. Its
endpoint does not call a handler directly; it looks up the current binding
for ``(verb, path)`` at request time. Registering, replacing and retracting
bindings therefore takes effect immediately without touching Starlette's
route table, which is what makes reload and removal atomic.

Key components:
- **RouteBinding**: One handler with its composed pre-handler chain
- **DispatchRouter**: Binding stacks keyed by verb and path
- **RouteScope**: Sub-scope handed to function-style route modules
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from starlette import status
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.routing import Match, Route, Router, compile_path

from src.api.middleware.error_handler import (
    generic_exception_handler,
    routeforge_error_handler,
)
from src.api.utils.responses import to_response
from src.core.constants import HTTP_VERBS
from src.core.exceptions import (
    InvalidMethodError,
    InvalidMiddlewareError,
    LoadShapeError,
    MissingHandlerError,
    RouteForgeError,
)

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response
    from starlette.types import Scope

    from src.core.types import CallNext, Handler, Middleware

# Methods every mounted Starlette route accepts; dispatch decides the rest
_ROUTE_METHODS = [verb.upper() for verb in HTTP_VERBS]


def normalize_method(method: object, source: str | None = None) -> str:
    """Validate an HTTP verb and return it lower-cased.

    Args:
        method: Verb as declared, in any case.
        source: Declaration source, for the error context.

    Returns:
        str: The lower-case verb.

    Raises:
        InvalidMethodError: If the verb is not supported.
    """
    if not isinstance(method, str) or method.lower() not in HTTP_VERBS:
        raise InvalidMethodError(method, source)
    return method.lower()


def normalize_methods(methods: object, source: str | None = None) -> tuple[str, ...]:
    """Normalize one verb or a list of verbs, rejecting the whole set on error."""
    if isinstance(methods, str):
        methods = [methods]
    if not isinstance(methods, Iterable):
        raise InvalidMethodError(methods, source)
    normalized = tuple(dict.fromkeys(normalize_method(m, source) for m in methods))
    if not normalized:
        raise InvalidMethodError(methods, source)
    return normalized


def normalize_path(path: str, source: str | None = None) -> str:
    """Ensure a route path starts with a slash and compiles as a template.

    Raises:
        LoadShapeError: If the template uses an unknown converter.
    """
    path = path if path.startswith("/") else f"/{path}"
    try:
        compile_path(path)
    except (AssertionError, ValueError) as e:
        raise LoadShapeError(source or path, f"invalid path {path!r}: {e}") from e
    return path


async def call_handler(handler: Handler, request: Request) -> Response:
    """Invoke a terminal handler and render its result.

    Plain functions run in Starlette's threadpool so they cannot block the
    event loop.
    """
    if inspect.iscoroutinefunction(handler):
        result = await handler(request)
    else:
        result = await run_in_threadpool(handler, request)
        if inspect.isawaitable(result):
            result = await result
    return to_response(result)


def _link(middleware: Middleware, call_next: CallNext) -> CallNext:
    async def step(request: Request) -> Response:
        result = middleware(request, call_next)
        if inspect.isawaitable(result):
            result = await result
        return result

    return step


def compose_chain(pre_handlers: Iterable[Middleware], handler: Handler) -> CallNext:
    """Compose pre-handlers and a terminal handler into one endpoint.

    Pre-handlers run in the given order; each decides whether to continue by
    calling ``call_next``.
    """

    async def terminal(request: Request) -> Response:
        return await call_handler(handler, request)

    endpoint: CallNext = terminal
    for middleware in reversed(tuple(pre_handlers)):
        endpoint = _link(middleware, endpoint)
    return endpoint


def ensure_middlewares(middlewares: object, source: str) -> tuple[Middleware, ...]:
    """Check that every declared pre-handler is callable."""
    if middlewares is None:
        return ()
    if callable(middlewares):
        middlewares = [middlewares]
    if not isinstance(middlewares, Iterable):
        raise InvalidMiddlewareError(source)
    checked = tuple(middlewares)
    for index, middleware in enumerate(checked):
        if not callable(middleware):
            raise InvalidMiddlewareError(f"{source}[{index}]")
    return checked


class RouteBinding(BaseModel):
    """One handler bound to a verb and path, with its pre-handler chain."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    method: str = Field(..., description="Lower-case HTTP verb")
    path: str = Field(..., description="Path template")
    handler: Callable[..., Any] = Field(..., description="Terminal handler")
    pre_handlers: tuple[Any, ...] = Field(
        default=(), description="Ordered pre-handlers"
    )
    owner: str = Field(..., description="Registration token that owns the binding")
    endpoint: Callable[..., Any] = Field(..., description="Composed request chain")


class _DispatchRoute(Route):
    """Starlette route that only fully matches verbs with a live binding.

    An unbound verb is reported as a partial match, so Starlette keeps
    scanning later templates that match the same URL and only falls back to
    this route (and its 405) when none of them answers the verb.
    """

    def __init__(
        self,
        path: str,
        endpoint: Callable[[Request], Any],
        answers: Callable[[str], bool],
    ) -> None:
        super().__init__(path, endpoint=endpoint, methods=_ROUTE_METHODS)
        self._answers = answers

    def matches(self, scope: Scope) -> tuple[Match, Scope]:
        match, child_scope = super().matches(scope)
        if match is Match.FULL and not self._answers(scope["method"]):
            return Match.PARTIAL, child_scope
        return match, child_scope


class DispatchRouter:
    """Router primitive with late-bound, retractable bindings."""

    def __init__(self) -> None:
        self.router = Router()
        self._bindings: dict[tuple[str, str], list[RouteBinding]] = {}
        self._routes: dict[str, Route] = {}

    def add(
        self,
        method: str,
        path: str,
        handler: Handler,
        pre_handlers: Iterable[Middleware] = (),
        *,
        owner: str,
    ) -> RouteBinding:
        """Bind a handler for a verb and path.

        A later binding for the same key shadows earlier ones until it is
        retracted.

        Args:
            method: HTTP verb (any case).
            path: Path template in Starlette syntax.
            handler: Terminal handler.
            pre_handlers: Ordered pre-handlers.
            owner: Registration token used by ``retract``.

        Returns:
            RouteBinding: The new binding.
        """
        method = normalize_method(method)
        path = normalize_path(path)
        chain = tuple(pre_handlers)
        binding = RouteBinding(
            method=method,
            path=path,
            handler=handler,
            pre_handlers=chain,
            owner=owner,
            endpoint=compose_chain(chain, handler),
        )
        self._bindings.setdefault((method, path), []).append(binding)

        if path not in self._routes:
            route = _DispatchRoute(
                path,
                endpoint=self._endpoint_for(path),
                answers=lambda verb, path=path: self._resolve(verb, path) is not None,
            )
            self._routes[path] = route
            self.router.routes.append(route)

        logger.debug("Bound {} {}", method.upper(), path, owner=owner)
        return binding

    def mount(
        self,
        scope: RouteScope,
        *,
        owner: str,
        pre_handlers: Iterable[Middleware] = (),
    ) -> list[RouteBinding]:
        """Bind every route registered on a scope, prefixed by shared pre-handlers."""
        shared = tuple(pre_handlers)
        return [
            self.add(
                entry.method,
                entry.path,
                entry.handler,
                shared + entry.middlewares,
                owner=owner,
            )
            for entry in scope.entries
        ]

    def retract(self, owner: str) -> int:
        """Remove every binding owned by a registration token.

        Returns:
            int: Number of bindings removed.
        """
        removed = 0
        for key in list(self._bindings):
            stack = self._bindings[key]
            kept = [b for b in stack if b.owner != owner]
            removed += len(stack) - len(kept)
            if kept:
                self._bindings[key] = kept
            else:
                del self._bindings[key]

        live_paths = {path for _, path in self._bindings}
        for path in [p for p in self._routes if p not in live_paths]:
            self.router.routes.remove(self._routes.pop(path))

        if removed:
            logger.debug("Retracted {} bindings", removed, owner=owner)
        return removed

    def current(self, method: str, path: str) -> RouteBinding | None:
        """Binding that currently answers a verb and path, if any."""
        stack = self._bindings.get((method, path))
        return stack[-1] if stack else None

    def allowed_methods(self, path: str) -> list[str]:
        """Upper-case verbs currently bound for a path."""
        return [v.upper() for v in HTTP_VERBS if (v, path) in self._bindings]

    def bindings(self) -> list[RouteBinding]:
        """Every live binding, shadowed ones included, in registration order."""
        return [b for stack in self._bindings.values() for b in stack]

    def _resolve(self, method: str, path: str) -> RouteBinding | None:
        method = method.lower()
        binding = self.current(method, path)
        if binding is None and method == "head":
            binding = self.current("get", path)
        return binding

    def _endpoint_for(self, path: str) -> Callable[[Request], Any]:
        async def dispatch(request: Request) -> Response:
            binding = self._resolve(request.method, path)

            if binding is None:
                allowed = self.allowed_methods(path)
                if allowed:
                    raise HTTPException(
                        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
                        headers={"Allow": ", ".join(allowed)},
                    )
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)

            # Handler errors always render as the JSON error envelope
            try:
                return await binding.endpoint(request)
            except HTTPException:
                raise
            except RouteForgeError as e:
                return await routeforge_error_handler(request, e)
            except Exception as e:
                return await generic_exception_handler(request, e)

        return dispatch


class ScopedRoute(BaseModel):
    """A route registered on a ``RouteScope`` but not yet bound."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    method: str
    path: str
    handler: Callable[..., Any]
    middlewares: tuple[Any, ...] = ()


class RouteScope:
    """Sub-scope handed to function-style route modules.

    Route modules register handlers on it imperatively; the registry
    introspects ``entries`` afterward and binds them all at once:

        def route(scope, context):
            @scope.get("/users/{user_id:int}")
            async def get_user(request):
                ...

            scope.post("/users", create_user)

    Pre-handlers added with ``use`` apply to routes registered after them.
    """

    def __init__(self, source: str | None = None) -> None:
        self.source = source
        self.entries: list[ScopedRoute] = []
        self._middlewares: list[Middleware] = []

    def use(self, middleware: Middleware) -> None:
        """Add a pre-handler for every route registered after this call."""
        self._middlewares.extend(
            ensure_middlewares(middleware, self.source or "scope")
        )

    def add_route(
        self,
        path: str,
        handler: Handler,
        methods: str | Iterable[str] = "get",
        middlewares: Iterable[Middleware] = (),
    ) -> None:
        """Register a handler for one or more verbs."""
        if not callable(handler):
            raise MissingHandlerError(self.source)
        verbs = normalize_methods(methods, self.source)
        chain = tuple(self._middlewares) + ensure_middlewares(
            list(middlewares), self.source or "scope"
        )
        self.entries.extend(
            ScopedRoute(
                method=verb,
                path=normalize_path(path, self.source),
                handler=handler,
                middlewares=chain,
            )
            for verb in verbs
        )

    def route(
        self,
        path: str,
        methods: str | Iterable[str] = "get",
        middlewares: Iterable[Middleware] = (),
    ) -> Callable[[Handler], Handler]:
        """Decorator form of ``add_route``."""

        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, methods, middlewares)
            return handler

        return decorator

    def _verb(
        self,
        method: str,
        path: str,
        handler: Handler | None,
        middlewares: Iterable[Middleware],
    ) -> Any:  # noqa: ANN401 - handler or decorator
        if handler is None:
            return self.route(path, method, middlewares)
        self.add_route(path, handler, method, middlewares)
        return handler

    def get(
        self,
        path: str,
        handler: Handler | None = None,
        *,
        middlewares: Iterable[Middleware] = (),
    ) -> Any:  # noqa: ANN401 - handler or decorator
        return self._verb("get", path, handler, middlewares)

    def post(
        self,
        path: str,
        handler: Handler | None = None,
        *,
        middlewares: Iterable[Middleware] = (),
    ) -> Any:  # noqa: ANN401 - handler or decorator
        return self._verb("post", path, handler, middlewares)

    def put(
        self,
        path: str,
        handler: Handler | None = None,
        *,
        middlewares: Iterable[Middleware] = (),
    ) -> Any:  # noqa: ANN401 - handler or decorator
        return self._verb("put", path, handler, middlewares)

    def patch(
        self,
        path: str,
        handler: Handler | None = None,
        *,
        middlewares: Iterable[Middleware] = (),
    ) -> Any:  # noqa: ANN401 - handler or decorator
        return self._verb("patch", path, handler, middlewares)

    def delete(
        self,
        path: str,
        handler: Handler | None = None,
        *,
        middlewares: Iterable[Middleware] = (),
    ) -> Any:  # noqa: ANN401 - handler or decorator
        return self._verb("delete", path, handler, middlewares)

    def head(
        self,
        path: str,
        handler: Handler | None = None,
        *,
        middlewares: Iterable[Middleware] = (),
    ) -> Any:  # noqa: ANN401 - handler or decorator
        return self._verb("head", path, handler, middlewares)

    def options(
        self,
        path: str,
        handler: Handler | None = None,
        *,
        middlewares: Iterable[Middleware] = (),
    ) -> Any:  # noqa: ANN401 - handler or decorator
        return self._verb("options", path, handler, middlewares)

    def endpoints(self) -> list[tuple[str, str]]:
        """Registered ``(path, verb)`` pairs, in registration order."""
        return [(entry.path, entry.method) for entry in self.entries]
