"""The route registry: single owner of all routing state.

One ``RouteRegistry`` instance holds everything a running service knows
about its dynamic routes, and nothing is kept at module level:

- **Routes**: descriptors keyed by derived name (last write wins)
- **Dispatch router**: late-bound bindings answering requests
- **Middleware registry**: global pre-handlers in registration order
- **Plugin registry**: named extensions with dependency checks
- **Document builder**: the live API document

Every mutation (registration, reload, removal) ends with a full document
regeneration, so the document never lags behind the route table.

Registration of a single declaration is all-or-nothing: the declaration is
decoded and checked first, then the previous registration under the same
name is retired, then the new bindings are added. A declaration that fails
leaves the previous registration in place.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from src.core.config import Settings, get_settings
from src.core.exceptions import (
    MissingHandlerError,
    MissingPathError,
    RouteNotFoundError,
)
from src.core.logging import get_logger
from src.routing.declarations import (
    DeclarationKind,
    FunctionDeclaration,
    ObjectDeclaration,
    PluginDeclaration,
    PluginDefinition,
    RouteDeclaration,
)
from src.routing.dispatch import DispatchRouter, RouteScope
from src.routing.document import RouteEntry, SpecDocumentBuilder
from src.routing.middleware import MiddlewareRegistry
from src.routing.plugins import PluginDescriptor, PluginRegistry
from src.routing.validation import ValidationSpec, create_validation_middleware

if TYPE_CHECKING:
    from src.core.types import ApiDocument, Middleware

_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")
# Locations without a backing file ("plugin:<name>:<index>", "manual:<n>")
_SYNTHETIC_LOCATION = re.compile(r"^(plugin|manual):")

PLUGIN_SCHEME: Final[str] = "plugin"
MANUAL_SCHEME: Final[str] = "manual"


def derive_route_name(location: str) -> str:
    """Derive the registry key for a route from where it came from.

    File locations use the file stem; synthetic locations use the whole
    location. Characters outside ``[A-Za-z0-9_-]`` become underscores.

    Examples:
        >>> derive_route_name("routes/api/user-list.py")
        'user-list'
        >>> derive_route_name("plugin:stats:0")
        'plugin_stats_0'
    """
    raw = location if _SYNTHETIC_LOCATION.match(location) else Path(location).stem
    return _NAME_UNSAFE.sub("_", raw)


class RouteContext(BaseModel):
    """The ``(logger, config)`` pair handed to route modules and plugins."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    logger: Any = Field(..., description="Loguru logger bound to 'routes'")
    config: Settings = Field(..., description="Application settings")


class RouteSource(Protocol):
    """Where a declaration comes from; loading it again yields the current one."""

    location: str

    def load(self) -> RouteDeclaration:
        """Produce the declaration as it is now."""
        ...


class StaticRouteSource:
    """Route source for declarations that have no file behind them."""

    def __init__(self, location: str, declaration: RouteDeclaration) -> None:
        self.location = location
        self.declaration = declaration

    def load(self) -> RouteDeclaration:
        return self.declaration

    def __repr__(self) -> str:
        return f"StaticRouteSource({self.location!r})"


class RouteEndpoint(BaseModel):
    """One verb and path pair registered for a route."""

    model_config = ConfigDict(frozen=True)

    path: str
    method: str


class RouteDescriptor(BaseModel):
    """A registered route and everything needed to reload or remove it."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str = Field(..., description="Registry key derived from the source")
    kind: DeclarationKind = Field(..., description="Authoring style")
    source: str = Field(..., description="Originating file or synthetic location")
    endpoints: tuple[RouteEndpoint, ...] = Field(
        default=(), description="Registered verb and path pairs"
    )
    middleware_chain: tuple[Any, ...] = Field(
        default=(), description="Pre-handlers run before the handler"
    )
    handler: Any = Field(default=None, description="Terminal handler, if declared")
    validation: ValidationSpec | None = Field(
        default=None, description="Request validation schemas"
    )
    openapi: dict[str, Any] | None = Field(
        default=None, description="Hand-authored document fragment"
    )
    plugin: str | None = Field(default=None, description="Plugin declared or owning")
    owner: str = Field(..., description="Dispatch token of this registration")
    route_source: Any = Field(
        default=None, exclude=True, description="Source used by reload"
    )
    registered_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Registration time"
    )

    @property
    def has_config(self) -> bool:
        """Whether the route carries hand-authored document metadata."""
        return self.openapi is not None

    def summary(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "source": self.source,
            "kind": self.kind.value,
            "has_config": self.has_config,
            "plugin": self.plugin,
            "endpoints": [
                {"method": e.method.upper(), "path": e.path} for e in self.endpoints
            ],
        }


class RouteRegistry:
    """Central authority over routes, plugins, middleware and the document.

    Args:
        settings: Application settings; defaults to the cached settings.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.context = RouteContext(logger=get_logger("routes"), config=self.settings)
        self.router = DispatchRouter()
        self.middlewares = MiddlewareRegistry()
        self.plugins = PluginRegistry(self)
        self.document = SpecDocumentBuilder(self.settings.document_config)

        self._routes: dict[str, RouteDescriptor] = {}
        self._lock = asyncio.Lock()
        self._tokens = itertools.count(1)
        self._manual = itertools.count(1)

    # Registration

    async def load_source(self, source: RouteSource) -> RouteDescriptor:
        """Load a declaration from its source and register it.

        The source is loaded in a worker thread, so several sources can be
        imported at once; registration itself is serialized.

        Args:
            source: The route source.

        Returns:
            RouteDescriptor: The registered route.
        """
        declaration = await asyncio.to_thread(source.load)
        async with self._lock:
            return await self.register_declaration(declaration, source)

    async def register_declaration(
        self, declaration: RouteDeclaration, source: RouteSource
    ) -> RouteDescriptor:
        """Register a decoded declaration according to its variant."""
        if isinstance(declaration, FunctionDeclaration):
            return await self.register_function_declaration(declaration, source)

        if isinstance(declaration, PluginDeclaration):
            name = derive_route_name(source.location)
            await self.plugins.register(declaration.plugin, name)
            return self.register_object_declaration(
                declaration,
                source,
                kind=DeclarationKind.PLUGIN,
                plugin=declaration.plugin.name,
            )

        return self.register_object_declaration(declaration, source)

    async def register_function_declaration(
        self, declaration: FunctionDeclaration, source: RouteSource
    ) -> RouteDescriptor:
        """Run an imperative route module against a fresh scope and bind its routes.

        Args:
            declaration: The function declaration.
            source: Where it came from.

        Returns:
            RouteDescriptor: The registered route.
        """
        name = derive_route_name(source.location)
        scope = RouteScope(source.location)

        result = declaration.register_routes(scope, self.context)
        if inspect.isawaitable(result):
            await result

        if not scope.entries:
            logger.warning(
                "Route module registered no routes",
                route_name=name,
                source=source.location,
            )

        chain = self.middlewares.chain()
        owner = self._token(name)
        self._retire(name)
        self.router.mount(scope, owner=owner, pre_handlers=chain)

        descriptor = RouteDescriptor(
            name=name,
            kind=DeclarationKind.FUNCTION,
            source=source.location,
            endpoints=tuple(
                RouteEndpoint(path=path, method=method)
                for path, method in scope.endpoints()
            ),
            middleware_chain=chain,
            owner=owner,
            route_source=source,
        )
        return self._record(descriptor)

    def register_object_declaration(
        self,
        declaration: ObjectDeclaration,
        source: RouteSource,
        *,
        kind: DeclarationKind = DeclarationKind.OBJECT,
        plugin: str | None = None,
        include_globals: bool = True,
    ) -> RouteDescriptor:
        """Bind a declarative route for each of its verbs.

        The chain is the global middleware (unless excluded), then the
        route's own middleware, then the synthesized validation middleware.

        Args:
            declaration: The object declaration.
            source: Where it came from.
            kind: Declaration kind to record.
            plugin: Plugin the route belongs to or declares.
            include_globals: Whether global middleware runs for the route.

        Returns:
            RouteDescriptor: The registered route.
        """
        name = derive_route_name(source.location)

        chain: tuple[Middleware, ...] = (
            self.middlewares.chain() if include_globals else ()
        ) + tuple(declaration.middlewares)
        if declaration.validation is not None:
            chain += (create_validation_middleware(declaration.validation),)

        owner = self._token(name)
        self._retire(name)

        for method in declaration.methods:
            self.router.add(
                method, declaration.path, declaration.handler, chain, owner=owner
            )
            if declaration.openapi is not None:
                self.document.add_custom_path(
                    declaration.path,
                    method,
                    declaration.openapi,
                    declaration.validation,
                    owner=name,
                )

        descriptor = RouteDescriptor(
            name=name,
            kind=kind,
            source=source.location,
            endpoints=tuple(
                RouteEndpoint(path=declaration.path, method=method)
                for method in declaration.methods
            ),
            middleware_chain=chain,
            handler=declaration.handler,
            validation=declaration.validation,
            openapi=declaration.openapi,
            plugin=plugin,
            owner=owner,
            route_source=source,
        )
        return self._record(descriptor)

    def register_plugin_routes(self, plugin: PluginDefinition) -> list[str]:
        """Register a plugin's routes, retiring routes it no longer declares.

        Returns:
            list[str]: Names of the registered routes.
        """
        names = []
        for index, route in enumerate(plugin.routes):
            source = StaticRouteSource(
                f"{PLUGIN_SCHEME}:{plugin.name}:{index}", route
            )
            descriptor = self.register_object_declaration(
                route, source, kind=DeclarationKind.PLUGIN, plugin=plugin.name
            )
            names.append(descriptor.name)

        previous = self.plugins.get(plugin.name)
        if previous is not None:
            for stale in set(previous.route_names) - set(names):
                if stale in self._routes:
                    self.remove(stale)
        return names

    def add_route(
        self, declaration: Mapping[str, Any] | ObjectDeclaration
    ) -> RouteDescriptor:
        """Register a route programmatically, bypassing module loading.

        Direct routes get a synthetic ``manual_<n>`` name and skip global
        middleware. Validation is only what the caller supplies: a mapping's
        ``validate`` key is ignored, while an ``ObjectDeclaration`` built with
        a validation spec keeps its validation middleware.

        Args:
            declaration: Mapping with ``path``, ``handler`` and optionally
                ``method``, ``middlewares`` and ``openapi``.

        Returns:
            RouteDescriptor: The registered route.

        Raises:
            MissingPathError: If the path is missing.
            MissingHandlerError: If the handler is missing or not callable.
        """
        location = f"{MANUAL_SCHEME}:{next(self._manual)}"

        if isinstance(declaration, Mapping):
            if not declaration.get("path"):
                raise MissingPathError(location)
            if not callable(declaration.get("handler")):
                raise MissingHandlerError(location)
            declaration = ObjectDeclaration.from_mapping(
                {k: v for k, v in declaration.items() if k != "validate"}, location
            )

        descriptor = self.register_object_declaration(
            declaration,
            StaticRouteSource(location, declaration),
            include_globals=False,
        )
        logger.debug(
            "Manual route added: {}",
            ", ".join(f"{e.method.upper()} {e.path}" for e in descriptor.endpoints),
            route_name=descriptor.name,
        )
        return descriptor

    def register_middleware(self, name: str, middleware: Middleware) -> None:
        """Register a global middleware for routes registered from now on."""
        self.middlewares.register(name, middleware)

    async def reload(self, name: str) -> RouteDescriptor:
        """Load a route's source again and register the result.

        Raises:
            RouteNotFoundError: If no route has the name.
        """
        descriptor = self._routes.get(name)
        if descriptor is None:
            raise RouteNotFoundError(name)

        try:
            reloaded = await self.load_source(descriptor.route_source)
        except Exception:
            logger.opt(exception=True).error(
                "Failed to reload route {}", name, route_name=name
            )
            raise

        logger.info("Route reloaded: {}", name, route_name=name, source=reloaded.source)
        return reloaded

    def remove(self, name: str) -> RouteDescriptor:
        """Unregister a route, its bindings and its custom document entries.

        Raises:
            RouteNotFoundError: If no route has the name.
        """
        if name not in self._routes:
            raise RouteNotFoundError(name)

        descriptor = self._retire(name)
        self._regenerate()
        logger.info("Route removed: {}", name, route_name=name)
        return descriptor

    def _token(self, name: str) -> str:
        return f"{name}#{next(self._tokens)}"

    def _retire(self, name: str) -> RouteDescriptor | None:
        descriptor = self._routes.pop(name, None)
        if descriptor is not None:
            self.router.retract(descriptor.owner)
        self.document.drop_custom_paths(name)
        return descriptor

    def _record(self, descriptor: RouteDescriptor) -> RouteDescriptor:
        self._routes[descriptor.name] = descriptor
        self._regenerate()
        logger.info(
            "Route registered: {} ({} endpoints)",
            descriptor.name,
            len(descriptor.endpoints),
            route_name=descriptor.name,
            source=descriptor.source,
            kind=descriptor.kind.value,
        )
        return descriptor

    # Document

    def endpoints(self) -> list[RouteEntry]:
        """Every registered endpoint, in registration order."""
        return [
            RouteEntry(path=e.path, method=e.method, route_name=d.name)
            for d in self._routes.values()
            for e in d.endpoints
        ]

    def _regenerate(self) -> None:
        self.document.regenerate(self.endpoints())

    def generate_document(self) -> ApiDocument:
        """Regenerate the document and return a snapshot of it."""
        self._regenerate()
        return self.document.snapshot()

    def snapshot(self) -> ApiDocument:
        return self.document.snapshot()

    def add_schema(self, name: str, schema: dict[str, Any]) -> None:
        self.document.add_schema(name, schema)

    def export_document(self, output_path: str | Path) -> Path:
        """Write the live document to a file as indented JSON.

        Returns:
            Path: The written file.
        """
        output = Path(output_path)
        output.write_bytes(self.document.render(indent=True))
        logger.info("API document exported to: {}", output)
        return output

    # Queries

    @property
    def route_count(self) -> int:
        """Number of registered verb and path pairs."""
        return sum(len(d.endpoints) for d in self._routes.values())

    @property
    def plugin_count(self) -> int:
        return len(self.plugins)

    @property
    def middleware_count(self) -> int:
        return len(self.middlewares)

    @property
    def document_path_count(self) -> int:
        return self.document.path_count

    def get_route(self, name: str) -> RouteDescriptor | None:
        return self._routes.get(name)

    def list_routes(self) -> list[dict[str, Any]]:
        """Name, source, kind and config flag of every registered route."""
        return [d.summary() for d in self._routes.values()]

    def get_plugin(self, name: str) -> PluginDescriptor | None:
        return self.plugins.get(name)

    def list_plugins(self) -> list[PluginDescriptor]:
        return self.plugins.list_plugins()

    def health_info(self) -> dict[str, Any]:
        """Administrative summary consumed by the health endpoint."""
        return {
            "routes": self.route_count,
            "route_names": len(self._routes),
            "plugins": self.plugin_count,
            "middlewares": self.middleware_count,
            "openapi_paths": self.document_path_count,
            "status": "healthy",
        }

    def debug_router_structure(self) -> list[str]:
        """Log every live binding at debug level and return the lines."""
        lines = [
            f"{b.method.upper()} {b.path} -> {b.owner} "
            f"({len(b.pre_handlers)} pre-handlers)"
            for b in self.router.bindings()
        ]
        logger.debug("Router structure: {} bindings", len(lines))
        for line in lines:
            logger.debug("  {}", line)
        return lines

    def __contains__(self, name: object) -> bool:
        return name in self._routes

    def __len__(self) -> int:
        return len(self._routes)
