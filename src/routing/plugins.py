"""Plugin registration with dependency checks.

A plugin is registered in a fixed sequence, and the sequence is the whole
contract:

1. every declared dependency must already be registered
2. the ``initialize`` hook runs to completion
3. the plugin's middleware joins the global chain as ``<name>_middleware``
4. the plugin's own routes are registered as object declarations
5. the plugin descriptor is recorded

Dependencies are never resolved lazily; a plugin must be loaded after the
plugins it depends on. Plugins cannot be unregistered.
"""

from __future__ import annotations

import inspect
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from loguru import logger
from pydantic import BaseModel, Field

from src.core.exceptions import DependencyNotFoundError, MissingPluginNameError

if TYPE_CHECKING:
    from src.routing.declarations import PluginDefinition
    from src.routing.registry import RouteRegistry


class PluginDescriptor(BaseModel):
    """A registered plugin; immutable once recorded."""

    model_config = {"frozen": True}

    name: str = Field(..., description="Unique plugin name")
    version: str = Field(..., description="Plugin version")
    dependencies: tuple[str, ...] = Field(
        default=(), description="Plugins registered before this one"
    )
    route_name: str | None = Field(
        default=None, description="Route whose declaration carried the plugin"
    )
    middleware_name: str | None = Field(
        default=None, description="Name of the contributed global middleware"
    )
    route_names: tuple[str, ...] = Field(
        default=(), description="Routes contributed by the plugin"
    )
    registered_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Registration time",
    )


class PluginRegistry:
    """Tracks registered plugins for one route registry.

    Args:
        routes: The registry that receives plugin middleware and routes.
    """

    def __init__(self, routes: RouteRegistry) -> None:
        self.routes = routes
        self._plugins: dict[str, PluginDescriptor] = {}

    async def register(
        self, plugin: PluginDefinition, route_name: str | None = None
    ) -> PluginDescriptor:
        """Register a plugin and everything it contributes.

        Registering a plugin name again replaces the earlier registration,
        which is what happens when the declaring route is reloaded.

        Args:
            plugin: The decoded plugin definition.
            route_name: Name of the route that declared the plugin.

        Returns:
            PluginDescriptor: The recorded plugin.

        Raises:
            MissingPluginNameError: If the plugin has no name.
            DependencyNotFoundError: If a dependency is not registered yet.
        """
        if not plugin.name:
            raise MissingPluginNameError(route_name)

        for dependency in plugin.dependencies:
            if dependency not in self._plugins:
                raise DependencyNotFoundError(plugin.name, dependency)

        if plugin.initialize is not None:
            result = plugin.initialize(self.routes.context)
            if inspect.isawaitable(result):
                await result

        middleware_name = None
        if plugin.middleware is not None:
            middleware_name = f"{plugin.name}_middleware"
            self.routes.register_middleware(middleware_name, plugin.middleware)

        route_names = self.routes.register_plugin_routes(plugin)

        descriptor = PluginDescriptor(
            name=plugin.name,
            version=plugin.version,
            dependencies=plugin.dependencies,
            route_name=route_name,
            middleware_name=middleware_name,
            route_names=tuple(route_names),
        )
        self._plugins[plugin.name] = descriptor

        logger.info(
            "Plugin registered: {}@{}",
            plugin.name,
            plugin.version,
            plugin=plugin.name,
            route_name=route_name,
        )
        return descriptor

    def get(self, name: str) -> PluginDescriptor | None:
        return self._plugins.get(name)

    def list_plugins(self) -> list[PluginDescriptor]:
        return list(self._plugins.values())

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins
