"""Route declarations decoded from a route module's primary export.

A route module exports exactly one value named ``route``. It is decoded once,
at load time, into one of three declaration variants; nothing downstream
inspects the raw export again.

- **FunctionDeclaration**: a callable ``route(scope, context)`` that registers
  sub-routes imperatively on a ``RouteScope``
- **ObjectDeclaration**: a mapping describing one handler for one or more
  verbs, with optional pre-handlers, validation schemas and document metadata
- **PluginDeclaration**: an object declaration that also carries a plugin
  definition, registered before the route itself
"""

from __future__ import annotations

import copy
import inspect
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from src.core.exceptions import (
    LoadShapeError,
    MissingHandlerError,
    MissingPluginNameError,
)
from src.routing.dispatch import (
    ensure_middlewares,
    normalize_methods,
    normalize_path,
)
from src.routing.validation import ValidationSpec


class DeclarationKind(str, Enum):
    """Authoring style that produced a route."""

    FUNCTION = "function"
    OBJECT = "object"
    PLUGIN = "plugin"


class FunctionDeclaration(BaseModel):
    """Imperative route module: a callable receiving a scope and a context."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    kind: ClassVar[DeclarationKind] = DeclarationKind.FUNCTION

    register_routes: Callable[..., Any] = Field(
        ..., description="Callable invoked with (scope, context)"
    )


class ObjectDeclaration(BaseModel):
    """Declarative route: one handler bound to one or more verbs."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    kind: ClassVar[DeclarationKind] = DeclarationKind.OBJECT

    path: str = Field(default="/", description="Path template")
    methods: tuple[str, ...] = Field(
        default=("get",), description="Lower-case HTTP verbs"
    )
    handler: Callable[..., Any] = Field(..., description="Terminal handler")
    middlewares: tuple[Any, ...] = Field(
        default=(), description="Route-specific pre-handlers"
    )
    validation: ValidationSpec | None = Field(
        default=None, description="Request validation schemas"
    )
    openapi: dict[str, Any] | None = Field(
        default=None, description="Hand-authored document fragment"
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], source: str) -> ObjectDeclaration:
        """Decode a declaration mapping, checking handler and verbs.

        Args:
            data: The exported mapping.
            source: Where the mapping came from, for error context.

        Returns:
            ObjectDeclaration: The decoded declaration.

        Raises:
            MissingHandlerError: If ``handler`` is absent or not callable.
            InvalidMethodError: If any declared verb is unsupported.
            LoadShapeError: If ``validate`` or ``openapi`` is malformed.
        """
        return cls(**_object_fields(data, source))


class PluginDefinition(BaseModel):
    """Named, versioned extension carried by a declaration."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str = Field(..., min_length=1, description="Unique plugin name")
    version: str = Field(default="1.0.0", description="Plugin version")
    dependencies: tuple[str, ...] = Field(
        default=(), description="Plugins that must be registered first"
    )
    initialize: Callable[..., Any] | None = Field(
        default=None, description="One-shot hook run with the route context"
    )
    middleware: Callable[..., Any] | None = Field(
        default=None, description="Global pre-handler contributed by the plugin"
    )
    routes: tuple[ObjectDeclaration, ...] = Field(
        default=(), description="Object declarations registered with the plugin"
    )

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Any], source: str, route_name: str | None = None
    ) -> PluginDefinition:
        """Decode a plugin mapping.

        Args:
            data: The ``plugin`` entry of a declaration.
            source: Where the declaration came from, for error context.
            route_name: Name of the declaring route, for error context.

        Returns:
            PluginDefinition: The decoded plugin.

        Raises:
            MissingPluginNameError: If the plugin has no name.
        """
        if not isinstance(data, Mapping):
            raise LoadShapeError(source, "plugin must be a mapping")

        name = data.get("name")
        if not name or not isinstance(name, str):
            raise MissingPluginNameError(route_name)

        initialize = data.get("initialize")
        if initialize is not None and not callable(initialize):
            raise LoadShapeError(source, f"plugin {name} initialize is not callable")

        middleware = data.get("middleware")
        if middleware is not None:
            (middleware,) = ensure_middlewares(middleware, f"{name}_middleware")

        dependencies = data.get("dependencies") or ()
        if isinstance(dependencies, str):
            dependencies = (dependencies,)

        routes = data.get("routes") or ()
        if isinstance(routes, Mapping) or not isinstance(routes, list | tuple):
            raise LoadShapeError(source, f"plugin {name} routes must be a list")

        return cls(
            name=name,
            version=str(data.get("version") or "1.0.0"),
            dependencies=tuple(str(dep) for dep in dependencies),
            initialize=initialize,
            middleware=middleware,
            routes=tuple(
                _decode_plugin_route(route, f"plugin:{name}") for route in routes
            ),
        )


class PluginDeclaration(ObjectDeclaration):
    """Object declaration whose plugin is registered before the route."""

    kind: ClassVar[DeclarationKind] = DeclarationKind.PLUGIN

    plugin: PluginDefinition = Field(..., description="Plugin registered first")


type RouteDeclaration = FunctionDeclaration | ObjectDeclaration | PluginDeclaration


def _object_fields(data: Mapping[str, Any], source: str) -> dict[str, Any]:
    handler = data.get("handler")
    if handler is None or not callable(handler):
        raise MissingHandlerError(source)

    try:
        validation = ValidationSpec.from_export(data.get("validate"))
    except TypeError as e:
        raise LoadShapeError(source, str(e)) from e

    openapi = data.get("openapi")
    if openapi is not None and not isinstance(openapi, Mapping):
        raise LoadShapeError(source, "openapi must be a mapping")

    return {
        "path": normalize_path(str(data.get("path") or "/"), source),
        "methods": normalize_methods(data.get("method", "get"), source),
        "handler": handler,
        "middlewares": ensure_middlewares(data.get("middlewares"), source),
        "validation": validation,
        "openapi": copy.deepcopy(dict(openapi)) if openapi is not None else None,
    }


def _decode_plugin_route(route: object, source: str) -> ObjectDeclaration:
    if isinstance(route, ObjectDeclaration):
        return route
    if not isinstance(route, Mapping):
        raise LoadShapeError(source, "plugin routes must be declaration mappings")
    return ObjectDeclaration.from_mapping(route, source)


def decode_declaration(
    export: object, source: str, route_name: str | None = None
) -> RouteDeclaration:
    """Decode a route module's primary export into a declaration variant.

    Args:
        export: The exported value.
        source: Where the export came from, for error context.
        route_name: Name the route will be registered under.

    Returns:
        RouteDeclaration: The decoded declaration.

    Raises:
        LoadShapeError: If the export is neither callable nor a mapping.
        RegistrationError: If the mapping is an invalid declaration.
    """
    if isinstance(export, FunctionDeclaration | ObjectDeclaration):
        return export

    if isinstance(export, Mapping):
        if export.get("plugin"):
            plugin = PluginDefinition.from_mapping(export["plugin"], source, route_name)
            return PluginDeclaration(**_object_fields(export, source), plugin=plugin)
        return ObjectDeclaration.from_mapping(export, source)

    if callable(export) and not inspect.isclass(export):
        return FunctionDeclaration(register_routes=export)

    raise LoadShapeError(source, f"unsupported export type {type(export).__name__}")
