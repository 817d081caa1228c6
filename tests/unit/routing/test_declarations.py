"""Unit tests for decoding route module exports into declarations."""

from typing import Any

import pytest
from pydantic import BaseModel

from src.core.exceptions import (
    InvalidMethodError,
    InvalidMiddlewareError,
    LoadShapeError,
    MissingHandlerError,
    MissingPluginNameError,
)
from src.routing.declarations import (
    DeclarationKind,
    FunctionDeclaration,
    ObjectDeclaration,
    PluginDeclaration,
    PluginDefinition,
    decode_declaration,
)
from src.routing.validation import PassthroughValidator, PydanticModelValidator

SOURCE = "routes/widgets.py"


async def handler(request: Any) -> dict[str, bool]:
    return {"ok": True}


class Widget(BaseModel):
    name: str


@pytest.mark.unit
class TestDecodeDeclaration:
    """Test the three declaration variants and rejected shapes."""

    def test_callable_becomes_function_declaration(self) -> None:
        """A plain function export is an imperative route module."""

        def route(scope: Any, context: Any) -> None:
            return None

        declaration = decode_declaration(route, SOURCE)

        assert isinstance(declaration, FunctionDeclaration)
        assert declaration.register_routes is route
        assert declaration.kind is DeclarationKind.FUNCTION

    def test_mapping_becomes_object_declaration(self) -> None:
        """A mapping with a handler is decoded with normalized fields."""
        declaration = decode_declaration(
            {"path": "widgets", "method": ["POST", "put"], "handler": handler},
            SOURCE,
        )

        assert isinstance(declaration, ObjectDeclaration)
        assert declaration.path == "/widgets"
        assert declaration.methods == ("post", "put")
        assert declaration.middlewares == ()
        assert declaration.validation is None
        assert declaration.openapi is None

    def test_defaults_to_get_on_root(self) -> None:
        """Path and method default to / and GET."""
        declaration = decode_declaration({"handler": handler}, SOURCE)

        assert isinstance(declaration, ObjectDeclaration)
        assert declaration.path == "/"
        assert declaration.methods == ("get",)

    def test_existing_declaration_passes_through(self) -> None:
        """Already decoded declarations are returned unchanged."""
        declaration = ObjectDeclaration(handler=handler)

        assert decode_declaration(declaration, SOURCE) is declaration

    @pytest.mark.parametrize("export", [42, "route", None, ["a"], Widget])
    def test_unsupported_export_is_load_shape_error(self, export: Any) -> None:
        """Anything that is not callable or a mapping is rejected."""
        with pytest.raises(LoadShapeError):
            decode_declaration(export, SOURCE)

    def test_missing_handler(self) -> None:
        """A mapping without a callable handler is rejected."""
        with pytest.raises(MissingHandlerError):
            decode_declaration({"path": "/widgets", "handler": "nope"}, SOURCE)

    def test_invalid_method_rejects_whole_declaration(self) -> None:
        """One unsupported verb rejects every verb of the declaration."""
        with pytest.raises(InvalidMethodError):
            decode_declaration(
                {"path": "/widgets", "method": ["get", "bogus"], "handler": handler},
                SOURCE,
            )

    def test_non_callable_middleware(self) -> None:
        """Route middleware must be callable."""
        with pytest.raises(InvalidMiddlewareError):
            decode_declaration({"handler": handler, "middlewares": [1]}, SOURCE)

    def test_validate_must_be_mapping(self) -> None:
        """A validate entry that is not a mapping is a load shape error."""
        with pytest.raises(LoadShapeError):
            decode_declaration({"handler": handler, "validate": "body"}, SOURCE)

    def test_openapi_must_be_mapping(self) -> None:
        """Hand-authored metadata must be a mapping."""
        with pytest.raises(LoadShapeError):
            decode_declaration({"handler": handler, "openapi": ["x"]}, SOURCE)

    def test_validation_schemas_are_wrapped(self) -> None:
        """Declared schemas are wrapped in their validator adapters."""
        declaration = decode_declaration(
            {"handler": handler, "validate": {"body": Widget, "query": object()}},
            SOURCE,
        )

        assert isinstance(declaration, ObjectDeclaration)
        assert declaration.validation is not None
        assert isinstance(declaration.validation.body, PydanticModelValidator)
        assert isinstance(declaration.validation.query, PassthroughValidator)
        assert declaration.validation.params is None

    def test_openapi_is_copied(self) -> None:
        """Later edits to the exported metadata do not leak into the route."""
        metadata = {"summary": "List widgets", "tags": ["Widgets"]}
        declaration = decode_declaration(
            {"handler": handler, "openapi": metadata}, SOURCE
        )
        metadata["tags"].append("Changed")

        assert isinstance(declaration, ObjectDeclaration)
        assert declaration.openapi == {"summary": "List widgets", "tags": ["Widgets"]}


@pytest.mark.unit
class TestPluginDeclarations:
    """Test decoding of declarations that carry a plugin."""

    def test_plugin_declaration(self) -> None:
        """A mapping with a plugin entry decodes to a PluginDeclaration."""

        async def audit(request: Any, call_next: Any) -> Any:
            return await call_next(request)

        declaration = decode_declaration(
            {
                "path": "/stats",
                "handler": handler,
                "plugin": {
                    "name": "stats",
                    "dependencies": "core",
                    "middleware": audit,
                    "routes": [{"path": "/stats/raw", "handler": handler}],
                },
            },
            SOURCE,
            "widgets",
        )

        assert isinstance(declaration, PluginDeclaration)
        assert declaration.kind is DeclarationKind.PLUGIN
        plugin = declaration.plugin
        assert plugin.name == "stats"
        assert plugin.version == "1.0.0"
        assert plugin.dependencies == ("core",)
        assert plugin.middleware is audit
        assert plugin.routes[0].path == "/stats/raw"

    def test_plugin_without_name(self) -> None:
        """A plugin without a name is rejected with the declaring route's name."""
        with pytest.raises(MissingPluginNameError) as exc_info:
            decode_declaration(
                {"handler": handler, "plugin": {"version": "2.0.0"}},
                SOURCE,
                "widgets",
            )

        assert exc_info.value.context == {"route_name": "widgets"}

    def test_plugin_routes_must_be_list(self) -> None:
        """Plugin routes are a list of declaration mappings."""
        with pytest.raises(LoadShapeError):
            PluginDefinition.from_mapping(
                {"name": "stats", "routes": {"path": "/x"}}, SOURCE
            )

    def test_plugin_route_errors_surface(self) -> None:
        """An invalid plugin route rejects the plugin."""
        with pytest.raises(MissingHandlerError):
            PluginDefinition.from_mapping(
                {"name": "stats", "routes": [{"path": "/x"}]}, SOURCE
            )

    def test_plugin_initialize_must_be_callable(self) -> None:
        """The initialize hook must be callable when present."""
        with pytest.raises(LoadShapeError):
            PluginDefinition.from_mapping({"name": "stats", "initialize": 1}, SOURCE)
