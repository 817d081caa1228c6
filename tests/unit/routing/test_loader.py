"""Unit tests for route module discovery and loading."""

import sys
from pathlib import Path
from typing import Any

import pytest
from pytest_mock import MockerFixture

from src.core.exceptions import AggregateLoadError, LoadShapeError
from src.routing.declarations import DeclarationKind, ObjectDeclaration
from src.routing.loader import FileRouteSource, RouteLoader
from src.routing.registry import RouteRegistry

OBJECT_ROUTE = """
    async def list_users(request):
        return {"users": []}

    route = {"path": "/users", "method": ["get", "post"], "handler": list_users}
"""

FUNCTION_ROUTE = """
    async def ping(request):
        return {"pong": True}

    def route(scope, context):
        scope.get("/ping", ping)
"""


@pytest.fixture
def loader(registry: RouteRegistry) -> RouteLoader:
    return RouteLoader(registry)


@pytest.mark.unit
class TestFileRouteSource:
    """Test importing a single route file."""

    def test_load_decodes_export(self, write_route: Any) -> None:
        """The route export is decoded with the file stem as route name."""
        source = FileRouteSource(write_route("users.py", OBJECT_ROUTE))

        declaration = source.load()

        assert isinstance(declaration, ObjectDeclaration)
        assert declaration.methods == ("get", "post")
        assert source.location.endswith("users.py")

    def test_missing_export(self, write_route: Any) -> None:
        """A module without a route export is a load shape error."""
        source = FileRouteSource(write_route("empty.py", "VALUE = 1\n"))

        with pytest.raises(LoadShapeError) as exc_info:
            source.load()

        assert exc_info.value.context == {"source": source.location}

    def test_missing_file(self, routes_dir: Path) -> None:
        """A file that vanished is reported as a load shape error."""
        with pytest.raises(LoadShapeError):
            FileRouteSource(routes_dir / "gone.py").load()

    def test_import_errors_propagate(self, write_route: Any) -> None:
        """Errors raised while executing the module reach the caller."""
        source = FileRouteSource(write_route("broken.py", "raise KeyError('x')\n"))

        with pytest.raises(KeyError):
            source.load()

    def test_reload_imports_fresh_module(self, write_route: Any) -> None:
        """Each load imports the file anew and forgets the previous module."""
        path = write_route("users.py", OBJECT_ROUTE)
        source = FileRouteSource(path)
        source.load()
        first_module = source._module_name

        path.write_text(path.read_text().replace("/users", "/people"))
        declaration = source.load()

        assert isinstance(declaration, ObjectDeclaration)
        assert declaration.path == "/people"
        assert source._module_name != first_module
        assert first_module not in sys.modules
        assert source._module_name in sys.modules


@pytest.mark.unit
class TestDiscovery:
    """Test finding route modules on disk."""

    def test_discover_is_sorted_and_skips_private(
        self, loader: RouteLoader, routes_dir: Path, write_route: Any
    ) -> None:
        """Files starting with _ and cache directories are skipped."""
        write_route("zeta.py", OBJECT_ROUTE)
        write_route("api/alpha.py", OBJECT_ROUTE)
        write_route("_shared.py", "")
        write_route("__pycache__/cached.py", "")
        write_route("notes.txt", "")

        found = loader.discover(routes_dir)

        assert [p.relative_to(routes_dir).as_posix() for p in found] == [
            "api/alpha.py",
            "zeta.py",
        ]

    def test_missing_directory(
        self, loader: RouteLoader, tmp_path: Path, log_records: list[dict[str, Any]]
    ) -> None:
        """A missing directory yields nothing and logs a warning."""
        assert loader.discover(tmp_path / "nowhere") == []
        assert any(
            r["level"] == "WARNING" and "Routes directory not found" in r["message"]
            for r in log_records
        )

    def test_root_that_is_a_file_raises(
        self, loader: RouteLoader, tmp_path: Path
    ) -> None:
        """Only a missing root is tolerated; a regular file is an error."""
        root = tmp_path / "routes.txt"
        root.write_text("not a directory")

        with pytest.raises(NotADirectoryError):
            loader.discover(root)

    def test_walk_errors_propagate(
        self,
        loader: RouteLoader,
        routes_dir: Path,
        write_route: Any,
        mocker: MockerFixture,
    ) -> None:
        """Errors reading a subdirectory are not silently skipped."""
        write_route("users.py", OBJECT_ROUTE)

        def walk(top: Any, onerror: Any) -> Any:
            onerror(PermissionError(13, "Permission denied", str(top)))
            yield from ()

        mocker.patch("src.routing.loader.os.walk", side_effect=walk)

        with pytest.raises(PermissionError):
            loader.discover(routes_dir)


@pytest.mark.unit
class TestLoadAll:
    """Test loading a whole directory."""

    async def test_load_all_registers_every_module(
        self,
        loader: RouteLoader,
        registry: RouteRegistry,
        routes_dir: Path,
        write_route: Any,
    ) -> None:
        """Object and function modules are registered under their stems."""
        write_route("users.py", OBJECT_ROUTE)
        write_route("health/ping.py", FUNCTION_ROUTE)

        loaded = await loader.load_all(routes_dir)

        assert sorted(d.name for d in loaded) == ["ping", "users"]
        assert registry.get_route("ping").kind is DeclarationKind.FUNCTION  # type: ignore[union-attr]
        assert registry.route_count == 3
        assert set(registry.snapshot()["paths"]) == {"/users", "/ping"}

    async def test_failures_are_aggregated(
        self,
        loader: RouteLoader,
        registry: RouteRegistry,
        routes_dir: Path,
        write_route: Any,
        log_records: list[dict[str, Any]],
    ) -> None:
        """Failing modules are reported together; siblings stay registered."""
        write_route("users.py", OBJECT_ROUTE)
        bad_shape = write_route("numbers.py", "route = 42\n")
        bad_import = write_route("broken.py", "import not_a_real_module_xyz\n")

        with pytest.raises(AggregateLoadError) as exc_info:
            await loader.load_all(routes_dir)

        error = exc_info.value
        assert error.count == 2
        assert set(error.failures) == {str(bad_shape), str(bad_import)}
        assert isinstance(error.failures[str(bad_shape)], LoadShapeError)
        assert "users" in registry
        assert len(registry) == 1
        assert any(
            "Route loading completed: 1 successful, 2 failed" in r["message"]
            for r in log_records
        )

    async def test_empty_directory(
        self, loader: RouteLoader, routes_dir: Path
    ) -> None:
        """An empty directory loads nothing without raising."""
        assert await loader.load_all(routes_dir) == []

    async def test_load_is_traced(
        self,
        loader: RouteLoader,
        routes_dir: Path,
        write_route: Any,
        mocker: MockerFixture,
    ) -> None:
        """Directory and file loads run inside named trace spans."""
        spy = mocker.patch("src.routing.loader.trace_operation")
        write_route("users.py", OBJECT_ROUTE)

        await loader.load_all(routes_dir)

        names = [c.args[0] for c in spy.call_args_list]
        assert names == ["routes.load_all", "routes.load_one"]

    async def test_repeated_loads_do_not_grow_module_table(
        self, loader: RouteLoader, routes_dir: Path, write_route: Any
    ) -> None:
        """Loading a directory again replaces its modules in sys.modules."""
        write_route("users.py", OBJECT_ROUTE)
        write_route("ping.py", FUNCTION_ROUTE)

        def route_modules() -> int:
            return sum(
                1 for name in sys.modules if name.startswith("routeforge_routes.")
            )

        await loader.load_all(routes_dir)
        after_first = route_modules()
        await loader.load_all(routes_dir)
        await RouteLoader(loader.registry).load_all(routes_dir)

        assert route_modules() == after_first

    async def test_reload_picks_up_edits(
        self,
        loader: RouteLoader,
        registry: RouteRegistry,
        write_route: Any,
    ) -> None:
        """Reloading a file route re-imports the module from disk."""
        path = write_route("users.py", OBJECT_ROUTE)
        await loader.load_one(path)

        path.write_text(path.read_text().replace("/users", "/members"))
        await registry.reload("users")

        assert set(registry.snapshot()["paths"]) == {"/members"}
        assert [e.path for e in registry.endpoints()] == ["/members", "/members"]
