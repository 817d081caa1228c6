"""Route loader: discover and import route modules from a directory.

Scans a routes directory recursively for Python modules. Each module must
export a value named ``route``; the loader decodes it and hands it to the
registry::

    routes/health_extra.py      -> route = {"path": "/status", "handler": ...}
    routes/api/users.py         -> def route(scope, context): ...
    routes/_shared.py           -> skipped (private helper)

Files are imported concurrently in worker threads, then registered one at a
time. A failing module never stops the others from loading; failures are
collected and reported together once every module has been attempted.
"""

from __future__ import annotations

import asyncio
import importlib.util
import os
import itertools
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from src.core.constants import ROUTE_EXPORT_NAME
from src.core.exceptions import AggregateLoadError, LoadShapeError
from src.core.observability import trace_operation
from src.routing.declarations import decode_declaration

if TYPE_CHECKING:
    from types import ModuleType

    from src.routing.declarations import RouteDeclaration
    from src.routing.registry import RouteDescriptor, RouteRegistry

_MODULE_PREFIX = "routeforge_routes"
# Every import gets a fresh module name so reloads never hit a stale module
_import_counter = itertools.count(1)
# Module name of the latest import of each route file, shared by all sources
_live_modules: dict[Path, str] = {}


class FileRouteSource:
    """Route source backed by a Python file; loading it re-imports the file.

    Args:
        path: The route module's path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.location = str(self.path)
        self._module_name: str | None = None

    def load(self) -> RouteDeclaration:
        """Import the file and decode its ``route`` export.

        Raises:
            LoadShapeError: If the file cannot be imported or lacks ``route``.
        """
        module = self._import()
        if not hasattr(module, ROUTE_EXPORT_NAME):
            raise LoadShapeError(
                self.location, f"module does not export '{ROUTE_EXPORT_NAME}'"
            )
        return decode_declaration(
            getattr(module, ROUTE_EXPORT_NAME), self.location, self.path.stem
        )

    def _import(self) -> ModuleType:
        module_name = f"{_MODULE_PREFIX}.{self.path.stem}_{next(_import_counter)}"

        spec = importlib.util.spec_from_file_location(module_name, self.path)
        if spec is None or spec.loader is None:
            raise LoadShapeError(self.location, "not an importable Python file")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except FileNotFoundError as e:
            sys.modules.pop(module_name, None)
            raise LoadShapeError(self.location, "file not found") from e
        except Exception:
            sys.modules.pop(module_name, None)
            raise

        previous = _live_modules.get(self.path.resolve())
        if previous is not None:
            sys.modules.pop(previous, None)
        _live_modules[self.path.resolve()] = module_name
        self._module_name = module_name
        return module

    def __repr__(self) -> str:
        return f"FileRouteSource({self.location!r})"


def _raise_walk_error(error: OSError) -> None:
    raise error


class RouteLoader:
    """Loads route modules from disk into a registry.

    Args:
        registry: The registry that receives the declarations.
    """

    def __init__(self, registry: RouteRegistry) -> None:
        self.registry = registry

    def discover(self, root: str | Path) -> list[Path]:
        """Find route modules under a directory, in a stable order.

        Skips files whose names start with ``_`` and anything inside
        ``__pycache__``. A missing directory yields no modules; any other
        error while walking the tree (a root that is not a directory, an
        unreadable subdirectory) propagates.

        Raises:
            OSError: If the tree exists but cannot be traversed.
        """
        root = Path(root)
        if not root.exists():
            logger.warning("Routes directory not found: {}", root)
            return []

        found: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
            dirnames[:] = [name for name in dirnames if name != "__pycache__"]
            found.extend(
                Path(dirpath) / name
                for name in filenames
                if name.endswith(".py") and not name.startswith("_")
            )
        return sorted(found)

    async def load_one(self, path: str | Path) -> RouteDescriptor:
        """Import a single route module and register it."""
        with trace_operation("routes.load_one", source=str(path)):
            return await self.registry.load_source(FileRouteSource(path))

    async def load_all(self, root: str | Path) -> list[RouteDescriptor]:
        """Load every route module under a directory.

        Args:
            root: The routes directory.

        Returns:
            list[RouteDescriptor]: Routes registered successfully.

        Raises:
            AggregateLoadError: If one or more modules failed. Every module
                that loaded stays registered.
        """
        files = self.discover(root)

        with trace_operation(
            "routes.load_all", directory=str(root), files=len(files)
        ):
            results = await asyncio.gather(
                *(self.load_one(path) for path in files), return_exceptions=True
            )

        loaded: list[RouteDescriptor] = []
        failures: dict[str, Exception] = {}
        for path, result in zip(files, results, strict=True):
            if isinstance(result, Exception):
                failures[str(path)] = result
                logger.opt(exception=result).error(
                    "Failed to load route file {}: {}",
                    path,
                    result,
                    source=str(path),
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                loaded.append(result)

        logger.info(
            "Route loading completed: {} successful, {} failed",
            len(loaded),
            len(failures),
        )

        if failures:
            raise AggregateLoadError(failures)
        return loaded
