"""Named global pre-handlers.

Registration order matters: the registry snapshots the current chain when a
route is registered, so a middleware only affects routes registered after
it. Re-registering an existing name replaces the function in place.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from src.core.exceptions import InvalidMiddlewareError

if TYPE_CHECKING:
    from src.core.types import Middleware


class MiddlewareRegistry:
    """Insertion-ordered mapping of middleware name to function."""

    def __init__(self) -> None:
        self._middlewares: dict[str, Middleware] = {}

    def register(self, name: str, middleware: Middleware) -> None:
        """Register a global middleware under a name.

        Raises:
            InvalidMiddlewareError: If the middleware is not callable.
        """
        if not callable(middleware):
            raise InvalidMiddlewareError(name)
        self._middlewares[name] = middleware
        logger.debug("Middleware registered: {}", name, middleware=name)

    def chain(self) -> tuple[Middleware, ...]:
        """Current global chain, in registration order."""
        return tuple(self._middlewares.values())

    def names(self) -> list[str]:
        return list(self._middlewares)

    def __len__(self) -> int:
        return len(self._middlewares)

    def __contains__(self, name: object) -> bool:
        return name in self._middlewares
