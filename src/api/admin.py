"""Administrative endpoints for inspecting and managing registered routes.

Mounted only when ``ROUTES_CONFIG__ADMIN_ENABLED`` is true. Every endpoint
works on the registry stored in ``app.state.registry``.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import Response

from src.core.exceptions import RouteNotFoundError
from src.routing.registry import RouteRegistry


def get_registry(request: Request) -> RouteRegistry:
    """Dependency returning the application's route registry."""
    return request.app.state.registry


RegistryDep = Annotated[RouteRegistry, Depends(get_registry)]

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/routes")
async def list_routes(registry: RegistryDep) -> dict[str, Any]:
    """List every registered route with its source and endpoints."""
    return {"count": len(registry), "routes": registry.list_routes()}


@router.get("/routes/{name}")
async def get_route(name: str, registry: RegistryDep) -> dict[str, Any]:
    """Describe one registered route.

    Raises:
        RouteNotFoundError: If no route has the name.
    """
    descriptor = registry.get_route(name)
    if descriptor is None:
        raise RouteNotFoundError(name)
    return {
        **descriptor.summary(),
        "middlewares": len(descriptor.middleware_chain),
        "validated": descriptor.validation is not None,
        "registered_at": descriptor.registered_at,
    }


@router.post("/routes/{name}/reload")
async def reload_route(name: str, registry: RegistryDep) -> dict[str, Any]:
    """Load a route's source again and replace its registration."""
    descriptor = await registry.reload(name)
    return {"reloaded": True, **descriptor.summary()}


@router.delete("/routes/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_route(name: str, registry: RegistryDep) -> Response:
    """Unregister a route and drop it from the API document."""
    registry.remove(name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/plugins")
async def list_plugins(registry: RegistryDep) -> dict[str, Any]:
    """List registered plugins in registration order."""
    plugins = registry.list_plugins()
    return {
        "count": len(plugins),
        "plugins": [plugin.model_dump(mode="json") for plugin in plugins],
    }
