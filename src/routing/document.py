"""Live API document built from the registered routes.

The builder owns one OpenAPI 3 document. Its static parts (info, servers,
security schemes and reusable responses) are fixed at construction. Its
``paths`` are recomputed on every registry mutation:

- **Custom entries** come from hand-authored ``openapi`` metadata. They are
  flagged once and survive every regeneration untouched.
- **Auto entries** are rebuilt from scratch for every registered endpoint
  that has no custom entry. An endpoint that is no longer registered simply
  does not get one, so no stale entry can survive.

Auto entries are derived from the path and verb alone: summary and
description templates per verb, a tag from the last literal path segment,
one integer or string parameter per ``{name}`` token, a generic request body
for body verbs, and default responses per verb.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Final

import orjson
from loguru import logger
from pydantic import BaseModel, ConfigDict

from src.core.constants import BODY_VERBS
from src.routing.validation import schema_parameters

if TYPE_CHECKING:
    from src.core.config import DocumentConfig
    from src.core.types import ApiDocument, OperationObject
    from src.routing.validation import ValidationSpec, Validator

DEFAULT_TAG: Final[str] = "General"
DEFAULT_RESOURCE: Final[str] = "resource"
SECURITY_REQUIREMENTS: Final[list[dict[str, list[str]]]] = [
    {"bearerAuth": []},
    {"apiKeyAuth": []},
]

_PARAMETER_TOKEN = re.compile(r"{([^}]+)}")
# Starlette converters ({id:int}) are not part of the documented template
_CONVERTER_SUFFIX = re.compile(r"{([^}:]+):[^}]+}")

SUMMARIES: Final[dict[str, str]] = {
    "get": "Get {resource}",
    "post": "Create {resource}",
    "put": "Update {resource}",
    "patch": "Partially update {resource}",
    "delete": "Delete {resource}",
}

DESCRIPTIONS: Final[dict[str, str]] = {
    "get": "Retrieve {resource} items",
    "post": "Create a new {resource} with the provided data",
    "put": "Update an existing {resource} with new data",
    "patch": "Partially update an existing {resource}",
    "delete": "Remove an existing {resource}",
}


class RouteEntry(BaseModel):
    """One registered endpoint as seen by the document builder."""

    model_config = ConfigDict(frozen=True)

    path: str
    method: str
    route_name: str


def _error_schema(**extra_properties: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "error_code": {"type": "string"},
            "message": {"type": "string"},
            **extra_properties,
            "correlation_id": {"type": "string", "nullable": True},
            "request_id": {"type": "string", "nullable": True},
        },
    }


def _json_content(schema: dict[str, Any]) -> dict[str, Any]:
    return {"application/json": {"schema": schema}}


def openapi_path(path: str) -> str:
    """Document form of a route path (converters stripped)."""
    return _CONVERTER_SUFFIX.sub(r"{\1}", path)


def _segments(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]


def resource_name(path: str) -> str:
    """Last path segment, parameter or not, or ``resource`` for the root."""
    segments = _segments(openapi_path(path))
    return segments[-1] if segments else DEFAULT_RESOURCE


def tag_for_path(path: str) -> str:
    """Capitalized last literal path segment, or ``General``."""
    literal = [s for s in _segments(path) if not s.startswith("{")]
    if not literal:
        return DEFAULT_TAG
    resource = literal[-1]
    return resource[:1].upper() + resource[1:]


def path_parameters(path: str) -> list[dict[str, Any]]:
    """One required path parameter per ``{name}`` token.

    Tokens whose name contains ``id`` (in any case) are typed ``integer``,
    all others ``string``.
    """
    parameters = []
    for name in _PARAMETER_TOKEN.findall(openapi_path(path)):
        parameters.append(
            {
                "name": name,
                "in": "path",
                "required": True,
                "description": f"{name} identifier",
                "schema": {"type": "integer" if "id" in name.lower() else "string"},
            }
        )
    return parameters


def summary_for(method: str, resource: str) -> str:
    template = SUMMARIES.get(method.lower())
    if template is None:
        return f"{method.upper()} {resource}"
    return template.format(resource=resource)


def description_for(method: str, resource: str) -> str:
    template = DESCRIPTIONS.get(method.lower())
    if template is None:
        return f"Perform {method.upper()} operation on {resource}"
    return template.format(resource=resource)


def default_responses(method: str) -> dict[str, Any]:
    """Default responses per verb; unknown verbs get the GET responses."""
    not_found = {"$ref": "#/components/responses/NotFoundError"}
    common = {
        "400": {"$ref": "#/components/responses/ValidationError"},
        "500": {
            "description": "Internal server error",
            "content": _json_content(_error_schema()),
        },
    }

    def success(description: str, data: str) -> dict[str, Any]:
        return {
            "description": description,
            "content": _json_content({"type": "object", "description": data}),
        }

    by_method: dict[str, dict[str, Any]] = {
        "get": {
            "200": success("Successful response", "Response data"),
            "404": not_found,
        },
        "post": {
            "201": success("Resource created successfully", "Created resource data"),
        },
        "put": {
            "200": success("Resource updated successfully", "Updated resource data"),
            "404": not_found,
        },
        "patch": {
            "200": success(
                "Resource partially updated successfully", "Updated resource data"
            ),
            "404": not_found,
        },
        "delete": {
            "204": {"description": "Resource deleted successfully"},
            "404": not_found,
        },
    }
    return {**by_method.get(method.lower(), by_method["get"]), **common}


class _CustomEntry(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    owner: str | None
    operation: dict[str, Any]


class SpecDocumentBuilder:
    """Owns the API document and recomputes its paths on demand.

    Args:
        config: Static document settings (info, servers, public paths).
    """

    def __init__(self, config: DocumentConfig) -> None:
        self.config = config
        self._custom: dict[tuple[str, str], list[_CustomEntry]] = {}
        self._tags: list[str] = []
        self._document: ApiDocument = self._skeleton()

    def _skeleton(self) -> ApiDocument:
        info: dict[str, Any] = {
            "title": self.config.title,
            "version": self.config.version,
            "description": self.config.description,
            "license": dict(self.config.license),
        }
        if self.config.contact:
            info["contact"] = dict(self.config.contact)

        return {
            "openapi": self.config.openapi_version,
            "info": info,
            "servers": [dict(server) for server in self.config.servers],
            "paths": {},
            "components": {
                "schemas": {},
                "securitySchemes": {
                    "bearerAuth": {
                        "type": "http",
                        "scheme": "bearer",
                        "bearerFormat": "JWT",
                    },
                    "apiKeyAuth": {
                        "type": "apiKey",
                        "in": "header",
                        "name": "X-API-Key",
                    },
                },
                "responses": {
                    "UnauthorizedError": {
                        "description": "Access token is missing or invalid",
                        "content": _json_content(_error_schema()),
                    },
                    "NotFoundError": {
                        "description": "Resource not found",
                        "content": _json_content(_error_schema()),
                    },
                    "ValidationError": {
                        "description": "Validation error",
                        "content": _json_content(
                            _error_schema(
                                details={
                                    "type": "object",
                                    "properties": {
                                        "validation_errors": {
                                            "type": "object",
                                            "additionalProperties": {
                                                "type": "array",
                                                "items": {"type": "string"},
                                            },
                                        }
                                    },
                                }
                            )
                        ),
                    },
                },
            },
            "tags": [],
        }

    def _see_tags(self, tags: Iterable[object]) -> None:
        for tag in tags:
            name = tag.get("name") if isinstance(tag, dict) else tag
            if isinstance(name, str) and name not in self._tags:
                self._tags.append(name)
        self._document["tags"] = [{"name": name} for name in self._tags]

    def requires_auth(self, path: str) -> bool:
        """Whether an auto entry for the path carries security requirements."""
        return not any(path.startswith(prefix) for prefix in self.config.public_paths)

    def build_operation(self, path: str, method: str) -> OperationObject:
        """Build the auto-generated operation object for one endpoint."""
        path = openapi_path(path)
        method = method.lower()
        resource = resource_name(path)

        operation: OperationObject = {
            "summary": summary_for(method, resource),
            "description": description_for(method, resource),
            "tags": [tag_for_path(path)],
            "parameters": path_parameters(path),
            "responses": default_responses(method),
        }

        if self.requires_auth(path):
            operation["security"] = copy.deepcopy(SECURITY_REQUIREMENTS)

        if method in BODY_VERBS:
            operation["requestBody"] = {
                "description": f"{resource} data",
                "required": True,
                "content": _json_content(
                    {"type": "object", "description": f"{resource} object"}
                ),
            }

        return operation

    def regenerate(self, entries: Iterable[RouteEntry]) -> None:
        """Recompute ``paths`` from the currently registered endpoints.

        Custom entries are kept as they are. Every other endpoint gets a
        freshly built auto entry; entries for endpoints that are gone are
        dropped.

        Args:
            entries: Registered endpoints in registration order.
        """
        paths: dict[str, dict[str, OperationObject]] = {}

        for entry in entries:
            key = (openapi_path(entry.path), entry.method.lower())
            if key[1] in paths.get(key[0], {}):
                continue
            operation = self._live_custom(key)
            if operation is None:
                operation = self.build_operation(*key)
                self._see_tags(operation["tags"])
            paths.setdefault(key[0], {})[key[1]] = operation

        for (path, method), stack in self._custom.items():
            paths.setdefault(path, {}).setdefault(method, stack[-1].operation)

        self._document["paths"] = paths
        logger.debug("API document regenerated with {} paths", len(paths))

    def _schema_from(self, validator: Validator) -> dict[str, Any]:
        schema = copy.deepcopy(validator.json_schema())
        for name, definition in schema.pop("$defs", {}).items():
            self._document["components"]["schemas"].setdefault(name, definition)
        return schema

    def add_custom_path(
        self,
        path: str,
        method: str,
        metadata: dict[str, Any],
        validation: ValidationSpec | None = None,
        owner: str | None = None,
    ) -> OperationObject:
        """Record a hand-authored entry that regeneration will never replace.

        The most recent owner of a path and verb is live; a route re-adding
        its own entry replaces it in place.

        Args:
            path: Route path.
            method: HTTP verb.
            metadata: Hand-authored operation fragment.
            validation: Validators whose schemas describe the request.
            owner: Route name the entry belongs to.

        Returns:
            OperationObject: The stored operation.
        """
        path = openapi_path(path)
        method = method.lower()

        operation: OperationObject = copy.deepcopy(metadata)
        operation["parameters"] = list(operation.get("parameters") or [])
        operation.setdefault("responses", default_responses(method))

        if validation is not None:
            if validation.body is not None:
                operation["requestBody"] = {
                    "required": True,
                    "content": _json_content(self._schema_from(validation.body)),
                }
            if validation.params is not None:
                operation["parameters"].extend(
                    schema_parameters(validation.params, "path")
                )
            if validation.query is not None:
                operation["parameters"].extend(
                    schema_parameters(validation.query, "query")
                )

        self._see_tags(operation.get("tags") or ())
        entry = _CustomEntry(owner=owner, operation=operation)
        stack = self._custom.setdefault((path, method), [])
        stack[:] = [e for e in stack if e.owner != owner]
        stack.append(entry)
        self._document["paths"].setdefault(path, {})[method] = entry.operation
        return entry.operation

    def drop_custom_paths(self, owner: str) -> int:
        """Forget every custom entry owned by a route name.

        Another owner's entry for the same path and verb becomes live again.

        Returns:
            int: Number of entries dropped.
        """
        dropped = 0
        for key in list(self._custom):
            stack = self._custom[key]
            kept = [entry for entry in stack if entry.owner != owner]
            dropped += len(stack) - len(kept)
            if kept:
                self._custom[key] = kept
            else:
                del self._custom[key]
        return dropped

    def is_custom(self, path: str, method: str) -> bool:
        return (openapi_path(path), method.lower()) in self._custom

    def _live_custom(self, key: tuple[str, str]) -> OperationObject | None:
        stack = self._custom.get(key)
        return stack[-1].operation if stack else None

    def add_schema(self, name: str, schema: dict[str, Any]) -> None:
        """Insert a reusable schema; its shape is not checked."""
        self._document["components"]["schemas"][name] = schema

    def operation(self, path: str, method: str) -> OperationObject | None:
        """Live operation object for a path and verb, if documented."""
        return self._document["paths"].get(openapi_path(path), {}).get(method.lower())

    @property
    def path_count(self) -> int:
        return len(self._document["paths"])

    def snapshot(self) -> ApiDocument:
        """Deep copy of the current document, safe for callers to mutate."""
        return copy.deepcopy(self._document)

    def render(self, *, indent: bool = False) -> bytes:
        """Serialize the current document to JSON bytes."""
        option = orjson.OPT_INDENT_2 if indent else None
        return orjson.dumps(self._document, option=option)
