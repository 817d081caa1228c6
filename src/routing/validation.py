"""Validation adapters and the synthesized request-validation middleware.

A route may declare up to three schemas, one each for the JSON body, the
path parameters and the query string. The registry never inspects those
schemas directly. Every schema is wrapped in a ``Validator`` exposing a
single ``validate(data) -> list[FieldViolation]`` capability, plus a
``json_schema()`` hook the document builder uses to describe the request.

Supported schema technologies:
- **Pydantic models**: validated with ``model_validate``; the JSON schema is
  derived from ``model_json_schema``
- **Schema objects**: anything with a callable ``validate(data)`` whose result
  is ``None``, a list of violations or an ``{"error": {"details": [...]}}``
  shaped value
- **Anything else**: accepted as-is with a warning; validation always passes

The middleware built by ``create_validation_middleware`` always runs last in
a route's chain. A failed check is answered with a 400 response right there;
the route handler never sees invalid data.
"""

from __future__ import annotations

import inspect
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Final, Protocol, runtime_checkable

import orjson
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from src.api.middleware.error_handler import routeforge_error_handler
from src.core.exceptions import ValidationFailure

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

    from src.core.types import CallNext, Middleware

ROOT_FIELD: Final[str] = "root"
INVALID_JSON_MESSAGE: Final[str] = "Invalid JSON payload"
SCHEMA_REF_TEMPLATE: Final[str] = "#/components/schemas/{model}"

# Request parts a validation spec can cover, in checking order
LOCATIONS: Final[tuple[str, ...]] = ("body", "params", "query")


class FieldViolation(BaseModel):
    """One failed check against one field of the request."""

    field: str = Field(..., description="Dotted path of the offending field")
    message: str = Field(..., description="Human-readable violation message")
    location: str | None = Field(
        default=None, description="Request part the field belongs to"
    )


@runtime_checkable
class Validator(Protocol):
    """Uniform validate capability wrapped around an opaque schema."""

    def validate(self, data: Any) -> list[FieldViolation]:  # noqa: ANN401 - any decoded request part
        """Check data and return every violation found (empty when valid)."""
        ...

    def json_schema(self) -> dict[str, Any]:
        """JSON schema describing the accepted data."""
        ...


def _field_path(path: object) -> str:
    if isinstance(path, str):
        return path or ROOT_FIELD
    if isinstance(path, Iterable):
        joined = ".".join(str(part) for part in path)
        return joined or ROOT_FIELD
    return ROOT_FIELD if path is None else str(path)


def _violation_from(item: object) -> FieldViolation:
    if isinstance(item, FieldViolation):
        return item
    if isinstance(item, Mapping):
        return FieldViolation(
            field=_field_path(item.get("field", item.get("path"))),
            message=str(item.get("message", "Invalid value")),
        )
    return FieldViolation(field=ROOT_FIELD, message=str(item))


class PydanticModelValidator:
    """Validator backed by a pydantic model class."""

    def __init__(self, model: type[BaseModel]) -> None:
        self.model = model

    def validate(self, data: Any) -> list[FieldViolation]:  # noqa: ANN401 - any decoded request part
        try:
            self.model.model_validate(data)
        except PydanticValidationError as e:
            return [
                FieldViolation(
                    field=_field_path(error.get("loc", ())),
                    message=error.get("msg", "Invalid value"),
                )
                for error in e.errors()
            ]
        return []

    def json_schema(self) -> dict[str, Any]:
        return self.model.model_json_schema(ref_template=SCHEMA_REF_TEMPLATE)

    def __repr__(self) -> str:
        return f"PydanticModelValidator({self.model.__name__})"


class SchemaObjectValidator:
    """Validator for any object exposing a ``validate(data)`` method.

    The result is interpreted leniently: ``None`` or ``True`` means valid, a
    list holds violations, and a mapping or object with an ``error`` member
    follows the ``{"error": {"details": [{"path", "message"}]}}`` convention.
    """

    def __init__(self, schema: object) -> None:
        self.schema = schema

    def validate(self, data: Any) -> list[FieldViolation]:  # noqa: ANN401 - any decoded request part
        result = self.schema.validate(data)  # type: ignore[attr-defined]
        return self._interpret(result)

    @staticmethod
    def _interpret(result: object) -> list[FieldViolation]:
        if result is None or result is True:
            return []
        if result is False:
            return [FieldViolation(field=ROOT_FIELD, message="Invalid value")]
        if isinstance(result, list | tuple):
            return [_violation_from(item) for item in result]

        if isinstance(result, Mapping):
            error = result.get("error")
        else:
            error = getattr(result, "error", None)
        if not error:
            return []

        details = (
            error.get("details")
            if isinstance(error, Mapping)
            else getattr(error, "details", None)
        )
        if not details:
            message = (
                error.get("message", str(error))
                if isinstance(error, Mapping)
                else str(error)
            )
            return [FieldViolation(field=ROOT_FIELD, message=str(message))]
        return [_violation_from(item) for item in details]

    def json_schema(self) -> dict[str, Any]:
        exporter = getattr(self.schema, "json_schema", None)
        if callable(exporter):
            schema = exporter()
            if isinstance(schema, Mapping):
                return dict(schema)
        return {"type": "object"}

    def __repr__(self) -> str:
        return f"SchemaObjectValidator({type(self.schema).__name__})"


class PassthroughValidator:
    """Validator for schemas without a validate capability; never fails."""

    def __init__(self, schema: object = None) -> None:
        self.schema = schema

    def validate(self, data: Any) -> list[FieldViolation]:  # noqa: ANN401, ARG002 - any decoded request part
        return []

    def json_schema(self) -> dict[str, Any]:
        return {"type": "object"}


def as_validator(schema: object) -> Validator:
    """Wrap a schema object in the matching validator adapter.

    Args:
        schema: A pydantic model class, a schema object with ``validate`` or
            an already wrapped validator.

    Returns:
        Validator: The adapter for the schema.
    """
    if isinstance(
        schema, PydanticModelValidator | SchemaObjectValidator | PassthroughValidator
    ):
        return schema
    if inspect.isclass(schema) and issubclass(schema, BaseModel):
        return PydanticModelValidator(schema)
    if callable(getattr(schema, "validate", None)):
        return SchemaObjectValidator(schema)

    logger.warning(
        "Schema of type {} has no validate capability, requests will not be checked",
        type(schema).__name__,
    )
    return PassthroughValidator(schema)


def schema_parameters(validator: Validator, location: str) -> list[dict[str, Any]]:
    """Describe the fields of a params or query schema as document parameters.

    Path parameters are always required. Query parameters are required when
    the schema lists them as required.

    Args:
        validator: The wrapped schema.
        location: ``"path"`` or ``"query"``.

    Returns:
        list[dict[str, Any]]: One parameter object per schema property.
    """
    schema = validator.json_schema()
    properties = schema.get("properties") or {}
    required = set(schema.get("required") or ())

    parameters = []
    for name, prop in properties.items():
        prop_schema = {k: v for k, v in prop.items() if k != "title"}
        parameters.append(
            {
                "name": name,
                "in": location,
                "required": location == "path" or name in required,
                "schema": prop_schema or {"type": "string"},
            }
        )
    return parameters


class ValidationSpec(BaseModel):
    """Up to three validators keyed by the request part they check."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    body: Any = Field(default=None, description="Validator for the JSON body")
    params: Any = Field(default=None, description="Validator for path parameters")
    query: Any = Field(default=None, description="Validator for the query string")

    @field_validator("body", "params", "query", mode="before")
    @classmethod
    def wrap_schema(cls, v: object) -> Validator | None:
        """Wrap raw schema objects in their validator adapter."""
        if v is None:
            return None
        return as_validator(v)

    @classmethod
    def from_export(cls, value: object) -> ValidationSpec | None:
        """Build a spec from a route module's ``validate`` entry.

        Args:
            value: ``None``, an existing spec, or a mapping with any of the
                keys ``body``, ``params`` and ``query``.

        Returns:
            ValidationSpec | None: The spec, or None when nothing is declared.
        """
        if value is None or isinstance(value, ValidationSpec):
            return value
        if not isinstance(value, Mapping):
            msg = "validate must be a mapping with body, params or query keys"
            raise TypeError(msg)
        spec = cls(**{key: value.get(key) for key in LOCATIONS})
        return spec if spec.validators() else None

    def validators(self) -> dict[str, Validator]:
        """Declared validators keyed by location, in checking order."""
        declared = {"body": self.body, "params": self.params, "query": self.query}
        return {loc: v for loc, v in declared.items() if v is not None}


async def _read_part(request: Request, location: str) -> tuple[Any, bool]:
    """Return the decoded request part and whether it could be decoded."""
    if location == "params":
        return dict(request.path_params), True
    if location == "query":
        return dict(request.query_params), True

    raw = await request.body()
    if not raw.strip():
        return {}, True
    try:
        return orjson.loads(raw), True
    except orjson.JSONDecodeError:
        return None, False


def group_violations(violations: Iterable[FieldViolation]) -> dict[str, list[str]]:
    """Group violation messages by field name, keeping their order."""
    grouped: dict[str, list[str]] = {}
    for violation in violations:
        grouped.setdefault(violation.field, []).append(violation.message)
    return grouped


def create_validation_middleware(spec: ValidationSpec) -> Middleware:
    """Synthesize the pre-handler that enforces a route's validation spec.

    Args:
        spec: The route's validators.

    Returns:
        Middleware: A pre-handler answering 400 when any check fails.
    """
    validators = spec.validators()

    async def validate_request(request: Request, call_next: CallNext) -> Response:
        violations: list[FieldViolation] = []

        for location, validator in validators.items():
            data, decoded = await _read_part(request, location)
            if not decoded:
                violations.append(
                    FieldViolation(
                        field=location, message=INVALID_JSON_MESSAGE, location=location
                    )
                )
                continue
            violations.extend(
                v.model_copy(update={"location": location})
                for v in validator.validate(data)
            )

        if violations:
            logger.debug(
                "Request rejected by validation: {} violations",
                len(violations),
                path=request.url.path,
                method=request.method,
            )
            return await routeforge_error_handler(
                request, ValidationFailure(group_violations(violations))
            )

        return await call_next(request)

    return validate_request
