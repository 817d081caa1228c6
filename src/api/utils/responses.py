"""High-performance JSON response classes using orjson serialization.

This module provides the response class used by the service endpoints and
the conversion applied to whatever a dynamically registered route handler
returns.

Performance benefits:
- 2-10x faster serialization than standard json
- Native handling of datetime, UUID, and Decimal types
- Efficient serialization of Pydantic models
- Consistent key ordering for predictable output
"""

from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette import status
from starlette.responses import Response


class ORJSONResponse(JSONResponse):
    """FastAPI Response class using orjson for high-performance JSON serialization.

    Attributes:
        media_type: The media type for the response.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - accepts any JSON-serializable content
        """Render the content as JSON using orjson.

        Args:
            content: The content to serialize to JSON.

        Returns:
            bytes: The JSON-encoded bytes.
        """
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json")

        return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)


def to_response(result: object) -> Response:
    """Turn a route handler's return value into a response.

    Args:
        result: A ``Response`` (returned unchanged), ``None`` (an empty 204)
            or any JSON-serializable value including pydantic models.

    Returns:
        Response: The response to send.
    """
    if isinstance(result, Response):
        return result
    if result is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return ORJSONResponse(content=result)
