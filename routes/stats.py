"""Server statistics: uptime, memory and CPU load of the serving process."""

import os
import resource
import sys
import time

from pydantic import BaseModel, Field

_STARTED = time.monotonic()


class StatsQuery(BaseModel):
    verbose: bool = Field(default=False, description="Return detailed stats if true")


def _max_rss_bytes() -> int:
    max_rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # macOS reports bytes, Linux reports kilobytes
    return max_rss if sys.platform == "darwin" else max_rss * 1024


def server_stats(request):
    query = StatsQuery.model_validate(dict(request.query_params))
    usage = resource.getrusage(resource.RUSAGE_SELF)
    stats = {
        "uptime": round(time.monotonic() - _STARTED, 3),
        "memory_usage": {"max_rss": _max_rss_bytes()},
        "cpu_load": os.getloadavg()[0],
        "detailed": query.verbose,
    }
    if query.verbose:
        stats["memory_usage"]["page_faults"] = usage.ru_majflt
        stats["cpu_times"] = {"user": usage.ru_utime, "system": usage.ru_stime}
        stats["pid"] = os.getpid()
    return stats


route = {
    "path": "/stats",
    "method": "get",
    "handler": server_stats,
    "validate": {"query": StatsQuery},
    "openapi": {
        "summary": "Server stats",
        "description": (
            "Get detailed server statistics including uptime, memory, "
            "and CPU load."
        ),
        "operationId": "getServerStats",
        "tags": ["server", "monitoring"],
        "externalDocs": {
            "description": "Server monitoring docs",
            "url": "https://example.com/docs/server",
        },
        "responses": {
            "200": {
                "description": "Server statistics",
                "content": {
                    "application/json": {
                        "schema": {
                            "type": "object",
                            "properties": {
                                "uptime": {"type": "number", "example": 12345},
                                "memory_usage": {
                                    "type": "object",
                                    "properties": {
                                        "max_rss": {"type": "integer"},
                                        "page_faults": {"type": "integer"},
                                    },
                                },
                                "cpu_load": {"type": "number", "example": 0.42},
                                "cpu_times": {
                                    "type": "object",
                                    "properties": {
                                        "user": {"type": "number"},
                                        "system": {"type": "number"},
                                    },
                                },
                                "pid": {"type": "integer"},
                                "detailed": {"type": "boolean"},
                            },
                        }
                    }
                },
            }
        },
    },
}
