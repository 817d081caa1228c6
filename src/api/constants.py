"""API-related constants."""

# HTTP Status Codes
HTTP_500_INTERNAL_SERVER_ERROR = 500

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

# Status classes tracked by the request metrics
STATUS_CLASSES = ("2xx", "3xx", "4xx", "5xx")

# Service banner
ROOT_MESSAGE = "API is running"
