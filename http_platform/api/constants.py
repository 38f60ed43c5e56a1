"""API-related constants."""

# HTTP Status Codes
HTTP_400_BAD_REQUEST = 400
HTTP_408_REQUEST_TIMEOUT = 408
HTTP_499_CLIENT_CLOSED_REQUEST = 499
HTTP_500_INTERNAL_SERVER_ERROR = 500

# Non-standard status phrase used by proxies for client disconnects
CLIENT_CLOSED_REQUEST_PHRASE = "Client Closed Request"

# HTTP Headers
TRACE_ID_HEADER = "X-Trace-Id"

# Request state keys
TRACE_ID_STATE_KEY = "trace_id"
ERRORS_STATE_KEY = "errors"

# Content types
JSON_MEDIA_TYPE = "application/json; charset=utf-8"

# Non-error panic response
PANIC_MESSAGE = "Internal server error panic"
