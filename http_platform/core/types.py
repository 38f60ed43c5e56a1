"""Type aliases for dynamic data structures throughout the platform.

All types defined here should be JSON-serializable to support logging
and API responses.
"""

from typing import Any

# Structured fields attached to a log entry
type LogContext = dict[str, Any]  # JSON-serializable values

# Value of a query parameter or header: one string, or all repeated values
type MultiValue = str | list[str]
