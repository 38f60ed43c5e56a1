"""Utility modules for API-specific functionality.

- **responses**: JSON response classes using orjson
- **requests**: Query/header maps, client address and JSON body binding
"""
