"""Pydantic schema models for API responses.

- **errors**: The ``ApiError`` body returned for every failed request
"""
