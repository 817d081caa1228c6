"""Utility modules for API-specific functionality.

- **responses**: orjson response class and handler result conversion
"""
