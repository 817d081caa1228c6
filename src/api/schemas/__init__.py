"""Pydantic schema models for API responses.

Every error the service returns, whether raised by a service endpoint or
rendered by the validation middleware of a dynamic route, is serialized
through these models.
"""
