from __future__ import annotations

from typing import Any


class DirectusError(Exception):
    """Base Directus API exception."""


class FieldConfigError(DirectusError, TypeError):
    """The read model declares a shape the field-path deriver can't flatten."""


class UnsupportedIndirectionError(FieldConfigError):
    """Raised for `X | None` fields, which should be declared as `Nullable[X]`."""


class UnsupportedKindError(FieldConfigError):
    """Raised for field types that have no field-path mapping."""


class QueryError(DirectusError, ValueError):
    """The query can't be expressed in the requested API dialect."""


class RequestError(DirectusError):
    """
    A request made by one of the client operations failed.

    Args:
        operation (str): The operation that issued the request, e.g. "get by id".
        message (str): Description of the failure.
    """

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"execute {operation} request: {message}")


class TransportError(RequestError):
    """Network failure or timeout while talking to Directus."""


class UnexpectedStatusError(RequestError):
    """Directus answered with a status code other than the expected one."""

    def __init__(self, operation: str, expected: int, actual: int, body: str = "", response: Any = None):
        self.expected = expected
        self.actual = actual
        self.body = body
        self.response = response
        super().__init__(operation, f"unexpected status code {actual} (expected {expected}): {body}")


class DecodeError(RequestError):
    """The response body is not a valid `{"data": ...}` envelope for the model."""
