from __future__ import annotations

from typing import Any, Generic, TypedDict, TypeVar

# TypedDict is preferred over dataclass modeling for the raw envelopes
# since they are plain dicts at runtime. Only the `data` member is read,
# the typed models are validated from it afterwards.

T = TypeVar("T")


class Envelope(TypedDict, Generic[T]):
    data: T


class TokenData(TypedDict, total=False):
    # v8 /auth/authenticate
    token: str
    user: dict[str, Any]
    # v9 /auth/login
    access_token: str
    refresh_token: str
    expires: int


class Credentials(TypedDict):
    email: str
    password: str
