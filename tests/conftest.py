from __future__ import annotations

import json
from datetime import datetime
from typing import Any

import pytest
import requests
from pydantic import BaseModel, ConfigDict, Field

from directus_api_py.optional import Nullable


class Author(BaseModel):
    name: str
    email: str = Field(alias="mail")


class Tag(BaseModel):
    id: int
    label: str


class Article(BaseModel):
    id: int
    title: str
    published: bool = False
    rating: float = 0.0
    author: Author
    tags: list[Tag] = []
    keywords: list[str] = []
    created_on: datetime
    meta: dict[str, Any] = {}
    subtitle: Nullable[str] = Nullable()
    body: str = Field("", alias="content")


ARTICLE_FIELDS = [
    "id", "title", "published", "rating",
    "author.name", "author.mail",
    "tags.id", "tags.label",
    "keywords", "created_on", "meta", "subtitle", "content",
]


class ArticleWrite(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    published: bool = False
    created_on: datetime | None = None
    subtitle: Nullable[str] = Nullable()
    body: str = Field("", alias="content")


def article_payload(id: int = 42, **overrides: Any) -> dict[str, Any]:
    payload = {
        "id": id,
        "title": "Hello",
        "published": True,
        "rating": 4.5,
        "author": {"name": "Ann", "mail": "ann@example.com"},
        "tags": [{"id": 1, "label": "news"}],
        "keywords": ["a", "b"],
        "created_on": "2024-01-02T03:04:05Z",
        "meta": {"views": 3},
        "subtitle": None,
        "content": "Body",
    }
    payload.update(overrides)
    return payload


def make_response(status: int, payload: Any = None, text: str | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.encoding = "utf-8"
    if payload is not None:
        response._content = json.dumps(payload).encode()
    elif text is not None:
        response._content = text.encode()
    else:
        response._content = b""
    return response


class FakeSession:
    """Stands in for requests.Session, replays queued responses and records calls."""

    def __init__(self, *responses: requests.Response | Exception):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def queue(self, response: requests.Response | Exception) -> None:
        self.responses.append(response)

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append({"method": method, "url": url, **kwargs})
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()
