from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Generic, TypeVar
from urllib.parse import quote, urlparse

import requests
import urllib3
from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python
from urllib3.exceptions import InsecureRequestWarning

from directus_api_py.errors import DecodeError, RequestError, TransportError, UnexpectedStatusError
from directus_api_py.fields import model_field_paths
from directus_api_py.optional import OptionalField, is_unset, unset_excludes, unwrap
from directus_api_py.query import Query, Version, as_key_value
from directus_api_py.types import Credentials, Envelope, TokenData

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)
W = TypeVar("W", bound=BaseModel)
PK = TypeVar("PK", int, str)


class DirectusAPI(Generic[R, W, PK]):
    """
    Typed client for a single Directus collection.

    R is the read model, W is the write model and PK the type of the
    primary key. The `fields` requested from Directus are derived from
    the read model.

    Example:
        articles: DirectusAPI[Article, ArticleWrite, int] = DirectusAPI(
            Article, "articles", host="cms.example.com", namespace="content", token="...",
        )
        article = articles.get_by_id(42)
    """

    def __init__(self, read_model: type[R],
                 collection: str,
                 *,
                 host: str,
                 scheme: str = "https",
                 namespace: str = "",
                 token: str | None = None,
                 email: str | None = None,
                 password: str | None = None,
                 write_model: type[W] | None = None,
                 version: Version | int | str = Version.V8,
                 session: requests.Session | None = None,
                 verify: bool = True,
                 timeout: float | None = None):
        """
        Initialize the DirectusAPI.

        Args:
            read_model (type): Model used to decode items.
            collection (str): The collection name.
            host (str): Host (and port) of the Directus instance.
            scheme (str): "http" or "https" (default: "https").
            namespace (str): Path prefix of the API, the v8 project name (optional).
            token (str): The static token for authentication (optional).
            email (str): The email for authentication (optional).
            password (str): The password for authentication (optional).
            write_model (type): Model accepted by `insert` and `set` (optional).
            version (Version): Query dialect of the server (default: Version.V8).
            session (requests.Session): HTTP transport (optional).
            verify (bool): Whether to verify SSL certificates (default: True).
            timeout (float): Default request timeout in seconds (optional).

        Raises:
            FieldConfigError: The read model can't be flattened into field paths.
        """
        self.read_model = read_model
        self.write_model = write_model
        self.collection = collection
        self.scheme = scheme
        self.host = host
        self.namespace = namespace.strip("/")
        self.version = Version.parse(version)
        self.session = session or requests.Session()
        self.timeout = timeout

        self.verify = verify
        if not self.verify:
            urllib3.disable_warnings(category=InsecureRequestWarning)

        # Resolved up front so a bad read model fails before any request
        self._query_fields = model_field_paths(read_model)

        self.bearer_token = token or ""
        if email and password and not token:
            self.bearer_token = self.create_token(email, password)

    @classmethod
    def from_url(cls, url: str, read_model: type[R], collection: str, **kwargs: Any) -> DirectusAPI[R, W, PK]:
        """
        Create a client from the API base url, e.g. "https://cms.example.com/content".

        The url path becomes the namespace.
        """
        _url = urlparse(url)
        if not _url.scheme or not _url.netloc:
            raise ValueError(f"invalid Directus url: {url!r}")
        return cls(read_model, collection,
                   scheme=_url.scheme,
                   host=_url.netloc,
                   namespace=_url.path.strip("/"),
                   **kwargs)

    @property
    def query_fields(self) -> list[str]:
        return list(self._query_fields)

    @property
    def token_header(self) -> dict[str, str]:
        if not self.bearer_token:
            return {}
        return {"Authorization": f"Bearer {self.bearer_token}"}

    def clean_url(self, *parts: Any) -> str:
        """
        Build the request url from path segments under the namespace.

        Args:
            *parts: Path segments.

        Returns:
            str: The absolute url.
        """
        segments = [self.namespace] if self.namespace else []
        segments.extend(str(part).strip("/") for part in parts)
        return f"{self.scheme}://{self.host}/" + "/".join(segments)

    def _item_url(self, id: PK | None = None) -> str:
        if id is None:
            return self.clean_url("items", self.collection)
        return self.clean_url("items", self.collection, quote(str(id), safe=""))

    def _fields_param(self) -> dict[str, str]:
        return {"fields": ",".join(self._query_fields)}

    def create_token(self, email: str, password: str, timeout: float | None = None) -> str:
        """
        Use the provided credentials to generate a server token.

        Args:
            email (str): The user's email.
            password (str): The user's password.

        Returns:
            str: The token.
        """
        operation = "create token"
        path = "auth/authenticate" if self.version is Version.V8 else "auth/login"
        body: Credentials = {"email": email, "password": password}
        data: TokenData = self._execute_request(operation, "POST", self.clean_url(path), 200,
                                                body=body, timeout=timeout)
        key = "token" if self.version is Version.V8 else "access_token"
        if not isinstance(data, Mapping) or not data.get(key):
            raise DecodeError(operation, f"response has no {key}")
        return data[key]

    def insert(self, item: W, timeout: float | None = None) -> R:
        """
        Insert a new item.

        Args:
            item (W): The item to insert.

        Returns:
            R: The created item.
        """
        operation = "insert"
        data = self._execute_request(operation, "POST", self._item_url(), 200,
                                     params=self._fields_param(),
                                     body=self._encode_item(operation, item),
                                     timeout=timeout)
        return self._decode_item(operation, data)

    def create(self, partials: Mapping[str, Any], timeout: float | None = None) -> R:
        """
        Create a new item from a mapping of remote field names to values.

        Args:
            partials (dict): The item data.

        Returns:
            R: The created item.
        """
        operation = "create"
        data = self._execute_request(operation, "POST", self._item_url(), 200,
                                     params=self._fields_param(),
                                     body=self._encode_partials(operation, partials),
                                     timeout=timeout)
        return self._decode_item(operation, data)

    def get_by_id(self, id: PK, timeout: float | None = None) -> R:
        """
        Read a single item by id.

        Args:
            id (PK): The item's primary key.

        Returns:
            R: The item.
        """
        operation = "get by id"
        data = self._execute_request(operation, "GET", self._item_url(id), 200,
                                     params=self._fields_param(), timeout=timeout)
        return self._decode_item(operation, data)

    def update(self, id: PK, partials: Mapping[str, Any], timeout: float | None = None) -> R:
        """
        Partially update the item with the given id.

        Args:
            id (PK): The item's primary key.
            partials (dict): Remote field names mapped to the new values.

        Returns:
            R: The updated item.
        """
        operation = "update"
        data = self._execute_request(operation, "PATCH", self._item_url(id), 200,
                                     params=self._fields_param(),
                                     body=self._encode_partials(operation, partials),
                                     timeout=timeout)
        return self._decode_item(operation, data)

    def set(self, id: PK, item: W, timeout: float | None = None) -> R:
        """
        Update the item with the given id from a write model.

        Args:
            id (PK): The item's primary key.
            item (W): The new item data.

        Returns:
            R: The updated item.
        """
        operation = "set"
        data = self._execute_request(operation, "PATCH", self._item_url(id), 200,
                                     params=self._fields_param(),
                                     body=self._encode_item(operation, item),
                                     timeout=timeout)
        return self._decode_item(operation, data)

    def delete(self, id: PK, timeout: float | None = None) -> None:
        """
        Delete the item with the given id.

        Any status other than 204 raises, the item may or may not be gone.
        """
        self._execute_request("delete", "DELETE", self._item_url(id), 204,
                              decode=False, timeout=timeout)

    def items(self, query: Query | None = None, timeout: float | None = None) -> list[R]:
        """
        Retrieve the items matching a query.

        Args:
            query (Query): Filter, sort and paging options (optional).

        Returns:
            list: The matching items.
        """
        operation = "items"
        params = as_key_value(query or Query(), self.version)
        params.update(self._fields_param())
        data = self._execute_request(operation, "GET", self._item_url(), 200,
                                     params=params, timeout=timeout)
        if not isinstance(data, list):
            raise DecodeError(operation, f"expected a list of items, got {type(data).__name__}")
        return [self._decode_item(operation, item) for item in data]

    def _execute_request(self, operation: str, method: str, url: str, expected_status: int,
                         params: dict[str, str] | None = None,
                         body: Any = None,
                         decode: bool = True,
                         timeout: float | None = None) -> Any:
        """
        Send a request and return the `data` member of the response envelope.

        Raises:
            TransportError: The request could not be sent or timed out.
            UnexpectedStatusError: The status code is not `expected_status`.
            DecodeError: The body is not a JSON `{"data": ...}` envelope.
        """
        logger.debug("%s %s params=%s", method, url, params)
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=body,
                headers=self.token_header,
                verify=self.verify,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(operation, str(e)) from e

        logger.debug("%s %s -> %s", method, url, response.status_code)
        if response.status_code != expected_status:
            logger.warning("%s %s: expected status %s, got %s",
                           method, url, expected_status, response.status_code)
            raise UnexpectedStatusError(operation, expected_status, response.status_code,
                                        response.text, response)
        if not decode:
            return None

        try:
            envelope: Envelope[Any] = response.json()
        except ValueError as e:
            raise DecodeError(operation, f"malformed JSON: {e}") from e
        if not isinstance(envelope, dict) or "data" not in envelope:
            raise DecodeError(operation, "response has no data envelope")
        return envelope["data"]

    def _decode_item(self, operation: str, data: Any) -> R:
        try:
            return self.read_model.model_validate(data)
        except ValidationError as e:
            raise DecodeError(operation, str(e)) from e

    def _encode_item(self, operation: str, item: W) -> dict[str, Any]:
        if self.write_model is not None and not isinstance(item, self.write_model):
            raise TypeError(f"{operation}: expected {self.write_model.__name__}, got {type(item).__name__}")
        return encode_model(item)

    def _encode_partials(self, operation: str, partials: Mapping[str, Any]) -> dict[str, Any]:
        try:
            return to_jsonable_python(_drop_unset(partials), by_alias=True, fallback=unwrap)
        except PydanticSerializationError as e:
            raise RequestError(operation, f"can't encode request body: {e}") from e


def encode_model(item: BaseModel) -> dict[str, Any]:
    """Dump a write model to JSON-ready data, leaving out unset optional fields"""
    return item.model_dump(mode="json", by_alias=True, exclude=unset_excludes(item) or None)


def _drop_unset(value: Any) -> Any:
    """Remove unset optional values at any depth of a partial update"""
    if isinstance(value, OptionalField):
        return _drop_unset(unwrap(value))
    if isinstance(value, BaseModel):
        return encode_model(value)
    if isinstance(value, Mapping):
        return {key: _drop_unset(item) for key, item in value.items() if not is_unset(item)}
    if isinstance(value, (list, tuple)):
        return [_drop_unset(item) for item in value if not is_unset(item)]
    return value
