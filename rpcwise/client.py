import base64
from typing import Any, Mapping, Self, Sequence
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx
import msgspec
from loguru import logger

from .envelope import decode_envelope
from .errors import (
    InvalidHttpMethodError,
    InvalidResponseError,
    RemoteError,
    TransportError,
)
from .Interface import ITransport

CLIENT_METHODS = ("GET", "POST", "PUT", "DELETE")


def basic_auth_header(user: str, password: str) -> str:
    token = base64.b64encode(f"{user}:{password}".encode()).decode("ascii")
    return f"Basic {token}"


def _flatten(prefix: str, value: Any) -> list[tuple[str, Any]]:
    if isinstance(value, Mapping):
        pairs: list[tuple[str, Any]] = []
        for k, v in value.items():
            pairs.extend(_flatten(f"{prefix}[{k}]", v))
        return pairs
    if isinstance(value, (list, tuple)):
        pairs = []
        for idx, v in enumerate(value):
            pairs.extend(_flatten(f"{prefix}[{idx}]", v))
        return pairs
    if isinstance(value, bool):
        return [(prefix, int(value))]
    if value is None:
        return [(prefix, "")]
    return [(prefix, value)]


def build_query(params: Mapping[str, Any]) -> str:
    """
    url-encode a parameter bag, nested containers use bracket keys

    ```py
    build_query({"filter": {"status": "open"}, "ids": [1, 2]})
    # "filter%5Bstatus%5D=open&ids%5B0%5D=1&ids%5B1%5D=2"
    ```
    """
    pairs: list[tuple[str, Any]] = []
    for key, value in params.items():
        pairs.extend(_flatten(str(key), value))
    return urlencode(pairs)


class HttpxTransport:
    """
    `ITransport` backed by `httpx.AsyncClient`,
    a short lived client is opened per request unless one is given
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    async def send(
        self,
        method: str,
        url: str,
        headers: Sequence[str],
        body: bytes | None,
        auth: tuple[str, str] | None,
    ) -> tuple[bytes, list[str]]:
        header_items: list[tuple[str, str]] = []
        for line in headers:
            name, sep, value = line.partition(":")
            if sep:
                header_items.append((name.strip(), value.strip()))
        if auth is not None:
            header_items.append(("Authorization", basic_auth_header(*auth)))

        try:
            if self._client is None:
                async with httpx.AsyncClient() as client:
                    response = await client.request(
                        method, url, headers=header_items, content=body
                    )
            else:
                response = await self._client.request(
                    method, url, headers=header_items, content=body
                )
        except httpx.HTTPError as exc:
            raise TransportError(method, url, str(exc)) from exc

        lines = [f"{response.http_version} {response.status_code} {response.reason_phrase}"]
        lines.extend(f"{name}: {value}" for name, value in response.headers.multi_items())
        return response.content, lines


class RestClient:
    """
    Issues requests against an rpc endpoint.

    ```py
    client = RestClient("https://api.example.com/", "user", "secret")
    orders = await client.call("orders_list", {"sort": "date"})
    ```
    """

    def __init__(
        self,
        url: str = "",
        user: str | None = None,
        password: str | None = None,
        *,
        method: str = "GET",
        headers: Sequence[str] = (),
        transport: ITransport | None = None,
        command_field: str = "do",
    ):
        self._url = url
        self._user = user
        self._password = password
        self._method = "GET"
        self._headers: list[str] = []
        self._response_headers: list[str] = []
        self._transport: ITransport = transport or HttpxTransport()
        self._command_field = command_field

        self.set_method(method)
        self.set_headers(headers)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(url={self._url!r}, method={self._method!r})"

    @property
    def url(self) -> str:
        return self._url

    @property
    def method(self) -> str:
        return self._method

    @property
    def header(self) -> str:
        return "\r\n".join(self._headers)

    @property
    def response_headers(self) -> list[str]:
        return self._response_headers[:]

    def set_url(self, url: str) -> Self:
        self._url = url
        return self

    def set_authentication(self, user: str | None, password: str | None) -> Self:
        self._user = user
        self._password = password
        return self

    def append_header(self, line: str) -> Self:
        self._headers.append(line.rstrip("\r\n"))
        return self

    def set_headers(self, headers: Sequence[str]) -> Self:
        self._headers = [line.rstrip("\r\n") for line in headers]
        return self

    def set_method(self, method: str) -> Self:
        method = method.upper()
        if method not in CLIENT_METHODS:
            raise InvalidHttpMethodError(method)
        self._method = method
        return self

    def _credentials(
        self, parts: Any, user: str | None, password: str | None
    ) -> tuple[str, str] | None:
        if user is None:
            user = parts.username if parts.username is not None else self._user
        if password is None:
            password = parts.password if parts.password is not None else self._password
        if user is None or password is None:
            return None
        return user, password

    async def request(
        self,
        params: Mapping[str, Any] | None = None,
        url: str | None = None,
        method: str | None = None,
        content_type: str | None = "text/plain",
        user: str | None = None,
        password: str | None = None,
    ) -> bytes:
        self._response_headers = []

        method = (method or self._method).upper()
        if method not in CLIENT_METHODS:
            raise InvalidHttpMethodError(method)

        parts = urlsplit(self._url if url is None else url)
        auth = self._credentials(parts, user, password)

        netloc = parts.hostname or ""
        if ":" in netloc:
            netloc = f"[{netloc}]"
        if parts.port is not None:
            netloc = f"{netloc}:{parts.port}"

        encoded = build_query(params) if params is not None else None
        query = parts.query
        body: bytes | None = None
        headers = self._headers[:]
        if content_type:
            headers.append(f"Content-Type: {content_type}")

        if method == "GET":
            if encoded:
                query = f"{query}&{encoded}" if query else encoded
        else:
            body = (encoded or "").encode()
            headers.append(f"Content-Length: {len(body)}")

        target = urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))
        logger.debug(f"{method} {target}")

        content, response_headers = await self._transport.send(method, target, headers, body, auth)
        self._response_headers = response_headers
        return content

    async def get(
        self,
        params: Mapping[str, Any] | None = None,
        url: str | None = None,
        content_type: str | None = None,
        user: str | None = None,
        password: str | None = None,
    ) -> bytes:
        return await self.request(params, url, "GET", content_type, user, password)

    async def post(
        self,
        params: Mapping[str, Any] | None = None,
        url: str | None = None,
        content_type: str | None = "application/x-www-form-urlencoded",
        user: str | None = None,
        password: str | None = None,
    ) -> bytes:
        return await self.request(params, url, "POST", content_type, user, password)

    async def put(
        self,
        params: Mapping[str, Any] | None = None,
        url: str | None = None,
        content_type: str | None = None,
        user: str | None = None,
        password: str | None = None,
    ) -> bytes:
        return await self.request(params, url, "PUT", content_type, user, password)

    async def delete(
        self,
        params: Mapping[str, Any] | None = None,
        url: str | None = None,
        content_type: str | None = None,
        user: str | None = None,
        password: str | None = None,
    ) -> bytes:
        return await self.request(params, url, "DELETE", content_type, user, password)

    @staticmethod
    def init_result(data: Any) -> Any:
        "unwrap a decoded envelope, remote errors are raised as `RemoteError`"
        if not isinstance(data, Mapping):
            raise InvalidResponseError("Invalid datatype. Mapping expected!")
        if "error" in data:
            raise RemoteError(data["error"])
        if "result" not in data:
            raise InvalidResponseError("Server returned no result")
        return data["result"]

    async def call(
        self,
        command: str,
        params: Mapping[str, Any] | None = None,
        *,
        method: str = "GET",
    ) -> Any:
        payload = {self._command_field: command, **(params or {})}
        content_type = "application/x-www-form-urlencoded" if method.upper() != "GET" else None
        raw = await self.request(payload, method=method, content_type=content_type)
        try:
            data = decode_envelope(raw)
        except msgspec.DecodeError as exc:
            raise InvalidResponseError(f"Server returned malformed json: {exc}") from exc
        return self.init_result(data)
