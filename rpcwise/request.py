"""
Request state captured at the HTTP boundary.

The dispatcher never reads process wide request state; the HTTP adapter
captures one `RequestState` per inbound request and passes it explicitly.
"""

import re
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Iterable, Mapping
from urllib.parse import parse_qsl

import msgspec
from loguru import logger

from .coercion import UploadedFile, to_bool
from .Interface import IStatusSink, Source

_KEY_PATTERN = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")
_SEGMENT_PATTERN = re.compile(r"\[([^\[\]]*)\]")

FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def _assign(bag: dict[str, Any], key: str, value: Any) -> None:
    match = _KEY_PATTERN.match(key)
    if not match or not match.group(2):
        bag[key] = value
        return

    name, rest = match.groups()
    segments = _SEGMENT_PATTERN.findall(rest)

    container: Any = bag
    slot: Any = name
    for seg in segments:
        current = container[slot] if _has(container, slot) else None
        if seg == "":
            if not isinstance(current, list):
                current = []
                container[slot] = current
            container, slot = current, len(current)
            current.append(None)
        else:
            if not isinstance(current, dict):
                current = {}
                container[slot] = current
            container, slot = current, seg
    container[slot] = value


def _has(container: Any, slot: Any) -> bool:
    if isinstance(container, list):
        return slot < len(container)
    return slot in container


def group_pairs(pairs: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    """
    build a parameter bag out of key/value pairs

    - `a=1&a=2` -> {"a": "2"}, the last value wins
    - `a[]=1&a[]=2` -> {"a": ["1", "2"]}
    - `a[x]=1` -> {"a": {"x": "1"}}
    """
    bag: dict[str, Any] = {}
    for key, value in pairs:
        _assign(bag, key, value)
    return bag


def parse_query(raw: bytes | str) -> dict[str, Any]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return group_pairs(parse_qsl(raw, keep_blank_values=True))


@dataclass(kw_only=True)
class RequestState:
    """
    method: HTTP method of the inbound request
    query: the query string bag
    form: the parsed POST form, None when the body was not a form
    body: the raw body, parsed on demand for PUT / DELETE
    files: the upload table
    status: sink for out-of-band status codes
    """

    method: str = "GET"
    query: Source = field(default_factory=dict)
    form: Source | None = None
    body: bytes = b""
    content_type: str = ""
    files: Mapping[str, UploadedFile] = field(default_factory=dict)
    status: IStatusSink | None = None

    @classmethod
    def from_raw(
        cls,
        method: str = "GET",
        query_string: bytes | str = "",
        body: bytes = b"",
        *,
        content_type: str = "",
        files: Mapping[str, UploadedFile] | None = None,
        status: IStatusSink | None = None,
    ) -> "RequestState":
        method = method.upper()
        form = None
        if method == "POST" and content_type.startswith(FORM_TYPES[0]):
            form = parse_query(body)
        return cls(
            method=method,
            query=parse_query(query_string),
            form=form,
            body=body,
            content_type=content_type,
            files=files or {},
            status=status,
        )

    @cached_property
    def body_params(self) -> Source:
        if self.form is not None:
            return self.form
        if not self.body:
            return {}
        if self.content_type.startswith("application/json"):
            try:
                payload = msgspec.json.decode(self.body)
            except msgspec.DecodeError as exc:
                logger.warning(f"ignoring malformed json body: {exc}")
                return {}
            return payload if isinstance(payload, dict) else {}
        return parse_query(self.body)

    @cached_property
    def combined(self) -> Source:
        return {**self.query, **self.body_params}

    def source_for(self, http_method: str) -> Source:
        match http_method:
            case "GET":
                return self.query
            case "POST" | "PUT" | "DELETE":
                return self.body_params
            case _:
                return self.combined

    def command(self, field_name: str) -> str | None:
        value = self.combined.get(field_name)
        return value if isinstance(value, str) else None

    def flag(self, field_name: str) -> bool:
        value = self.combined.get(field_name)
        return value is not None and to_bool(value)
