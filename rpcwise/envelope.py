from typing import Any, Mapping

import msgspec
from msgspec import Struct

from .Interface import VoidResult


class TraceFrame(Struct, frozen=True, kw_only=True):
    index: int
    function: str
    file: str
    line: int
    args: list[str] = []


class Success(Struct, frozen=True):
    result: Any


class Failure(Struct, frozen=True, omit_defaults=True):
    error: str
    trace: str | list[TraceFrame] | None = None


type Envelope = Success | Failure | Mapping[str, Any]


def is_envelope(value: Any) -> bool:
    "a mapping already shaped as an envelope, key presence decides"
    return isinstance(value, Mapping) and ("result" in value or "error" in value)


def wrap_result(value: Any) -> Envelope | None:
    if isinstance(value, VoidResult):
        return None
    if is_envelope(value):
        return value
    return Success(value)


def _enc_hook(obj: Any) -> Any:
    if hasattr(obj, "__dict__"):
        return {k: v for k, v in vars(obj).items() if not k.startswith("_")}
    raise NotImplementedError(f"Objects of type {type(obj)} are not supported")


_encoder = msgspec.json.Encoder(enc_hook=_enc_hook)


def encode_envelope(envelope: Envelope | None) -> bytes | None:
    if envelope is None:
        return None
    return _encoder.encode(envelope)


def decode_envelope(data: bytes | str) -> Any:
    return msgspec.json.decode(data)
