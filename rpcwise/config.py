import os
from dataclasses import dataclass, fields
from typing import Any, Mapping, Self

from .coercion import BindingPolicy, to_bool
from .Interface import TraceFormat

TRACE_FORMATS = ("string", "array")


@dataclass(frozen=True, slots=True, kw_only=True)
class DispatchConfig:
    """
    command_field: request field holding the command name (sometimes "cmd" or "do")
    no_http_code_field: request field that suppresses 403 / 404 side effects
    show_error: return an error envelope instead of no body at all
    show_trace: also add a trace to the error envelope (see show_error)
    trace_format: "string" | "array"
    policy: parameter binding policy
    max_upload_size: uploads above this many bytes are rejected, None for no limit
    """

    command_field: str = "do"
    no_http_code_field: str = "_no_http_code"
    show_error: bool = True
    show_trace: bool = True
    trace_format: TraceFormat = "string"
    policy: BindingPolicy = BindingPolicy.DEFAULT
    max_upload_size: int | None = None

    def __post_init__(self):
        if self.trace_format not in TRACE_FORMATS:
            raise ValueError(f"trace_format must be one of {TRACE_FORMATS}, got {self.trace_format!r}")

    @classmethod
    def from_env(
        cls,
        prefix: str = "RPCWISE_",
        environ: Mapping[str, str] | None = None,
        **defaults: Any,
    ) -> Self:
        """
        RPCWISE_SHOW_TRACE=0 RPCWISE_POLICY=strict_numeric,file_uploads
        -> DispatchConfig(show_trace=False, policy=STRICT_NUMERIC | FILE_UPLOADS)
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = dict(defaults)
        for f in fields(cls):
            raw = env.get(prefix + f.name.upper())
            if raw is None:
                continue
            values[f.name] = _parse_field(f.name, raw)
        return cls(**values)


def parse_policy(raw: str) -> BindingPolicy:
    policy = BindingPolicy(0)
    for name in filter(None, (part.strip().upper() for part in raw.split(","))):
        try:
            policy |= BindingPolicy[name]
        except KeyError:
            raise ValueError(f"Unknown binding policy `{name}`")
    return policy


def _parse_field(name: str, raw: str) -> Any:
    match name:
        case "show_error" | "show_trace":
            return to_bool(raw)
        case "policy":
            return parse_policy(raw)
        case "max_upload_size":
            return int(raw) if raw.strip() else None
        case _:
            return raw
