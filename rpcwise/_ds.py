from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from .errors import InvalidHttpMethodError, InvalidParameterSpecError
from .Interface import HTTP_METHODS, ParamKind

type ParamEntry = str | Sequence[Any] | Mapping[str, Any] | "ParameterSpec"
type ActionEntry = str | Sequence[Any]


@dataclass(frozen=True, slots=True, kw_only=True)
class ParameterSpec:
    """
    name: key looked up in the parameter source
    default: returned verbatim when an optional parameter is missing,
    ignored for required parameters
    """

    name: str
    kind: ParamKind = ParamKind.STRING
    default: Any = None
    required: bool = True

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise InvalidParameterSpecError(self.name, "name must be a non-empty string")
        try:
            kind = ParamKind(self.kind)
        except ValueError:
            raise InvalidParameterSpecError(self.kind, f"unknown kind for `{self.name}`")
        object.__setattr__(self, "kind", kind)

    @classmethod
    def parse(cls, entry: ParamEntry) -> "ParameterSpec":
        """
        accepts
        - "name", shorthand for a required string parameter
        - ("name", kind, default, required), trailing items optional
        - {"name": ..., "kind": ..., "default": ..., "required": ...}
        """
        if isinstance(entry, ParameterSpec):
            return entry
        if isinstance(entry, str):
            return cls(name=entry)
        if isinstance(entry, Mapping):
            try:
                return cls(**entry)
            except TypeError as exc:
                raise InvalidParameterSpecError(entry, str(exc)) from exc
        if isinstance(entry, Sequence):
            if not 1 <= len(entry) <= 4:
                raise InvalidParameterSpecError(entry, "expected 1 to 4 items")
            name, *rest = entry
            kind = rest[0] if len(rest) > 0 and rest[0] is not None else ParamKind.STRING
            default = rest[1] if len(rest) > 1 else None
            required = bool(rest[2]) if len(rest) > 2 else True
            return cls(name=name, kind=kind, default=default, required=required)
        raise InvalidParameterSpecError(entry, "unsupported entry type")


@dataclass(frozen=True, slots=True, kw_only=True)
class ActionDescriptor:
    name: str
    http_method: str
    handler_ref: str
    parameters: tuple[ParameterSpec, ...] = field(default_factory=tuple)

    def __post_init__(self):
        method = self.http_method.upper() if isinstance(self.http_method, str) else None
        if method not in HTTP_METHODS:
            raise InvalidHttpMethodError(self.http_method)
        object.__setattr__(self, "http_method", method)
        params = tuple(ParameterSpec.parse(p) for p in self.parameters)
        object.__setattr__(self, "parameters", params)

    @classmethod
    def from_spec(cls, name: str, spec: ActionEntry) -> "ActionDescriptor":
        """
        build a descriptor out of the table form

        ```py
        "orders_list": ("GET", "orders_list", [("filter", "array", [], False)])
        ```
        """
        if isinstance(spec, str):
            return cls(name=name, http_method=spec, handler_ref=name)

        method, *rest = spec
        handler_ref = rest[0] if rest else name
        params = rest[1] if len(rest) > 1 else ()
        return cls(
            name=name, http_method=method, handler_ref=handler_ref, parameters=params
        )


@dataclass(frozen=True, slots=True, kw_only=True)
class HandlerMeta:
    """
    is_async: whether the handler has to be awaited,
    sync handlers are sent to a worker thread
    """

    handler_ref: str
    handler: Callable[..., Any]
    is_async: bool


@dataclass(frozen=True, slots=True, kw_only=True)
class MethodMeta(HandlerMeta):
    owner_type: type
