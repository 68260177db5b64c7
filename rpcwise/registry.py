import inspect
from types import MappingProxyType, NoneType, UnionType
from typing import (
    Any,
    Callable,
    Iterator,
    Mapping,
    Sequence,
    Union,
    get_args,
    get_origin,
    overload,
)

from ._ds import ActionDescriptor, ActionEntry, HandlerMeta, MethodMeta, ParamEntry, ParameterSpec
from .coercion import UploadedFile
from .errors import (
    DuplicateActionError,
    NotSupportedHandlerTypeError,
    RegistryFrozenError,
    UnknownCommandError,
    UnknownHandlerError,
)
from .Interface import ParamKind

RPC_ACTION_MARKER = "__rpc_action__"

ANNOTATION_KINDS: dict[Any, ParamKind] = {
    str: ParamKind.STRING,
    int: ParamKind.INT,
    float: ParamKind.FLOAT,
    bool: ParamKind.BOOL,
    list: ParamKind.ARRAY,
    tuple: ParamKind.ARRAY,
    dict: ParamKind.OBJECT,
    Mapping: ParamKind.OBJECT,
    UploadedFile: ParamKind.FILE,
}


def _kind_of(annotation: Any) -> ParamKind:
    if annotation is inspect.Parameter.empty:
        return ParamKind.STRING

    origin = get_origin(annotation)
    if origin in (Union, UnionType):
        args = [a for a in get_args(annotation) if a is not NoneType]
        return _kind_of(args[0]) if len(args) == 1 else ParamKind.RAW
    if origin is not None:
        annotation = origin
    return ANNOTATION_KINDS.get(annotation, ParamKind.RAW)


def params_from_signature(func: Callable[..., Any], *, skip_first: bool = False) -> tuple[ParameterSpec, ...]:
    """
    derive parameter specs out of a handler signature

    ```py
    def orders_list(sort: str, asc: bool = True): ...
    # ParameterSpec(name="sort"), ParameterSpec(name="asc", kind="bool", default=True, required=False)
    ```
    """
    params = list(inspect.signature(func, eval_str=True).parameters.values())
    if skip_first:
        params = params[1:]

    specs: list[ParameterSpec] = []
    for param in params:
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD, param.KEYWORD_ONLY):
            continue
        required = param.default is param.empty
        specs.append(
            ParameterSpec(
                name=param.name,
                kind=_kind_of(param.annotation),
                default=None if required else param.default,
                required=required,
            )
        )
    return tuple(specs)


def _is_async(func: Callable[..., Any]) -> bool:
    if inspect.iscoroutinefunction(func):
        return True
    call = getattr(func, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


def get_funcmeta(handler_ref: str, func: Callable[..., Any]) -> HandlerMeta:
    if inspect.isclass(func) or not callable(func):
        raise NotSupportedHandlerTypeError(func)
    return HandlerMeta(handler_ref=handler_ref, handler=func, is_async=_is_async(func))


def get_methodmeta(handler_ref: str, cls: type, func: Callable[..., Any]) -> MethodMeta:
    return MethodMeta(
        handler_ref=handler_ref,
        handler=func,
        is_async=_is_async(func),
        owner_type=cls,
    )


def rpc_action[F: Callable[..., Any]](
    method: str = "GET",
    *,
    name: str | None = None,
    params: Sequence[ParamEntry] | None = None,
) -> Callable[[F], F]:
    """
    mark a method of a service class as an action, see `ActionRegistry.service`

    ```py
    class ProjectService:
        @rpc_action("POST", params=[("ID", "string")])
        def project_remove(self, ID: str): ...
    ```
    """

    def mark(func: F) -> F:
        setattr(func, RPC_ACTION_MARKER, (method, name, params))
        return func

    return mark


class ActionRegistry:
    """
    Maps command names to action descriptors and handler refs to handlers.

    ```py
    registry = ActionRegistry()

    @registry.action("GET", params=[("ID", "string", None, False)])
    def project_details(ID: str | None): ...
    ```
    """

    def __init__(self) -> None:
        self._actions: dict[str, ActionDescriptor] = {}
        self._handlers: dict[str, HandlerMeta] = {}
        self._frozen = False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(actions={list(self._actions)}, frozen={self._frozen})"

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self) -> Iterator[str]:
        return iter(self._actions)

    @overload
    def __call__[T](self, handler: type[T]) -> type[T]: ...

    @overload
    def __call__[**P, R](self, handler: Callable[P, R]) -> Callable[P, R]: ...

    def __call__(self, handler: Any) -> Any:
        if inspect.isclass(handler):
            return self.service(handler)
        return self.action()(handler)

    @property
    def actions(self) -> Mapping[str, ActionDescriptor]:
        return MappingProxyType(self._actions)

    @property
    def handlers(self) -> Mapping[str, HandlerMeta]:
        return MappingProxyType(self._handlers)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def register(self, name: str, descriptor: ActionDescriptor) -> None:
        if self._frozen:
            raise RegistryFrozenError(name)
        if name in self._actions:
            raise DuplicateActionError(name)
        self._actions[name] = descriptor

    def resolve(self, name: str) -> ActionDescriptor:
        try:
            return self._actions[name]
        except KeyError:
            raise UnknownCommandError(name)

    def _bind_meta(self, meta: HandlerMeta) -> None:
        ref = meta.handler_ref
        if self._frozen:
            raise RegistryFrozenError(ref)
        if (existing := self._handlers.get(ref)) and existing != meta:
            raise DuplicateActionError(ref, kind="Handler")
        self._handlers[ref] = meta

    def bind(self, handler_ref: str, handler: Callable[..., Any]) -> None:
        self._bind_meta(get_funcmeta(handler_ref, handler))

    def get_handler(self, handler_ref: str) -> HandlerMeta:
        try:
            return self._handlers[handler_ref]
        except KeyError:
            raise UnknownHandlerError(handler_ref)

    def action[F: Callable[..., Any]](
        self,
        method: str = "GET",
        *,
        name: str | None = None,
        params: Sequence[ParamEntry] | None = None,
    ) -> Callable[[F], F]:
        """
        register a function as an action, named after the function unless `name` is given.
        when `params` is None the parameters are read from the function signature
        """

        def register(func: F) -> F:
            ref = name or func.__name__
            meta = get_funcmeta(ref, func)
            specs = params_from_signature(func) if params is None else params
            descriptor = ActionDescriptor(
                name=ref, http_method=method, handler_ref=ref, parameters=specs
            )
            self.register(ref, descriptor)
            self._bind_meta(meta)
            return func

        return register

    def service[T](self, cls: type[T]) -> type[T]:
        "register every method of `cls` marked with `rpc_action`"
        if not inspect.isclass(cls):
            raise NotSupportedHandlerTypeError(cls)

        members = inspect.getmembers(cls, predicate=inspect.isfunction)
        for attr, func in members:
            if (marker := getattr(func, RPC_ACTION_MARKER, None)) is None:
                continue
            method, name, params = marker
            ref = f"{cls.__qualname__}.{attr}"
            specs = params_from_signature(func, skip_first=True) if params is None else params
            action_name = name or attr
            descriptor = ActionDescriptor(
                name=action_name, http_method=method, handler_ref=ref, parameters=specs
            )
            self.register(action_name, descriptor)
            self._bind_meta(get_methodmeta(ref, cls, func))
        return cls

    def register_table(self, table: Mapping[str, ActionEntry], owner: Any) -> None:
        """
        register an explicit action table, handler refs are attributes of `owner`

        ```py
        registry.register_table(
            {
                "auth": ("POST", "auth", ["username", "password"]),
                "project_list": ("GET", "project_list"),
            },
            ProjectAPI,
        )
        ```
        """
        for name, entry in table.items():
            descriptor = ActionDescriptor.from_spec(name, entry)
            ref = descriptor.handler_ref
            try:
                target = getattr(owner, ref)
            except AttributeError:
                raise UnknownHandlerError(ref)

            if inspect.isclass(owner):
                qualified = f"{owner.__qualname__}.{ref}"
                meta: HandlerMeta = get_methodmeta(qualified, owner, target)
                descriptor = ActionDescriptor(
                    name=name,
                    http_method=descriptor.http_method,
                    handler_ref=qualified,
                    parameters=descriptor.parameters,
                )
            else:
                meta = get_funcmeta(ref, target)
            self.register(name, descriptor)
            self._bind_meta(meta)

    def include(self, *registries: "ActionRegistry") -> None:
        for other in registries:
            for name, descriptor in other.actions.items():
                self.register(name, descriptor)
            for meta in other.handlers.values():
                self._bind_meta(meta)
