import inspect
from asyncio import to_thread
from types import MethodType
from typing import Any, Iterable, Sequence

from ididi import AsyncScope, Graph
from loguru import logger

from ._ds import HandlerMeta, MethodMeta
from .coercion import ParamCoercer
from .config import DispatchConfig
from .envelope import Envelope, encode_envelope, wrap_result
from .errors import (
    HandlerInvocationError,
    NoCommandSpecifiedError,
    PermissionDeniedError,
    RpcWiseError,
)
from .Interface import Authenticator, IStatusSink, Source, Uploads
from .registry import ActionRegistry
from .request import RequestState
from .translator import ErrorTranslator


class Dispatcher:
    """
    Resolves a command to its action, binds the parameters, invokes the handler
    and normalizes whatever comes back into an envelope.

    - config: `DispatchConfig`, command field, binding policy, error reporting
    - graph: `ididi.Graph` used to build the owners of service methods
    - translator: `ErrorTranslator`, built from config when not given
    - authenticate: `Callable[[RequestState], bool | Awaitable[bool]]`,
        request driven calls of commands not in `public_commands` must pass it

    ```py
    dispatcher = Dispatcher(registry, authenticate=check_token, public_commands=["auth"])
    envelope = await dispatcher.dispatch("project_details", {"ID": "42"})
    ```
    """

    def __init__(
        self,
        *registries: ActionRegistry,
        config: DispatchConfig | None = None,
        graph: Graph | None = None,
        translator: ErrorTranslator | None = None,
        authenticate: Authenticator | None = None,
        public_commands: Iterable[str] = (),
    ):
        self._config = config or DispatchConfig()
        self._dg = graph or Graph()
        self._coercer = ParamCoercer(self._config.policy)
        self._translator = translator or ErrorTranslator(
            show_error=self._config.show_error,
            show_trace=self._config.show_trace,
            trace_format=self._config.trace_format,
        )
        self._authenticate = authenticate
        self._public_commands = frozenset(public_commands)

        self._registry = ActionRegistry()
        self._registry.include(*registries)
        self._registry.freeze()
        self._dg.register_singleton(self)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(actions={len(self._registry)}, config={self._config})"

    @property
    def config(self) -> DispatchConfig:
        return self._config

    @property
    def registry(self) -> ActionRegistry:
        return self._registry

    @property
    def graph(self) -> Graph:
        return self._dg

    @property
    def translator(self) -> ErrorTranslator:
        return self._translator

    async def _check_access(self, command: str, request: RequestState) -> None:
        if self._authenticate is None or command in self._public_commands:
            return
        granted = self._authenticate(request)
        if inspect.isawaitable(granted):
            granted = await granted
        if not granted:
            raise PermissionDeniedError("Authentication required.")

    async def _invoke(self, meta: HandlerMeta, args: Sequence[Any], scope: AsyncScope) -> Any:
        handler = meta.handler
        if isinstance(meta, MethodMeta):
            instance = await scope.resolve(meta.owner_type)
            handler = MethodType(handler, instance)

        if meta.is_async:
            return await handler(*args)
        return await to_thread(handler, *args)

    async def raw_dispatch(
        self,
        command: str | None = None,
        source: Source | None = None,
        *,
        uploads: Uploads | None = None,
        request: RequestState | None = None,
    ) -> Envelope | None:
        """
        same as `dispatch`, but errors are raised instead of translated.
        an explicit `source` marks a library call, no authentication is performed
        """
        if command is None and request is not None:
            command = request.command(self._config.command_field)
        if not command:
            raise NoCommandSpecifiedError()

        if source is None and request is not None:
            await self._check_access(command, request)

        descriptor = self._registry.resolve(command)

        if source is None:
            source = request.source_for(descriptor.http_method) if request else {}
        if uploads is None and request is not None:
            uploads = request.files

        args = self._coercer.bind(source, descriptor.parameters, uploads)
        meta = self._registry.get_handler(descriptor.handler_ref)

        async with self._dg.scope("dispatch") as scope:
            try:
                value = await self._invoke(meta, args, scope)
            except RpcWiseError:
                raise
            except Exception as exc:
                logger.opt(exception=exc).error(f"handler `{descriptor.handler_ref}` failed")
                raise HandlerInvocationError(command, meta.handler, exc) from exc

        logger.debug(f"dispatched `{command}` to `{descriptor.handler_ref}`")
        return wrap_result(value)

    def _status_sink(self, request: RequestState | None) -> IStatusSink | None:
        if request is None or request.flag(self._config.no_http_code_field):
            return None
        return request.status

    async def dispatch(
        self,
        command: str | None = None,
        source: Source | None = None,
        *,
        uploads: Uploads | None = None,
        request: RequestState | None = None,
    ) -> Envelope | None:
        """
        run a command and return its envelope, `None` when there is nothing to encode.
        every `RpcWiseError` is translated into a `Failure`
        """
        name = command
        if name is None and request is not None:
            name = request.command(self._config.command_field)

        with logger.contextualize(command=name):
            try:
                return await self.raw_dispatch(
                    command, source, uploads=uploads, request=request
                )
            except RpcWiseError as exc:
                if not isinstance(exc, HandlerInvocationError):
                    logger.warning(f"{exc.__class__.__name__}: {exc}")
                standalone = request is None or source is not None
                return self._translator.to_envelope(
                    exc, standalone=standalone, status=self._status_sink(request)
                )

    async def run_json(self, request: RequestState) -> bytes | None:
        "dispatch from request state and encode the envelope"
        return encode_envelope(await self.dispatch(request=request))
