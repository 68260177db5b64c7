import inspect
import io
import traceback
from types import FrameType
from typing import Any, Mapping

from .envelope import Failure, TraceFrame
from .errors import HandlerInvocationError, NotFoundError, PermissionDeniedError
from .Interface import IStatusSink, TraceFormat


def render_arg(arg: Any, depth: bool = True) -> str:
    """
    Converts a call argument into a short string for traces.
    containers are only expanded one level deep
    """
    if isinstance(arg, str):
        return '"' + arg.replace("\n", "") + '"'
    if isinstance(arg, bool):
        return "true" if arg else "false"
    if arg is None:
        return "null"
    if isinstance(arg, (int, float)):
        return repr(arg)
    if isinstance(arg, (list, tuple, Mapping)):
        if not depth:
            return "array()"
        items = arg.items() if isinstance(arg, Mapping) else enumerate(arg)
        parts = [f"{k} => {render_arg(v, False)}" for k, v in items]
        return "array(" + ", ".join(parts) + ")"
    if isinstance(arg, io.IOBase):
        return f"resource({type(arg).__name__})"
    return f"object({type(arg).__name__})"


def _frame_args(frame: FrameType) -> list[str]:
    info = inspect.getargvalues(frame)
    names = [n for n in info.args if n not in ("self", "cls")]
    rendered = [render_arg(info.locals.get(n)) for n in names]
    if info.varargs:
        rendered.extend(render_arg(v) for v in info.locals.get(info.varargs, ()))
    return rendered


def collect_frames(error: BaseException) -> list[TraceFrame]:
    "frames of the error's traceback, most recent call first"
    entries = list(traceback.walk_tb(error.__traceback__))
    frames: list[TraceFrame] = []
    for idx, (frame, lineno) in enumerate(reversed(entries), start=1):
        code = frame.f_code
        frames.append(
            TraceFrame(
                index=idx,
                function=code.co_qualname,
                file=code.co_filename,
                line=lineno,
                args=_frame_args(frame),
            )
        )
    return frames


def format_trace(error: BaseException, trace_format: TraceFormat = "string") -> str | list[TraceFrame]:
    frames = collect_frames(error)
    if trace_format == "array":
        return frames

    if frames:
        head = frames[0]
        text = f"#0: {error}; File: {head.file}; Line: {head.line}\n"
    else:
        text = f"#0: {error}\n"

    for f in frames:
        text += f"#{f.index}: {f.function}({','.join(f.args)}) ; File: {f.file}; Line: {f.line}\n"
    return text


class ErrorTranslator:
    """
    Converts errors caught at the dispatch boundary into `Failure` envelopes.

    - show_error: when False, no envelope at all is produced for errors
    - show_trace: attach a trace of the failing call to the envelope
    - trace_format: "string" for a preformatted trace, "array" for a list of frames
    """

    def __init__(
        self,
        *,
        show_error: bool = True,
        show_trace: bool = True,
        trace_format: TraceFormat = "string",
    ):
        self.show_error = show_error
        self.show_trace = show_trace
        self.trace_format: TraceFormat = trace_format

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(show_error={self.show_error}, "
            f"show_trace={self.show_trace}, trace_format={self.trace_format!r})"
        )

    def send_status(
        self, error: BaseException, *, standalone: bool, status: IStatusSink
    ) -> None:
        if isinstance(error, PermissionDeniedError):
            if not standalone:
                status.send_status(403, "Authentication Required")
        elif isinstance(error, NotFoundError):
            status.send_status(404, "Not Found")

    def to_envelope(
        self,
        error: BaseException,
        *,
        standalone: bool = True,
        status: IStatusSink | None = None,
    ) -> Failure | None:
        if status is not None:
            self.send_status(error, standalone=standalone, status=status)

        if not self.show_error:
            return None

        if not self.show_trace:
            return Failure(error=str(error))

        traced = error
        if isinstance(error, HandlerInvocationError) and error.__cause__ is not None:
            traced = error.__cause__
        return Failure(error=str(error), trace=format_trace(traced, self.trace_format))
