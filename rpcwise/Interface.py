"Interface, type alias, and related stuff"

from enum import StrEnum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Final,
    Literal,
    Mapping,
    Protocol,
    Sequence,
)

if TYPE_CHECKING:
    from .coercion import UploadedFile
    from .request import RequestState


type TraceFormat = Literal["string", "array"]

type Source = Mapping[str, Any]
type Uploads = Mapping[str, "UploadedFile"]

type Authenticator = Callable[["RequestState"], bool | Awaitable[bool]]

# "ANY" reads the combined query + body bag
HTTP_METHODS: Final[tuple[str, ...]] = ("GET", "POST", "PUT", "DELETE", "ANY")


class ParamKind(StrEnum):
    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    ARRAY = "array"
    OBJECT = "object"
    FILE = "file"
    RAW = "raw"


class IStatusSink(Protocol):
    "the HTTP layer's handle for out-of-band status codes"

    def send_status(self, code: int, reason: str, /) -> None: ...


class ITransport(Protocol):
    async def send(
        self,
        method: str,
        url: str,
        headers: Sequence[str],
        body: bytes | None,
        auth: tuple[str, str] | None,
    ) -> tuple[bytes, list[str]]:
        """
        perform one request, return the response body and the response header lines,
        the first line being the status line, e.g. `HTTP/1.1 200 OK`
        """
        ...


class VoidResult:
    """
    Return `VOID` from a handler to indicate that there is nothing to encode,
    no envelope, no body.
    """

    def __repr__(self) -> str:
        return "VOID"


VOID: Final[VoidResult] = VoidResult()


class _Missed:

    def __str__(self) -> str:
        return "MISSING"

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> Literal[False]:
        return False


MISSING: Final[_Missed] = _Missed()
