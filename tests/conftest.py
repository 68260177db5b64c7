import pytest

from rpcwise import VOID, ActionRegistry, Dispatcher
from rpcwise.coercion import UploadedFile
from rpcwise.errors import NotFoundError, PermissionDeniedError


class RecordingStatus:
    def __init__(self):
        self.sent: list[tuple[int, str]] = []

    def send_status(self, code: int, reason: str, /) -> None:
        self.sent.append((code, reason))


@pytest.fixture
def registry() -> ActionRegistry:
    registry = ActionRegistry()

    @registry.action("GET", params=["name"])
    def greet(name: str) -> str:
        return f"hello {name}"

    @registry.action("GET", params=[("n", "int", 7, False)])
    def number(n: int) -> int:
        return n

    @registry.action("GET", params=[("m", "int", None, False)])
    def maybe_number(m: int | None) -> int | None:
        return m

    @registry.action("GET", params=[("x", "string", "d", False)])
    def echo(x: str) -> str:
        return x

    @registry.action("POST")
    async def void_action():
        return VOID

    @registry.action("GET", params=())
    def nothing() -> None:
        return None

    @registry.action("GET", params=())
    def passthrough() -> dict[str, object]:
        return {"result": 5, "extra": True}

    @registry.action("GET", params=())
    def broken():
        raise ValueError("boom")

    @registry.action("GET", params=())
    def forbidden():
        raise PermissionDeniedError()

    @registry.action("GET", params=())
    def missing():
        raise NotFoundError()

    @registry.action("POST", params=[("doc", "file")])
    def upload(doc: UploadedFile) -> str:
        assert doc.file is not None
        return f"{doc.filename}:{len(doc.file.read())}"

    return registry


@pytest.fixture
def dispatcher(registry: ActionRegistry) -> Dispatcher:
    return Dispatcher(registry)


@pytest.fixture
def status() -> RecordingStatus:
    return RecordingStatus()
