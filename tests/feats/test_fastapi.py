import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from rpcwise import ActionRegistry, Dispatcher, DispatchConfig, RequestState, UploadedFile
from rpcwise.demo.app import app_factory
from rpcwise.demo.orders import SessionBook
from rpcwise.integration.fastapi import InvalidAppStateError, rpc_router


@pytest.fixture
def client():
    with TestClient(app_factory()) as client:
        yield client


@pytest.fixture
def token(client: TestClient) -> str:
    resp = client.post("/rpc", data={"do": "auth", "username": "demo", "password": "demo"})
    assert resp.status_code == 200
    return resp.json()["result"]["token"]


def test_public_command(client: TestClient):
    resp = client.get("/rpc", params={"do": "ping"})
    assert resp.status_code == 200
    assert resp.json() == {"result": "pong"}


def test_unknown_command_requires_authentication(client: TestClient):
    resp = client.get("/rpc", params={"do": "nope"})
    assert resp.status_code == 403
    assert resp.json()["error"] == "Authentication required."


def test_wrong_password(client: TestClient):
    resp = client.post("/rpc", data={"do": "auth", "username": "demo", "password": "x"})
    assert resp.status_code == 403
    assert resp.json()["error"] == "Invalid username or password"


def test_authentication_required(client: TestClient):
    resp = client.get("/rpc", params={"do": "project_list"})
    assert resp.status_code == 403
    body = resp.json()
    assert body["error"] == "Authentication required."
    assert body["trace"].startswith("#0: Authentication required.")


def test_project_details(client: TestClient, token: str):
    resp = client.get("/rpc", params={"do": "project_details", "ID": "1", "token": token})
    assert resp.status_code == 200
    assert resp.json() == {"result": {"ID": "1", "name": "website relaunch", "status": "open"}}


def test_project_not_found(client: TestClient, token: str):
    resp = client.get("/rpc", params={"do": "project_details", "ID": "99", "token": token})
    assert resp.status_code == 404
    assert resp.json()["error"] == "Project 99 not found"

    resp = client.get(
        "/rpc",
        params={"do": "project_details", "ID": "99", "token": token, "_no_http_code": "1"},
    )
    assert resp.status_code == 200
    assert resp.json()["error"] == "Project 99 not found"


def test_project_remove_returns_no_body(client: TestClient, token: str):
    resp = client.post("/rpc", data={"do": "project_remove", "ID": "2", "token": token})
    assert resp.status_code == 200
    assert resp.content == b""

    resp = client.get("/rpc", params={"do": "project_list", "token": token})
    assert [p["ID"] for p in resp.json()["result"]] == ["1"]


def test_orders_list(client: TestClient, token: str):
    resp = client.get(
        "/rpc",
        params={"do": "orders_list", "filter[customer]": "acme", "sort": "id", "token": token},
    )
    assert [o["id"] for o in resp.json()["result"]] == [1, 3]

    resp = client.get(
        "/rpc", params={"do": "orders_list", "asc": "0", "sort": "id", "token": token}
    )
    assert [o["id"] for o in resp.json()["result"]] == [3, 2, 1]


@pytest.mark.parametrize("bad_filter", [{"filter[]": "x"}, {"filter": "abc"}])
def test_orders_list_ignores_unkeyed_filter(client: TestClient, token: str, bad_filter: dict[str, str]):
    resp = client.get(
        "/rpc", params={"do": "orders_list", "sort": "id", "token": token, **bad_filter}
    )
    assert resp.status_code == 200
    assert [o["id"] for o in resp.json()["result"]] == [1, 2, 3]


def test_reauth_replaces_token(client: TestClient, token: str):
    resp = client.post("/rpc", data={"do": "auth", "username": "demo", "password": "demo"})
    fresh = resp.json()["result"]["token"]
    assert fresh != token

    resp = client.get("/rpc", params={"do": "project_list", "token": token})
    assert resp.status_code == 403
    resp = client.get("/rpc", params={"do": "project_list", "token": fresh})
    assert resp.status_code == 200


def test_logout(client: TestClient, token: str):
    resp = client.post("/rpc", data={"do": "logout", "token": token})
    assert resp.json() == {"result": True}

    resp = client.get("/rpc", params={"do": "project_list", "token": token})
    assert resp.status_code == 403


def test_session_book_keeps_one_token_per_user():
    book = SessionBook({"demo": "demo", "ops": "ops"})
    for _ in range(5):
        book.auth("demo", "demo")
    last = book.auth("ops", "ops")["token"]
    assert len(book) == 2

    assert book.authenticate(RequestState.from_raw("GET", f"token={last}"))
    assert book.logout(last)
    assert not book.logout(last)
    assert not book.authenticate(RequestState.from_raw("GET", f"token={last}"))
    assert len(book) == 1


def build_upload_app(config: DispatchConfig | None = None) -> FastAPI:
    registry = ActionRegistry()

    @registry.action("POST", params=[("title", "string", "", False), ("doc", "file")])
    def upload(title: str, doc: UploadedFile) -> dict[str, object]:
        assert doc.file is not None
        return {"title": title, "name": doc.filename, "size": len(doc.file.read())}

    app = FastAPI()
    app.include_router(rpc_router(Dispatcher(registry, config=config)))
    return app


def test_multipart_upload():
    with TestClient(build_upload_app()) as client:
        resp = client.post(
            "/",
            data={"do": "upload", "title": "notes"},
            files={"doc": ("notes.txt", b"hello", "text/plain")},
        )
    assert resp.json() == {"result": {"title": "notes", "name": "notes.txt", "size": 5}}


def test_upload_missing_file():
    with TestClient(build_upload_app()) as client:
        resp = client.post("/", data={"do": "upload"})
    assert resp.json()["error"] == 'File "doc" not found!'


def test_upload_too_large():
    app = build_upload_app(DispatchConfig(max_upload_size=2, show_trace=False))
    with TestClient(app) as client:
        resp = client.post(
            "/", data={"do": "upload"}, files={"doc": ("big.bin", b"12345")}
        )
    assert resp.json() == {
        "error": 'Bad data encountered in upload "doc" '
        "[The uploaded file exceeds the configured maximum allowed file size.]. Please try again."
    }


def test_json_body_for_put():
    registry = ActionRegistry()

    @registry.action("PUT", params=[("ID", "int")])
    def touch(ID: int) -> int:
        return ID

    app = FastAPI()
    app.include_router(rpc_router(Dispatcher(registry), path="/api"))
    with TestClient(app) as client:
        resp = client.put("/api?do=touch", json={"ID": "12"})
    assert resp.json() == {"result": 12}


def test_missing_app_state():
    app = FastAPI()
    app.include_router(rpc_router())
    with TestClient(app, raise_server_exceptions=True) as client:
        with pytest.raises(InvalidAppStateError):
            client.get("/", params={"do": "ping"})


def test_unknown_command(client: TestClient, token: str):
    resp = client.get("/rpc", params={"do": "nope", "token": token})
    assert resp.status_code == 200
    assert resp.json()["error"] == "Unknown command: nope"
