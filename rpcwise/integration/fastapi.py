from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response
from starlette.datastructures import UploadFile

from ..coercion import UploadedFile, UploadStatus
from ..config import DispatchConfig
from ..dispatcher import Dispatcher
from ..request import FORM_TYPES, RequestState, group_pairs

RPC_METHODS = ["GET", "POST", "PUT", "DELETE"]


class InvalidAppStateError(Exception):
    def __init__(self):
        super().__init__("Make sure `dispatcher` exist in app.state")


def get_dispatcher(r: Request) -> Dispatcher:
    try:
        dispatcher = r.scope["state"]["dispatcher"]
    except KeyError:
        raise InvalidAppStateError()
    return dispatcher


FastDispatcher = Annotated[Dispatcher, Depends(get_dispatcher)]


class ResponseStatus:
    "collects the status the dispatcher asks for, 200 unless told otherwise"

    def __init__(self):
        self.code = 200
        self.reason = "OK"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.code}, {self.reason!r})"

    def send_status(self, code: int, reason: str, /) -> None:
        self.code = code
        self.reason = reason


def _upload_record(part: UploadFile, config: DispatchConfig) -> UploadedFile:
    f = part.file
    f.seek(0, 2)
    size = f.tell()
    f.seek(0)

    if not part.filename and size == 0:
        status = UploadStatus.NO_FILE
    elif config.max_upload_size is not None and size > config.max_upload_size:
        status = UploadStatus.INI_SIZE
    else:
        status = UploadStatus.OK

    return UploadedFile(
        filename=part.filename or "",
        file=f,
        content_type=part.content_type,
        size=size,
        status=status,
        genuine=True,
    )


async def capture_request(
    request: Request,
    status: ResponseStatus | None = None,
    config: DispatchConfig | None = None,
) -> RequestState:
    """
    snapshot the starlette request into a `RequestState`,
    form fields and upload parts are split into the form bag and the upload table
    """
    config = config or DispatchConfig()
    method = request.method.upper()
    content_type = request.headers.get("content-type", "")

    form: dict[str, Any] | None = None
    files: dict[str, UploadedFile] = {}
    body = b""

    if method == "POST" and content_type.startswith(FORM_TYPES):
        pairs: list[tuple[str, Any]] = []
        data = await request.form()
        for key, value in data.multi_items():
            if isinstance(value, UploadFile):
                files[key] = _upload_record(value, config)
            else:
                pairs.append((key, value))
        form = group_pairs(pairs)
    else:
        body = await request.body()

    return RequestState(
        method=method,
        query=group_pairs(request.query_params.multi_items()),
        form=form,
        body=body,
        content_type=content_type,
        files=files,
        status=status,
    )


def _close_uploads(state: RequestState) -> None:
    for record in state.files.values():
        if record.file is not None:
            record.file.close()


def rpc_router(dispatcher: Dispatcher | None = None, *, path: str = "/") -> APIRouter:
    """
    serve a dispatcher at `path`, when no dispatcher is given
    it is read from the app state, see `get_dispatcher`

    ```py
    app = FastAPI(lifespan=lifespan)
    app.include_router(rpc_router(), prefix="/api")
    ```
    """
    router = APIRouter()

    async def rpc_endpoint(request: Request) -> Response:
        target = dispatcher or get_dispatcher(request)
        status = ResponseStatus()
        state = await capture_request(request, status, target.config)
        try:
            payload = await target.run_json(state)
        finally:
            _close_uploads(state)

        if payload is None:
            return Response(status_code=status.code)
        return Response(
            content=payload, status_code=status.code, media_type="application/json"
        )

    router.add_api_route(
        path, rpc_endpoint, methods=RPC_METHODS, include_in_schema=False
    )
    return router
