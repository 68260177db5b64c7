import typing as ty

import uvicorn
from fastapi import FastAPI
from ididi import Graph
from loguru import logger

from ..config import DispatchConfig
from ..dispatcher import Dispatcher
from ..integration.fastapi import rpc_router
from .orders import SessionBook, build_registry
from .projects import ProjectStore
from .projects import registry as project_registry

DEMO_USERS = {"demo": "demo"}


class AppState(ty.TypedDict):
    dispatcher: Dispatcher


def build_dispatcher(config: DispatchConfig | None = None) -> Dispatcher:
    book = SessionBook(DEMO_USERS)
    graph = Graph()
    graph.register_singleton(ProjectStore())
    return Dispatcher(
        project_registry,
        build_registry(book),
        config=config or DispatchConfig.from_env(),
        graph=graph,
        authenticate=book.authenticate,
        public_commands=["auth", "ping"],
    )


async def lifespan(app: FastAPI) -> ty.AsyncGenerator[AppState, None]:
    logger.enable("rpcwise")
    yield {"dispatcher": build_dispatcher()}


def app_factory():
    VERSION = "1"
    app = FastAPI(lifespan=lifespan, version=VERSION)
    app.include_router(rpc_router(path="/rpc"))
    return app


if __name__ == "__main__":
    app_str = "rpcwise.demo.app:app_factory"
    uvicorn.run(app_str, factory=True, reload=True)
