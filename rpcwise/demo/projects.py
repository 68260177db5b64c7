from msgspec import Struct

from ..errors import NotFoundError
from ..Interface import VOID, VoidResult
from ..registry import ActionRegistry, rpc_action

registry = ActionRegistry()


class Project(Struct, kw_only=True):
    ID: str
    name: str
    status: str = "open"


class ProjectStore:
    def __init__(self) -> None:
        self._projects: dict[str, Project] = {
            "1": Project(ID="1", name="website relaunch"),
            "2": Project(ID="2", name="crm migration", status="closed"),
        }

    def list(self) -> list[Project]:
        return list(self._projects.values())

    def get(self, ID: str) -> Project | None:
        return self._projects.get(ID)

    def remove(self, ID: str) -> Project | None:
        return self._projects.pop(ID, None)


@registry.service
class ProjectService:
    def __init__(self, store: ProjectStore):
        self._store = store

    @rpc_action("GET")
    async def project_list(self) -> list[Project]:
        return self._store.list()

    @rpc_action("GET", params=[("ID", "string", None, False)])
    async def project_details(self, ID: str | None) -> Project:
        project = self._store.get(ID) if ID else None
        if project is None:
            raise NotFoundError(f"Project {ID} not found")
        return project

    @rpc_action("POST", params=[("ID", "string", None, False)])
    def project_remove(self, ID: str | None) -> VoidResult:
        if not ID or self._store.remove(ID) is None:
            raise NotFoundError(f"Project {ID} not found")
        return VOID
