import secrets
import typing as ty

from ..errors import PermissionDeniedError
from ..registry import ActionRegistry
from ..request import RequestState

ORDERS: list[dict[str, ty.Any]] = [
    {"id": 1, "customer": "acme", "status": "open", "total": 120.5, "date": "2024-03-02"},
    {"id": 2, "customer": "globex", "status": "shipped", "total": 80.0, "date": "2024-02-11"},
    {"id": 3, "customer": "acme", "status": "shipped", "total": 42.0, "date": "2024-01-20"},
]

ORDER_ACTIONS = {
    "orders_list": (
        "GET",
        "orders_list",
        [
            ("filter", "array", {}, False),
            ("sort", "string", "date", False),
            ("asc", "bool", True, False),
        ],
    ),
}


class OrdersAPI:
    def orders_list(
        self, filter: ty.Any, sort: str, asc: bool
    ) -> list[dict[str, ty.Any]]:
        # only keyed filters narrow the list, `filter[]=x` and `filter=x` are ignored
        if not isinstance(filter, ty.Mapping):
            filter = {}
        orders = [
            order
            for order in ORDERS
            if all(str(order.get(k)) == str(v) for k, v in filter.items())
        ]
        return sorted(orders, key=lambda o: str(o.get(sort, "")), reverse=not asc)


class SessionBook:
    "issues tokens for known users, one live token per user"

    def __init__(self, users: ty.Mapping[str, str]):
        self._users = dict(users)
        self._tokens: dict[str, str] = {}
        self._sessions: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._tokens)

    def auth(self, username: str, password: str) -> dict[str, str]:
        if self._users.get(username) != password:
            raise PermissionDeniedError("Invalid username or password")
        self._revoke_user(username)
        token = secrets.token_hex(16)
        self._tokens[token] = username
        self._sessions[username] = token
        return {"token": token}

    def logout(self, token: str) -> bool:
        username = self._tokens.get(token)
        if username is None:
            return False
        self._revoke_user(username)
        return True

    def _revoke_user(self, username: str) -> None:
        if (token := self._sessions.pop(username, None)) is not None:
            del self._tokens[token]

    def authenticate(self, request: RequestState) -> bool:
        token = request.combined.get("token")
        return isinstance(token, str) and token in self._tokens


def build_registry(book: SessionBook) -> ActionRegistry:
    registry = ActionRegistry()
    registry.register_table(ORDER_ACTIONS, OrdersAPI)
    registry.register_table(
        {
            "auth": ("POST", "auth", ["username", "password"]),
            "logout": ("POST", "logout", ["token"]),
        },
        book,
    )

    @registry.action("ANY", params=())
    def ping() -> str:
        return "pong"

    return registry
