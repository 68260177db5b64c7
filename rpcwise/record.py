"""
Collects and validates the fields of a submitted web form before
forwarding them to a remote endpoint.

Validators, see `FormRecord.validate_value`:

- `True`: the value is set
- `False`: the value is not set
- `"@"`: the value is an e-mail address
- `"<N"` / `">N"`: numeric values compared to N, other values by their length
- anything else: the value equals the validator
"""

import re
import time
from pathlib import Path
from typing import Any, Final, Iterable, Mapping
from xml.sax.saxutils import escape

from loguru import logger

from .client import RestClient
from .coercion import coerce_value, is_numeric, to_float
from .Interface import ParamKind

DEFAULT_EXCLUDE: Final[frozenset[str]] = frozenset(
    {
        "form",
        "service",
        "PHPSESSID",
        "COOKIE_SUPPORT",
        "SCREEN_NAME",
        "GUEST_LANGUAGE_ID",
        "LOGIN",
    }
)
BLANK_VALUES: Final[frozenset[str]] = frozenset({"", "undefined", "-"})

_DOMAIN = re.compile(r"^[A-Za-z0-9\-.]+$")
_LOCAL = re.compile(r"^(\\.|[A-Za-z0-9!#%&`_=/$'*+?^{}|~.-])+$")
_QUOTED_LOCAL = re.compile(r'^"(\\"|[^"])+"$')


def validate_email(email: str) -> bool:
    "syntax check only, the domain is not looked up"
    at = email.rfind("@")
    if at <= 0:
        return False

    local, domain = email[:at], email[at + 1 :]
    if not 1 <= len(local) <= 64 or not 1 <= len(domain) <= 255:
        return False
    if local.startswith(".") or local.endswith(".") or ".." in local:
        return False
    if not _DOMAIN.match(domain) or ".." in domain:
        return False

    unescaped = local.replace("\\\\", "")
    if not _LOCAL.match(unescaped) and not _QUOTED_LOCAL.match(unescaped):
        return False
    return True


def _xml_text(value: Any) -> str:
    text = escape(str(value), {'"': "&quot;", "'": "&#39;"})
    return text.encode("ascii", "xmlcharrefreplace").decode("ascii")


class FormRecord:
    """
    ```py
    record = FormRecord(form)
    record.add_filter("email", "string", "@")
    record.add_filter("age", "int", ">17")
    if record.filter():
        await record.send("https://crm.example.com/", {"do": "lead_create"})
    ```
    """

    def __init__(
        self,
        data: Mapping[str, Any] | None = None,
        *,
        exclude: Iterable[str] = DEFAULT_EXCLUDE,
        client: RestClient | None = None,
    ):
        self._exclude = frozenset(exclude)
        self._data: dict[str, Any] = {}
        self._filters: dict[str, tuple[ParamKind, Any]] = {}
        self._errors: list[str] = []
        self._answer: bytes | None = None
        self._client = client
        self.set_data(data or {})

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(fields={list(self._data)}, errors={self._errors})"

    @property
    def data(self) -> dict[str, Any]:
        return dict(self._data)

    @property
    def errors(self) -> list[str]:
        return self._errors[:]

    @property
    def answer(self) -> bytes | None:
        "the body of the last `send`"
        return self._answer

    def set_data(self, data: Mapping[str, Any]) -> None:
        self._data = {
            name: value
            for name, value in data.items()
            if name not in self._exclude
            and not (isinstance(value, str) and value in BLANK_VALUES)
        }

    def set_field(self, name: str, value: Any) -> None:
        self._data[name] = value

    def add_filter(self, name: str, kind: ParamKind | str = ParamKind.STRING, validator: Any = None) -> None:
        self._filters[name] = (ParamKind(kind), validator)

    def filter(self) -> bool:
        """
        cast every filtered field to its kind and run its validator,
        returns whether all validators passed, see `errors`
        """
        errors: list[str] = []
        for name, (kind, validator) in self._filters.items():
            present = name in self._data and self._data[name] is not None
            if present:
                value = coerce_value(self._data[name], kind, strict=False)
                self._data[name] = value
            else:
                value = None

            if validator is None:
                continue
            if validator is False:
                ok = not present or not value
            else:
                ok = present and self.validate_value(value, validator)
            if not ok:
                errors.append(name)

        self._errors = errors
        if errors:
            logger.info(f"form fields failed validation: {errors}")
        return not errors

    def validate_value(self, value: Any, validator: Any) -> bool:
        if validator is True:
            return bool(value)
        if validator is False:
            return not value
        if validator == "@":
            return validate_email(str(value))

        measure = to_float(value) if is_numeric(value) else len(str(value))
        rule = str(validator)
        if rule[:1] in ("<", ">"):
            bound = to_float(rule[1:])
            return measure < bound if rule[0] == "<" else measure > bound
        if is_numeric(value) and is_numeric(validator):
            return measure == to_float(validator)
        return str(value) == rule

    def to_xml(self) -> str:
        lines = [f'<record time="{int(time.time())}" >']
        for name, value in self._data.items():
            lines.append(f'\t<param id="{_xml_text(name)}">{_xml_text(value)}</param>')
        return "\n".join(lines) + "\n</record>\n"

    def write_record(self, path: str | Path) -> None:
        "append the record as xml to `path`"
        with open(path, "a", encoding="utf-8") as fh:
            fh.write(self.to_xml())

    async def send(
        self,
        url: str,
        arguments: Mapping[str, Any] | None = None,
        method: str = "POST",
        user: str | None = None,
        password: str | None = None,
    ) -> bytes | None:
        """
        send the record merged over `arguments` to `url`,
        nothing is sent while the record has errors
        """
        if self._errors:
            return self._answer

        client = self._client or RestClient()
        content_type = "application/x-www-form-urlencoded" if method.upper() != "GET" else None
        self._answer = await client.request(
            {**(arguments or {}), **self._data},
            url,
            method,
            content_type,
            user,
            password,
        )
        return self._answer
