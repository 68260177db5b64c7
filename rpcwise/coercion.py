"""
Parameter binding: turn raw values of a parameter source into the typed
arguments declared by an action.

Binding behaviour is driven by `BindingPolicy` flags rather than by subclassing:

- `NULL_AS_ABSENT`: an explicit `None` counts as a missing key,
  otherwise `None` is handed to the handler as is.
- `EMPTY_AS_ABSENT`: an empty string counts as a missing key.
- `STRICT_NUMERIC`: non numeric input for `int` / `float` falls back to the
  declared default, otherwise the leading number of the input is used (`"42abc"` -> 42).
- `FILE_UPLOADS`: `file` parameters are looked up in the upload table.
"""

import dataclasses
import math
import re
from decimal import Decimal
from enum import Flag, IntEnum
from typing import IO, Any, Final, Mapping, Sequence

from msgspec import Struct

from ._ds import ParameterSpec
from .errors import (
    InvalidParameterError,
    MissingParameterError,
    RpcWiseError,
    UploadError,
)
from .Interface import MISSING, ParamKind, Source, Uploads


class BindingPolicy(Flag):
    NULL_AS_ABSENT = 1
    EMPTY_AS_ABSENT = 2
    STRICT_NUMERIC = 4
    FILE_UPLOADS = 8

    DEFAULT = STRICT_NUMERIC | FILE_UPLOADS


class UploadStatus(IntEnum):
    OK = 0
    INI_SIZE = 1
    FORM_SIZE = 2
    PARTIAL = 3
    NO_FILE = 4
    NO_TMP_DIR = 6
    CANT_WRITE = 7
    EXTENSION = 8


UPLOAD_MESSAGES: Final[Mapping[int, str]] = {
    UploadStatus.OK: "Upload OK",
    UploadStatus.INI_SIZE: "The uploaded file exceeds the configured maximum allowed file size.",
    UploadStatus.FORM_SIZE: "The uploaded file exceeds the maximum allowed file size specified in the HTML form.",
    UploadStatus.PARTIAL: "The uploaded file was only partially uploaded.",
    UploadStatus.NO_FILE: "No file was uploaded.",
    UploadStatus.NO_TMP_DIR: "Missing a temporary folder.",
    UploadStatus.CANT_WRITE: "Failed to write file to disk.",
    # names no runtime, extensions here are whatever sits in front of the upload parser
    UploadStatus.EXTENSION: "A server extension stopped the file upload.",
}


def upload_message(status: int) -> str:
    try:
        return UPLOAD_MESSAGES[status]
    except KeyError:
        return f"error {status}"


@dataclasses.dataclass(slots=True, kw_only=True)
class UploadedFile:
    """
    A record of the upload table.

    genuine: the record was produced by parsing an actual multipart upload,
    records built by hand should leave it False
    """

    filename: str
    file: IO[bytes] | None = None
    content_type: str | None = None
    size: int | None = None
    status: int = UploadStatus.OK
    genuine: bool = False

    @property
    def readable(self) -> bool:
        f = self.file
        if f is None or getattr(f, "closed", False):
            return False
        try:
            return f.readable()
        except (AttributeError, ValueError):
            return False


NUMERIC_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*"
)
LEADING_NUMBER: Final[re.Pattern[str]] = re.compile(
    r"\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)"
)

FALSY_STRINGS: Final[frozenset[str]] = frozenset({"", "0", "false", "off", "no"})

# numbers past this decimal exponent are not cast
MAX_EXPONENT: Final[int] = 4300


def _bounded(number: Decimal) -> Decimal | None:
    "`number` if it is finite and castable without building a huge integer"
    if not number.is_finite() or number.adjusted() > MAX_EXPONENT:
        return None
    return number


def is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, Decimal):
        return _bounded(value) is not None
    if isinstance(value, str):
        if NUMERIC_PATTERN.fullmatch(value) is None:
            return False
        return _bounded(Decimal(value.strip())) is not None
    return False


def _number_text(value: Any) -> str | None:
    "the leading number of `value`, if there is one"
    if isinstance(value, str):
        if match := LEADING_NUMBER.match(value):
            return match.group(1)
    return None


def to_int(value: Any) -> int:
    """
    loose integer cast, fractions are truncated toward zero,
    strings without a leading number give 0, so do non finite
    or out of range numbers
    """
    if isinstance(value, (bool, int)):
        return int(value)
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, Decimal):
        number = _bounded(value)
        return 0 if number is None else int(number)
    if isinstance(value, (str, bytes)):
        text = _number_text(value.decode() if isinstance(value, bytes) else value)
        number = _bounded(Decimal(text)) if text else None
        return 0 if number is None else int(number)
    return int(bool(value))


def _raw_float(value: Any) -> float:
    if isinstance(value, (str, bytes)):
        text = _number_text(value.decode() if isinstance(value, bytes) else value)
        return float(text) if text else 0.0
    if isinstance(value, (bool, int, float, Decimal)):
        try:
            return float(value)
        except OverflowError:
            return math.nan
    return float(bool(value))


def to_float(value: Any) -> float:
    "loose float cast, non finite results give 0.0"
    number = _raw_float(value)
    return number if math.isfinite(number) else 0.0


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in FALSY_STRINGS
    return bool(value)


def to_str(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode(errors="replace")
    return str(value)


def is_structured(value: Any) -> bool:
    if isinstance(value, (str, bytes, bytearray, int, float, list, tuple)):
        return False
    if isinstance(value, (Mapping, Struct)):
        return True
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return True
    return hasattr(value, "__dict__") and not isinstance(value, type)


def coerce_value(
    value: Any, kind: ParamKind | str, default: Any = None, *, strict: bool = True
) -> Any:
    """
    cast a present, non-null value to `kind`

    with `strict`, non numeric input for int / float gives the default
    (cast itself) instead of the leading number of the input,
    infinities, nan and out of range exponents count as non numeric
    """
    match ParamKind(kind):
        case ParamKind.INT:
            if is_numeric(value):
                return to_int(value)
            if strict:
                return None if default is None else to_int(default)
            return to_int(value)
        case ParamKind.FLOAT:
            if is_numeric(value) and math.isfinite(number := _raw_float(value)):
                return number
            if strict:
                return None if default is None else to_float(default)
            return to_float(value)
        case ParamKind.BOOL:
            return to_bool(value)
        case ParamKind.ARRAY:
            if isinstance(value, (list, tuple, Mapping)):
                return value
            return []
        case ParamKind.OBJECT:
            return value if is_structured(value) else None
        case ParamKind.RAW | ParamKind.FILE:
            return value
        case ParamKind.STRING:
            return to_str(value)


class ParamCoercer:
    def __init__(self, policy: BindingPolicy = BindingPolicy.DEFAULT):
        self._policy = policy

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(policy={self._policy})"

    @property
    def policy(self) -> BindingPolicy:
        return self._policy

    def _is_absent(self, source: Source, key: str) -> bool:
        try:
            value = source[key]
        except KeyError:
            return True

        if value is MISSING:
            return True
        if value is None and BindingPolicy.NULL_AS_ABSENT in self._policy:
            return True
        if value == "" and BindingPolicy.EMPTY_AS_ABSENT in self._policy:
            return True
        return False

    def coerce_upload(self, uploads: Uploads, spec: ParameterSpec) -> Any:
        record = uploads.get(spec.name)
        if record is None:
            if spec.required:
                raise MissingParameterError(spec.name, is_file=True)
            return None

        if record.status != UploadStatus.OK:
            raise UploadError(spec.name, upload_message(record.status))

        if not record.genuine or not record.readable:
            raise UploadError(spec.name)

        return record

    def coerce(
        self, source: Source, spec: ParameterSpec, uploads: Uploads | None = None
    ) -> Any:
        if spec.kind is ParamKind.FILE and BindingPolicy.FILE_UPLOADS in self._policy:
            return self.coerce_upload(uploads or {}, spec)

        if self._is_absent(source, spec.name):
            if spec.required:
                raise MissingParameterError(spec.name)
            return spec.default

        value = source[spec.name]
        if value is None:
            return None

        strict = BindingPolicy.STRICT_NUMERIC in self._policy
        return coerce_value(value, spec.kind, spec.default, strict=strict)

    def bind(
        self,
        source: Source,
        specs: Sequence[ParameterSpec],
        uploads: Uploads | None = None,
    ) -> list[Any]:
        "coerce every spec in order, cast failures are raised as `InvalidParameterError`"
        args: list[Any] = []
        for spec in specs:
            try:
                args.append(self.coerce(source, spec, uploads))
            except RpcWiseError:
                raise
            except Exception as exc:
                raise InvalidParameterError(spec.name, str(exc)) from exc
        return args
