import io
import time
from dataclasses import dataclass
from decimal import Decimal

import pytest

from rpcwise import MISSING, BindingPolicy, ParamCoercer, ParameterSpec, UploadedFile, UploadStatus
from rpcwise.coercion import UPLOAD_MESSAGES, coerce_value, is_numeric, to_bool, upload_message
from rpcwise.errors import InvalidParameterError, MissingParameterError, UploadError


@pytest.mark.parametrize("value", ["42", " 4.5", "1e3", "-7", "+.5", 3, 2.5])
def test_numeric(value: object):
    assert is_numeric(value)


@pytest.mark.parametrize("value", ["42abc", "", "0x1A", "abc", True, None, [1]])
def test_not_numeric(value: object):
    assert not is_numeric(value)


def test_int_coercion():
    assert coerce_value("42", "int") == 42
    assert coerce_value("42abc", "int", 7) == 7
    assert coerce_value("", "int") is None
    assert coerce_value("4.9", "int") == 4
    assert coerce_value("1e3", "int") == 1000


def test_loose_numeric_coercion():
    assert coerce_value("42abc", "int", 7, strict=False) == 42
    assert coerce_value("abc", "int", 7, strict=False) == 0
    assert coerce_value("2.5kg", "float", strict=False) == 2.5


@pytest.mark.parametrize(
    "value",
    ["1e1000000", "-1e1000000", float("inf"), float("-inf"), float("nan"), Decimal("Infinity")],
)
def test_non_finite_not_numeric(value: object):
    assert not is_numeric(value)


def test_huge_exponent_int():
    start = time.perf_counter()
    assert coerce_value("1e1000000", "int", 7) == 7
    assert coerce_value("1e1000000", "int") is None
    assert coerce_value("1e1000000abc", "int", 7, strict=False) == 0
    assert coerce_value("1e-1000000", "int") == 0
    assert coerce_value("1e4300", "int") == 10**4300
    assert time.perf_counter() - start < 1


def test_non_finite_float_int():
    for value in (float("inf"), float("-inf"), float("nan")):
        assert coerce_value(value, "int", 7) == 7
        assert coerce_value(value, "float", 1.5) == 1.5
        assert coerce_value(value, "int", 7, strict=False) == 0
        assert coerce_value(value, "float", strict=False) == 0.0

    assert coerce_value("1e400", "float", 1.5) == 1.5
    assert coerce_value(10**400, "float", 1.5) == 1.5
    assert coerce_value(10**400, "int") == 10**400


def test_float_coercion():
    assert coerce_value(" 4.5", "float") == 4.5
    assert coerce_value("x", "float", "1.5") == 1.5
    assert coerce_value("x", "float") is None


def test_bool_coercion():
    for falsy in ("", "0", "false", "off", "no", 0, []):
        assert coerce_value(falsy, "bool") is False
    for truthy in ("1", "yes", "true", 1, [0]):
        assert coerce_value(truthy, "bool") is True
    assert to_bool(" False ") is False


def test_container_coercion():
    assert coerce_value([1, 2], "array") == [1, 2]
    assert coerce_value({"a": 1}, "array") == {"a": 1}
    assert coerce_value("1,2", "array") == []

    @dataclass
    class Point:
        x: int

    point = Point(1)
    assert coerce_value({"a": 1}, "object") == {"a": 1}
    assert coerce_value(point, "object") is point
    assert coerce_value("point", "object") is None


def test_string_and_raw_coercion():
    assert coerce_value(5, "string") == "5"
    assert coerce_value(b"abc", "string") == "abc"
    raw = object()
    assert coerce_value(raw, "raw") is raw


def test_missing_parameter():
    coercer = ParamCoercer()
    with pytest.raises(MissingParameterError) as exc_info:
        coercer.coerce({}, ParameterSpec(name="ID"))
    assert str(exc_info.value) == 'Parameter "ID" not found!'


def test_missing_sentinel_counts_as_absent():
    coercer = ParamCoercer()
    spec = ParameterSpec(name="sort", default="date", required=False)
    assert coercer.coerce({"sort": MISSING}, spec) == "date"


def test_default_is_not_coerced():
    coercer = ParamCoercer()
    spec = ParameterSpec(name="n", kind="int", default="seven", required=False)
    assert coercer.coerce({}, spec) == "seven"


def test_null_policy():
    spec = ParameterSpec(name="sort", default="date", required=False)
    assert ParamCoercer().coerce({"sort": None}, spec) is None

    coercer = ParamCoercer(BindingPolicy.DEFAULT | BindingPolicy.NULL_AS_ABSENT)
    assert coercer.coerce({"sort": None}, spec) == "date"


def test_empty_policy():
    spec = ParameterSpec(name="sort", default="date", required=False)
    assert ParamCoercer().coerce({"sort": ""}, spec) == ""

    coercer = ParamCoercer(BindingPolicy.DEFAULT | BindingPolicy.EMPTY_AS_ABSENT)
    assert coercer.coerce({"sort": ""}, spec) == "date"

    with pytest.raises(MissingParameterError):
        coercer.coerce({"ID": ""}, ParameterSpec(name="ID"))


def test_strict_numeric_policy_off():
    spec = ParameterSpec(name="n", kind="int", default=7, required=False)
    assert ParamCoercer().coerce({"n": "42abc"}, spec) == 7
    assert ParamCoercer(BindingPolicy.FILE_UPLOADS).coerce({"n": "42abc"}, spec) == 42


def test_bind_keeps_declaration_order():
    coercer = ParamCoercer()
    specs = [
        ParameterSpec(name="b", kind="int"),
        ParameterSpec(name="a", kind="bool", default=True, required=False),
    ]
    assert coercer.bind({"a": "0", "b": "3"}, specs) == [3, False]


class Unprintable:
    def __str__(self) -> str:
        raise RuntimeError("no text")


def test_bind_wraps_cast_failures():
    specs = [ParameterSpec(name="x", kind="string")]
    with pytest.raises(InvalidParameterError) as exc_info:
        ParamCoercer().bind({"x": Unprintable()}, specs)
    assert str(exc_info.value) == 'Invalid value for parameter "x": no text'
    assert isinstance(exc_info.value.__cause__, RuntimeError)

    with pytest.raises(MissingParameterError):
        ParamCoercer().bind({}, specs)


def test_upload_messages():
    assert upload_message(UploadStatus.NO_FILE) == "No file was uploaded."
    assert upload_message(UploadStatus.EXTENSION) == UPLOAD_MESSAGES[8]
    assert UPLOAD_MESSAGES[8] == "A server extension stopped the file upload."
    assert upload_message(5) == "error 5"


def test_upload_binding():
    coercer = ParamCoercer()
    spec = ParameterSpec(name="doc", kind="file")
    record = UploadedFile(filename="a.txt", file=io.BytesIO(b"abc"), size=3, genuine=True)
    assert coercer.coerce({}, spec, {"doc": record}) is record

    optional = ParameterSpec(name="doc", kind="file", required=False)
    assert coercer.coerce({}, optional, {}) is None

    with pytest.raises(MissingParameterError) as exc_info:
        coercer.coerce({"doc": "a.txt"}, spec, {})
    assert str(exc_info.value) == 'File "doc" not found!'


def test_upload_errors():
    coercer = ParamCoercer()
    spec = ParameterSpec(name="doc", kind="file")

    too_big = UploadedFile(filename="a.txt", file=io.BytesIO(), status=UploadStatus.INI_SIZE, genuine=True)
    with pytest.raises(UploadError) as exc_info:
        coercer.coerce({}, spec, {"doc": too_big})
    assert str(exc_info.value) == (
        'Bad data encountered in upload "doc" '
        "[The uploaded file exceeds the configured maximum allowed file size.]. Please try again."
    )

    unknown = UploadedFile(filename="a.txt", file=io.BytesIO(), status=5, genuine=True)
    with pytest.raises(UploadError, match=r"\[error 5\]"):
        coercer.coerce({}, spec, {"doc": unknown})

    closed = io.BytesIO()
    closed.close()
    for record in (
        UploadedFile(filename="a.txt", file=closed, genuine=True),
        UploadedFile(filename="a.txt", file=None, genuine=True),
        UploadedFile(filename="a.txt", file=io.BytesIO()),
    ):
        with pytest.raises(UploadError) as exc_info:
            coercer.coerce({}, spec, {"doc": record})
        assert str(exc_info.value) == 'Error reading uploaded file "doc"!'


def test_file_kind_without_upload_policy():
    coercer = ParamCoercer(BindingPolicy.STRICT_NUMERIC)
    spec = ParameterSpec(name="doc", kind="file")
    assert coercer.coerce({"doc": "inline"}, spec) == "inline"
