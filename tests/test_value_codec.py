from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional
import math
import pytest
import numpy as np
from numpy.typing import NDArray

from kube_metaser.containers.option.option import Option
from kube_metaser.conversion.capabilities import implements_metadata, implements_text
from kube_metaser.conversion.value_codec import (
    BoolCodec,
    DictCodec,
    FixedTupleCodec,
    FloatCodec,
    IntCodec,
    JsonCodec,
    MetadataCodec,
    NdArrayCodec,
    OptionCodec,
    OptionalCodec,
    SequenceCodec,
    TextCodec,
    UnsupportedCodec,
    compile_codec,
    is_zero,
    values_equal,
)
from kube_metaser.errors.metaser_errors import ArityError, ConversionError, MetadataTypeError
from kube_metaser.metadata.object_meta import ObjectMeta


class Color(Enum):
    RED = "red"
    BLUE = "blue"


class Level(IntEnum):
    LOW = 1
    HIGH = 2


class Counter:
    def __init__(self) -> None:
        self.length = 0

    def marshal_text(self) -> bytes:
        return f"len={self.length}".encode()

    def unmarshal_text(self, text: bytes) -> None:
        self.length = len(text)


class BadMarshaler:
    def marshal_text(self) -> Any:
        return "not bytes"


class FailingUnmarshaler:
    def unmarshal_text(self, text: bytes) -> None:
        raise RuntimeError("Test")


class UpperOnly(str):
    def marshal_text(self) -> bytes:
        return self.upper().encode()


class Remembering(str):
    seen: bytes = b""

    def unmarshal_text(self, text: bytes) -> None:
        self.seen = text


class SumOfPrefixed:
    def __init__(self) -> None:
        self.total = 0

    def unmarshal_from_metadata(self, meta: ObjectMeta) -> None:
        self.total = 0
        for key, value in (meta.annotations or {}).items():
            if key.startswith("a-"):
                self.total += int(value)


@dataclass
class Payload:
    a: list[int] = field(default_factory=list)
    note: Optional[str] = None


@pytest.mark.parametrize("tp, expected", [
    (bool, BoolCodec),
    (np.bool_, BoolCodec),
    (int, IntCodec),
    (np.uint16, IntCodec),
    (float, FloatCodec),
    (np.float32, FloatCodec),
    (Optional[int], OptionalCodec),
    (int | None, OptionalCodec),
    (Option[int], OptionCodec),
    (tuple[int, int], FixedTupleCodec),
    (tuple[int, ...], SequenceCodec),
    (list[str], SequenceCodec),
    (NDArray[np.int32], NdArrayCodec),
    (dict[str, int], DictCodec),
    (Counter, TextCodec),
    (int | str, UnsupportedCodec),
    (set[int], UnsupportedCodec),
    (Payload, UnsupportedCodec),
])
def test_compile_codec_classification(tp: Any, expected: type):
    assert isinstance(compile_codec(tp), expected)


def test_unsupported_codec_fails_on_use():
    codec = compile_codec(set[int])
    with pytest.raises(ConversionError, match="unsupported type"):
        codec.encode({1})
    with pytest.raises(ConversionError, match="unsupported type"):
        codec.decode("1")


@pytest.mark.parametrize("text", ["true", "TRUE", "t", "T", "1", "True"])
def test_bool_decode_true(text: str):
    assert compile_codec(bool).decode(text) is True


@pytest.mark.parametrize("text", ["false", "FALSE", "f", "0", "False"])
def test_bool_decode_false(text: str):
    assert compile_codec(bool).decode(text) is False


@pytest.mark.parametrize("text", ["", "yes", "6", "on"])
def test_bool_decode_invalid(text: str):
    with pytest.raises(ConversionError, match="invalid syntax"):
        compile_codec(bool).decode(text)


def test_bool_encode():
    codec = compile_codec(bool)
    assert codec.encode(True) == "true"
    assert codec.encode(False) == "false"


@pytest.mark.parametrize("tp", [np.int8, np.int16, np.int32, np.int64, int])
def test_int_minus_one_every_width(tp: Any):
    codec = compile_codec(tp)
    assert codec.encode(tp(-1)) == "-1"
    decoded = codec.decode("-1")
    assert type(decoded) is tp
    assert decoded == -1


@pytest.mark.parametrize("tp, text", [
    (np.int8, "128"),
    (np.int8, "-129"),
    (np.uint8, "256"),
    (np.uint8, "-1"),
    (np.int32, "2147483648"),
    (np.uint64, "18446744073709551616"),
])
def test_int_decode_out_of_range(tp: Any, text: str):
    with pytest.raises(ConversionError, match="out of range"):
        compile_codec(tp).decode(text)


def test_int_decode_bounds_inclusive():
    assert compile_codec(np.int8).decode("127") == 127
    assert compile_codec(np.int8).decode("-128") == -128
    assert compile_codec(np.uint64).decode("18446744073709551615") == np.iinfo(np.uint64).max


def test_plain_int_is_unbounded():
    codec = compile_codec(int)
    assert codec.decode(str(2 ** 80)) == 2 ** 80
    assert codec.encode(2 ** 80) == str(2 ** 80)


@pytest.mark.parametrize("text", ["abc", "", "1.5", "0x10", "1_000", " 1"])
def test_int_decode_invalid(text: str):
    with pytest.raises(ConversionError, match="invalid syntax"):
        compile_codec(int).decode(text)


@pytest.mark.parametrize("tp, value, expected", [
    (float, 2.0, "2"),
    (float, 0.1, "0.1"),
    (float, -1.5, "-1.5"),
    (np.float32, np.float32(0.1), "0.1"),
    (np.float32, np.float32(3.0), "3"),
    (np.float64, 1e20, "100000000000000000000"),
])
def test_float_encode_shortest(tp: Any, value: Any, expected: str):
    assert compile_codec(tp).encode(value) == expected


@pytest.mark.parametrize("tp", [float, np.float32, np.float64, np.float16])
def test_float_round_trip_exact(tp: Any):
    codec = compile_codec(tp)
    for value in (tp(1) / tp(3), tp(-2.5e-3), tp(12345.678)):
        decoded = codec.decode(codec.encode(value))
        assert type(decoded) is tp
        assert decoded == value


def test_float_decode_forms():
    codec = compile_codec(float)
    assert codec.decode("2.0") == 2.0
    assert codec.decode("1e3") == 1000.0
    assert codec.decode(".5") == 0.5
    assert math.isinf(codec.decode("-Inf"))
    assert math.isnan(codec.decode("NaN"))


@pytest.mark.parametrize("text", ["none", "", "1.2.3", "1e", "abc"])
def test_float_decode_invalid(text: str):
    with pytest.raises(ConversionError, match="invalid syntax"):
        compile_codec(float).decode(text)


def test_float_decode_overflow():
    with pytest.raises(ConversionError, match="out of range"):
        compile_codec(np.float32).decode("1e39")
    with pytest.raises(ConversionError, match="out of range"):
        compile_codec(float).decode("1e400")


def test_str_codec():
    codec = compile_codec(str)
    assert codec.encode("a b") == "a b"
    assert codec.decode("") == ""


def test_enum_codec():
    color = compile_codec(Color)
    assert color.encode(Color.BLUE) == "blue"
    assert color.decode("red") is Color.RED

    level = compile_codec(Level)
    assert level.encode(Level.HIGH) == "2"
    assert level.decode("1") is Level.LOW

    with pytest.raises(ConversionError, match="not a valid Color"):
        color.decode("green")


def test_fixed_tuple_codec():
    codec = compile_codec(tuple[int, int, int])
    assert codec.decode("12,1,9") == (12, 1, 9)
    assert codec.encode((12, 1, 9)) == "12,1,9"

    with pytest.raises(ArityError, match="expected 3, got 2"):
        codec.decode("1,2")

    with pytest.raises(ArityError):
        codec.encode((1, 2))


def test_fixed_tuple_mixed_items():
    codec = compile_codec(tuple[str, bool, float])
    assert codec.decode("x,true,1.5") == ("x", True, 1.5)


def test_sequence_codec():
    codec = compile_codec(list[int])
    assert codec.encode([1, 3, 6]) == "1,3,6"
    assert codec.decode("1,3,6") == [1, 3, 6]
    assert codec.encode([]) == ""

    assert compile_codec(tuple[str, ...]).decode("a,b") == ("a", "b")
    assert compile_codec(list[str]).decode("") == []
    assert compile_codec(tuple[int, ...]).decode("") == ()

    with pytest.raises(ConversionError, match="unable to decode index 1"):
        codec.decode("1,x")


def test_ndarray_codec():
    codec = compile_codec(NDArray[np.int16])
    decoded = codec.decode("1,-2,3")
    assert decoded.dtype == np.int16
    assert np.array_equal(decoded, np.array([1, -2, 3], dtype=np.int16))
    assert codec.encode(decoded) == "1,-2,3"

    with pytest.raises(ConversionError, match="out of range"):
        codec.decode("1,40000")

    empty = codec.decode("")
    assert empty.dtype == np.int16
    assert empty.size == 0
    assert codec.encode(empty) == ""


def test_dict_codec():
    codec = compile_codec(dict[str, int])
    assert codec.encode({"A": 1, "B": 2}) == "A:1,B:2"
    assert codec.decode("B:2,A:1") == {"A": 1, "B": 2}

    with pytest.raises(ConversionError, match="expected <key>:<value>, got: A"):
        codec.decode("A")

    with pytest.raises(ConversionError, match="unable to decode map item"):
        codec.decode("A:x")

    assert codec.decode("") == {}
    assert codec.encode({}) == ""


def test_optional_codec():
    codec = compile_codec(Optional[int])
    assert codec.encode(None) == ""
    assert codec.encode(4) == "4"
    assert codec.decode("4") == 4

    assert codec.decode("") is None

    with pytest.raises(ConversionError, match="cannot assign optional value"):
        codec.decode("x")


def test_option_codec():
    codec = compile_codec(Option[bool])
    assert codec.encode(Option.some(True)) == "true"
    assert codec.encode(Option.some(False)) == "false"
    assert codec.encode(Option.none()) == ""
    assert codec.decode("false") == Option.some(False)

    with pytest.raises(ConversionError):
        codec.decode("maybe")


def test_text_codec():
    codec = compile_codec(Counter)

    counter = Counter()
    counter.length = 3
    assert codec.encode(counter) == "len=3"

    fresh = codec.decode("abcd")
    assert isinstance(fresh, Counter)
    assert fresh.length == 4

    current = Counter()
    assert codec.decode("ab", current) is current
    assert current.length == 2


def test_text_codec_errors():
    with pytest.raises(ConversionError, match="expected bytes"):
        TextCodec(BadMarshaler).encode(BadMarshaler())

    with pytest.raises(ConversionError, match="unsupported type"):
        TextCodec(BadMarshaler).decode("x")

    with pytest.raises(ConversionError, match=r"\[Test\]"):
        TextCodec(FailingUnmarshaler).decode("x")

    with pytest.raises(ConversionError, match="unsupported type"):
        TextCodec(FailingUnmarshaler).encode(FailingUnmarshaler())


def test_text_codec_checks_each_direction():
    upper = compile_codec(UpperOnly)
    assert isinstance(upper, TextCodec)
    assert upper.encode(UpperOnly("abc")) == "ABC"
    decoded = upper.decode("abc")
    assert type(decoded) is UpperOnly
    assert decoded == "abc"

    lowered = compile_codec(Remembering)
    assert lowered.encode(Remembering("abc")) == "abc"
    remembered = lowered.decode("xyz")
    assert type(remembered) is Remembering
    assert remembered.seen == b"xyz"


def test_capabilities():
    assert implements_text(Counter)
    assert implements_text(FailingUnmarshaler)
    assert not implements_text(int)
    assert not implements_text(list[int])
    assert implements_metadata(SumOfPrefixed)
    assert not implements_metadata(Counter)


def test_json_codec():
    codec = JsonCodec(Payload)
    assert codec.encode(Payload(a=[1, 3, 6])) == '{"a":[1,3,6],"note":null}'
    assert codec.decode('{"a": [2], "note": "x"}') == Payload(a=[2], note="x")

    with pytest.raises(ConversionError, match="cannot unmarshal value"):
        codec.decode("{not json")

    maps = JsonCodec(dict[str, list[str]])
    assert maps.decode('{ "A": ["12", "13"], "B": ["14", "15"] }') == {"A": ["12", "13"], "B": ["14", "15"]}


def test_json_codec_rejects_unsupported_type():
    with pytest.raises(MetadataTypeError, match="json encoding"):
        JsonCodec(Counter)


def test_metadata_codec():
    codec = MetadataCodec(SumOfPrefixed)
    meta = ObjectMeta(annotations={"a-one": "1", "a-two": "3", "a-three": "6", "b": "100"})

    decoded = codec.decode_from(meta)
    assert isinstance(decoded, SumOfPrefixed)
    assert decoded.total == 10

    # None writes nothing
    codec.encode_to(None, meta)

    with pytest.raises(ConversionError, match="MetadataMarshaler"):
        codec.encode_to(decoded, meta)

    with pytest.raises(ConversionError, match="failed to deserialize"):
        codec.decode_from(ObjectMeta(annotations={"a-x": "nope"}))


@pytest.mark.parametrize("value", [
    None, False, 0, 0.0, np.int8(0), "", [], (), {}, np.array([]),
    Option.none(), Payload(),
])
def test_is_zero(value: Any):
    assert is_zero(value)


@pytest.mark.parametrize("value", [
    True, 1, -0.5, np.uint8(3), "x", [0], (0,), {"a": ""}, np.array([0]),
    Option.some(0), Payload(a=[1]), Counter(),
])
def test_is_not_zero(value: Any):
    assert not is_zero(value)


def test_values_equal():
    assert values_equal(np.array([1, 2]), np.array([1, 2]))
    assert not values_equal(np.array([1, 2]), [1, 2])
    assert values_equal({"a": [1, 2]}, {"a": [1, 2]})
    assert not values_equal([1, 2], (1, 2))
    assert values_equal(Option.some(np.array([1])), Option.some(np.array([1])))
    assert not values_equal(Option.some(1), Option.none())
    assert values_equal(Payload(a=[1]), Payload(a=[1]))
    assert not values_equal(Payload(a=[1]), Payload(a=[2]))
    assert values_equal(np.float32(2.0), np.float32(2.0))
    assert not values_equal(np.float32(3.0), np.float32(2.0))
