from __future__ import annotations
from abc import ABC
import abc
from dataclasses import fields, is_dataclass
from enum import Enum
import math
import re
from types import UnionType
from typing import Any, Union, cast, get_args, get_origin

import numpy as np
from pydantic import TypeAdapter
from pydantic.errors import PydanticSchemaGenerationError, PydanticUserError
from pydantic_core import PydanticSerializationError, ValidationError

from kube_metaser.containers.option.option import Option
from kube_metaser.conversion.capabilities import (
    MetadataMarshaler,
    MetadataUnmarshaler,
    TextMarshaler,
    TextUnmarshaler,
    implements,
    implements_text,
)
from kube_metaser.errors.metaser_errors import ArityError, ConversionError, MetadataTypeError
from kube_metaser.metadata.object_meta import SupportsObjectMeta

ITEM_SEPARATOR = ","
KEY_VALUE_SEPARATOR = ":"

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_FLOAT_PATTERN = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf|infinity|nan)",
    re.IGNORECASE,
)
_TRUE_LITERALS = frozenset({"1", "t", "true"})
_FALSE_LITERALS = frozenset({"0", "f", "false"})


def type_name(tp: Any) -> str:
    """
    Helper to format type names nicely for error messages.
    """
    return getattr(tp, "__name__", None) or repr(tp)


def compile_codec(tp: Any) -> ValueCodec:
    """
    Classify a field type once and return the codec that converts its values
    to and from metadata strings.

    Classification order:

      - Types providing `marshal_text` or `unmarshal_text`: `TextCodec`, which
        uses the type driven codec below for a direction the type lacks.
      - `Option[T]`: `OptionCodec` around the codec of `T`.
      - `T | None` / `Optional[T]`: `OptionalCodec` around the codec of `T`.
      - `bool`, `numpy.bool_`: `BoolCodec`.
      - `enum.Enum` subclasses: `EnumCodec`, encoded through member values.
      - `int` (unbounded) and numpy integer types (exact width): `IntCodec`.
      - `float` and numpy floating types: `FloatCodec`.
      - `str`: `StrCodec`.
      - `tuple[A, B, C]`: `FixedTupleCodec` requiring exactly that many items.
      - `list[T]`, `tuple[T, ...]`: `SequenceCodec`.
      - `numpy.typing.NDArray[dtype]`: `NdArrayCodec`.
      - `dict[K, V]`: `DictCodec`.

    Any other type yields an `UnsupportedCodec`, which only fails when a value
    is actually converted, so the failure is reported for that field alone.

    Args:
        tp (Any):
            The resolved type hint of the field or of a container element.

    Returns:
        ValueCodec:
            A codec instance bound to `tp`.
    """
    origin = get_origin(tp)
    base = origin if origin is not None else tp
    if implements_text(base):
        return TextCodec(base, _compile_shape(tp))
    return _compile_shape(tp)


def _compile_shape(tp: Any) -> ValueCodec:
    """
    Type driven part of `compile_codec`, ignoring text capabilities of `tp`
    itself.
    """
    origin = get_origin(tp)
    base = origin if origin is not None else tp
    args = get_args(tp)

    if base is Option:
        if len(args) != 1:
            return UnsupportedCodec(tp)
        return OptionCodec(compile_codec(args[0]))

    if origin in (Union, UnionType):
        non_none = [a for a in args if a is not type(None)]
        if len(non_none) == 1 and len(args) == 2:
            return OptionalCodec(compile_codec(non_none[0]))
        return UnsupportedCodec(tp)

    if not isinstance(base, type):
        return UnsupportedCodec(tp)

    if issubclass(base, (bool, np.bool_)):
        return BoolCodec(base)

    if issubclass(base, Enum):
        members = list(cast(type[Enum], base))
        if not members:
            return UnsupportedCodec(tp)
        return EnumCodec(base, compile_codec(type(members[0].value)))

    if issubclass(base, (int, np.integer)):
        return IntCodec(base)

    if issubclass(base, (float, np.floating)):
        return FloatCodec(base)

    if issubclass(base, str):
        return StrCodec(base)

    if base is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return SequenceCodec(compile_codec(args[0]), tuple)
        if not args:
            return SequenceCodec(StrCodec(str), tuple)
        return FixedTupleCodec([compile_codec(a) for a in args])

    if base is list:
        return SequenceCodec(compile_codec(args[0]) if args else StrCodec(str), list)

    if base is np.ndarray:
        dtype = _ndarray_dtype(args)
        if dtype is None:
            return UnsupportedCodec(tp)
        return NdArrayCodec(dtype)

    if base is dict:
        if len(args) == 2:
            return DictCodec(compile_codec(args[0]), compile_codec(args[1]))
        return DictCodec(StrCodec(str), StrCodec(str))

    return UnsupportedCodec(tp)


def _ndarray_dtype(args: tuple[Any, ...]) -> np.dtype[Any] | None:
    """
    Extract the scalar dtype from the arguments of `NDArray[...]`.
    """
    if len(args) != 2:
        return None
    scalar_args = get_args(args[1])
    if len(scalar_args) != 1:
        return None
    scalar = scalar_args[0]
    if not (isinstance(scalar, type) and issubclass(scalar, (np.bool_, np.integer, np.floating))):
        return None
    return np.dtype(scalar)


class ValueCodec(ABC):
    """
    Abstract base class of a compiled conversion strategy between a field
    value and its string form in metadata.

    Codecs are built once per field type by `compile_codec` and are
    read-only afterwards, so a single instance may be shared by concurrent
    encode and decode calls.

    Attributes:
        ptype (Any):
            The Python type this codec converts.
    """

    ptype: Any

    def __init__(self, ptype: Any):
        """
        Initialize the codec.

        Args:
            ptype (Any):
                The Python type this codec converts.
        """
        self.ptype = ptype

    @abc.abstractmethod
    def encode(self, value: Any) -> str:
        """
        Convert `value` to its metadata string.

        Args:
            value (Any):
                The field value.

        Returns:
            str:
                The canonical string form.

        Raises:
            ConversionError:
                If the value cannot be represented.
        """

    @abc.abstractmethod
    def decode(self, text: str, current: Any = None) -> Any:
        """
        Convert a metadata string back to a value.

        Args:
            text (str):
                The string read from metadata.

            current (Any):
                The value currently held by the field. Codecs for mutable
                objects decode into it in place; None means a fresh value has
                to be created.

        Returns:
            Any:
                The decoded value to store in the field.

        Raises:
            ConversionError:
                If `text` cannot be converted.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({type_name(self.ptype)})"


class UnsupportedCodec(ValueCodec):
    """
    Placeholder for types no conversion is known for.
    """

    def encode(self, value: Any) -> str:
        raise ConversionError(f"unsupported type '{type_name(self.ptype)}'")

    def decode(self, text: str, current: Any = None) -> Any:
        raise ConversionError(f"unsupported type '{type_name(self.ptype)}'")


class TextCodec(ValueCodec):
    """
    Delegates conversion to the value's own `marshal_text` / `unmarshal_text`
    methods.

    Each direction is checked on its own: a type providing only one of the
    two methods is converted by `fallback` in the other direction. Decoding
    calls `unmarshal_text` on the current value, or on a new instance built
    with `ptype()` when the field holds None.

    Attributes:
        fallback (ValueCodec):
            Type driven codec for the direction the type does not provide.
    """

    fallback: ValueCodec

    def __init__(self, ptype: Any, fallback: ValueCodec | None = None):
        super().__init__(ptype)
        self.fallback = fallback if fallback is not None else UnsupportedCodec(ptype)
        self._marshals = implements(ptype, TextMarshaler)
        self._unmarshals = implements(ptype, TextUnmarshaler)

    def encode(self, value: Any) -> str:
        if not self._marshals:
            return self.fallback.encode(value)
        try:
            raw = value.marshal_text()
        except Exception as exc:
            raise ConversionError(
                f"failed to serialize with TextMarshaler protocol: [{exc}]"
            ) from exc
        if not isinstance(raw, (bytes, bytearray)):
            raise ConversionError(
                "failed to serialize with TextMarshaler protocol: "
                f"expected bytes, got {type(raw).__name__}"
            )
        return bytes(raw).decode("utf-8")

    def decode(self, text: str, current: Any = None) -> Any:
        if not self._unmarshals:
            return self.fallback.decode(text, current)
        target = current if current is not None else _allocate(self.ptype)
        try:
            target.unmarshal_text(text.encode("utf-8"))
        except Exception as exc:
            raise ConversionError(
                f"failed to deserialize with TextUnmarshaler protocol: [{exc}]"
            ) from exc
        return target


class OptionCodec(ValueCodec):
    """
    Converts `Option[T]` through the codec of `T`.

    An empty option encodes to the empty string, and the encoder writes no key
    for it. Decoding produces a present option only when the inner conversion
    succeeds.

    Attributes:
        inner (ValueCodec):
            Codec of the contained type.
    """

    inner: ValueCodec

    def __init__(self, inner: ValueCodec):
        super().__init__(Option)
        self.inner = inner

    def encode(self, value: Any) -> str:
        if not isinstance(value, Option) or not value.is_set():
            return ""
        return self.inner.encode(cast(Option[Any], value).get())

    def decode(self, text: str, current: Any = None) -> Any:
        inner_current = None
        if isinstance(current, Option):
            inner_current = cast(Option[Any], current).get_or_default(None)
        return Option.some(self.inner.decode(text, inner_current))

    def __repr__(self) -> str:
        return f"OptionCodec({self.inner!r})"


class OptionalCodec(ValueCodec):
    """
    Converts `T | None`. None encodes to the empty string and the empty string
    decodes back to None, so an optional `str` cannot hold `""`.
    """

    inner: ValueCodec

    def __init__(self, inner: ValueCodec):
        super().__init__(inner.ptype)
        self.inner = inner

    def encode(self, value: Any) -> str:
        if value is None:
            return ""
        try:
            return self.inner.encode(value)
        except ConversionError as exc:
            raise ConversionError(f"cannot encode optional value: [{exc}]") from exc

    def decode(self, text: str, current: Any = None) -> Any:
        if not text:
            return None
        try:
            return self.inner.decode(text, current)
        except ConversionError as exc:
            raise ConversionError(f"cannot assign optional value: [{exc}]") from exc

    def __repr__(self) -> str:
        return f"OptionalCodec({self.inner!r})"


class BoolCodec(ValueCodec):
    """
    Encodes `true` / `false`.

    Decoding is case-insensitive and accepts `true`, `t`, `1` and `false`,
    `f`, `0`.
    """

    def encode(self, value: Any) -> str:
        return "true" if value else "false"

    def decode(self, text: str, current: Any = None) -> Any:
        lowered = text.lower()
        if lowered in _TRUE_LITERALS:
            return self.ptype(True)
        if lowered in _FALSE_LITERALS:
            return self.ptype(False)
        raise ConversionError(f"parsing '{text}': invalid syntax for bool")


class IntCodec(ValueCodec):
    """
    Base-10 integers.

    numpy integer types keep their exact width: decoding text outside the
    range of the type fails instead of wrapping. Plain `int` is unbounded.

    Attributes:
        bounds (tuple[int, int] | None):
            Inclusive range of the type, None for plain `int`.
    """

    bounds: tuple[int, int] | None

    def __init__(self, ptype: Any):
        super().__init__(ptype)
        if issubclass(ptype, np.integer):
            info = np.iinfo(ptype)
            self.bounds = (int(info.min), int(info.max))
        else:
            self.bounds = None

    def encode(self, value: Any) -> str:
        return str(int(value))

    def decode(self, text: str, current: Any = None) -> Any:
        if not _INT_PATTERN.fullmatch(text):
            raise ConversionError(f"parsing '{text}': invalid syntax for {type_name(self.ptype)}")
        value = int(text)
        if self.bounds is not None and not self.bounds[0] <= value <= self.bounds[1]:
            raise ConversionError(f"parsing '{text}': value out of range for {type_name(self.ptype)}")
        return self.ptype(value)


class FloatCodec(ValueCodec):
    """
    Floating point numbers.

    Encoding produces the shortest positional text that reads back to the
    same value at the width of the field type (`float` is 64-bit), without
    exponent or trailing zeros. Decoding accepts decimal and exponent forms
    plus `inf` and `nan`; finite text overflowing the width is an error.

    Attributes:
        _np_type (type[np.floating[Any]]):
            numpy scalar type carrying the width.
    """

    _np_type: type[np.floating[Any]]

    def __init__(self, ptype: Any):
        super().__init__(ptype)
        self._np_type = ptype if issubclass(ptype, np.floating) else np.float64

    def encode(self, value: Any) -> str:
        return np.format_float_positional(self._np_type(value), unique=True, trim="-")

    def decode(self, text: str, current: Any = None) -> Any:
        if not _FLOAT_PATTERN.fullmatch(text):
            raise ConversionError(f"parsing '{text}': invalid syntax for {type_name(self.ptype)}")
        parsed = float(text)
        with np.errstate(over="ignore"):
            value = self._np_type(parsed)
        if math.isinf(value) and not math.isinf(parsed):
            raise ConversionError(f"parsing '{text}': value out of range for {type_name(self.ptype)}")
        if math.isinf(parsed) and "inf" not in text.lower():
            raise ConversionError(f"parsing '{text}': value out of range for {type_name(self.ptype)}")
        return self.ptype(value)


class StrCodec(ValueCodec):
    def encode(self, value: Any) -> str:
        return str(value)

    def decode(self, text: str, current: Any = None) -> Any:
        return text if self.ptype is str else self.ptype(text)


class EnumCodec(ValueCodec):
    """
    Enum members are represented by their value, converted with the codec of
    the value type.

    Attributes:
        value_codec (ValueCodec):
            Codec for the type of the member values.
    """

    value_codec: ValueCodec

    def __init__(self, ptype: Any, value_codec: ValueCodec):
        super().__init__(ptype)
        self.value_codec = value_codec

    def encode(self, value: Any) -> str:
        if isinstance(value, Enum):
            value = value.value
        return self.value_codec.encode(value)

    def decode(self, text: str, current: Any = None) -> Any:
        raw = self.value_codec.decode(text)
        try:
            return self.ptype(raw)
        except ValueError as exc:
            raise ConversionError(f"'{text}' is not a valid {type_name(self.ptype)}") from exc


class _ItemsCodecBase(ValueCodec):
    """
    Shared splitting and joining of comma separated items.

    Items must not contain the separator themselves; this is not checked.
    """

    def _encode_items(self, codecs: list[ValueCodec], values: list[Any]) -> str:
        encoded: list[str] = []
        for i, (codec, item) in enumerate(zip(codecs, values)):
            try:
                encoded.append(codec.encode(item))
            except ConversionError as exc:
                raise ConversionError(f"cannot encode element at index {i}: [{exc}]") from exc
        return ITEM_SEPARATOR.join(encoded)

    def _decode_items(self, codecs: list[ValueCodec], items: list[str]) -> list[Any]:
        decoded: list[Any] = []
        for i, (codec, item) in enumerate(zip(codecs, items)):
            try:
                decoded.append(codec.decode(item))
            except ConversionError as exc:
                raise ConversionError(
                    f"unable to decode index {i}, value: '{item}': [{exc}]"
                ) from exc
        return decoded


class FixedTupleCodec(_ItemsCodecBase):
    """
    Fixed-size tuples such as `tuple[int, int, int]`.

    Decoding requires exactly as many items as the tuple declares.

    Attributes:
        item_codecs (list[ValueCodec]):
            One codec per tuple position.
    """

    item_codecs: list[ValueCodec]

    def __init__(self, item_codecs: list[ValueCodec]):
        super().__init__(tuple)
        self.item_codecs = item_codecs

    def encode(self, value: Any) -> str:
        values = list(value)
        if len(values) != len(self.item_codecs):
            raise ArityError(
                f"array elements number do not match: expected {len(self.item_codecs)}, "
                f"got {len(values)}"
            )
        return self._encode_items(self.item_codecs, values)

    def decode(self, text: str, current: Any = None) -> Any:
        items = text.split(ITEM_SEPARATOR)
        if len(items) != len(self.item_codecs):
            raise ArityError(
                f"array elements number do not match: expected {len(self.item_codecs)}, "
                f"got {len(items)}"
            )
        return tuple(self._decode_items(self.item_codecs, items))


class SequenceCodec(_ItemsCodecBase):
    """
    Variable length sequences (`list[T]`, `tuple[T, ...]`).

    The empty string decodes to an empty sequence, matching the encoding of
    one. A sequence holding a single empty string therefore does not survive
    a round trip.

    Attributes:
        item_codec (ValueCodec):
            Codec of every element.
    """

    item_codec: ValueCodec

    def __init__(self, item_codec: ValueCodec, ptype: type):
        super().__init__(ptype)
        self.item_codec = item_codec

    def encode(self, value: Any) -> str:
        values = list(value)
        return self._encode_items([self.item_codec] * len(values), values)

    def decode(self, text: str, current: Any = None) -> Any:
        if not text:
            return self.ptype()
        items = text.split(ITEM_SEPARATOR)
        return self.ptype(self._decode_items([self.item_codec] * len(items), items))


class NdArrayCodec(_ItemsCodecBase):
    """
    numpy arrays of a fixed scalar dtype, written as a flat comma separated
    list. Decoding always yields a one dimensional array, empty for the
    empty string.

    Attributes:
        dtype (np.dtype[Any]):
            Element dtype of the array.

        item_codec (ValueCodec):
            Codec of the dtype's scalar type.
    """

    dtype: np.dtype[Any]
    item_codec: ValueCodec

    def __init__(self, dtype: np.dtype[Any]):
        super().__init__(np.ndarray)
        self.dtype = dtype
        self.item_codec = compile_codec(dtype.type)

    def encode(self, value: Any) -> str:
        values = list(np.asarray(value, dtype=self.dtype).ravel())
        return self._encode_items([self.item_codec] * len(values), values)

    def decode(self, text: str, current: Any = None) -> Any:
        if not text:
            return np.array([], dtype=self.dtype)
        items = text.split(ITEM_SEPARATOR)
        return np.array(self._decode_items([self.item_codec] * len(items), items), dtype=self.dtype)

    def __repr__(self) -> str:
        return f"NdArrayCodec({self.dtype})"


class DictCodec(ValueCodec):
    """
    Mappings written as comma separated `key:value` pairs in iteration order.
    The empty string is the empty mapping.

    Keys and values must not contain `,` or `:`; this is not checked.

    Attributes:
        key_codec (ValueCodec):
            Codec of the keys.

        value_codec (ValueCodec):
            Codec of the values.
    """

    key_codec: ValueCodec
    value_codec: ValueCodec

    def __init__(self, key_codec: ValueCodec, value_codec: ValueCodec):
        super().__init__(dict)
        self.key_codec = key_codec
        self.value_codec = value_codec

    def encode(self, value: Any) -> str:
        pairs: list[str] = []
        for k, v in cast(dict[Any, Any], value).items():
            try:
                ek = self.key_codec.encode(k)
                ev = self.value_codec.encode(v)
            except ConversionError as exc:
                raise ConversionError(f"cannot encode map item with key '{k}': [{exc}]") from exc
            pairs.append(KEY_VALUE_SEPARATOR.join((ek, ev)))
        return ITEM_SEPARATOR.join(pairs)

    def decode(self, text: str, current: Any = None) -> Any:
        result: dict[Any, Any] = {}
        if not text:
            return result
        for item in text.split(ITEM_SEPARATOR):
            elem = item.split(KEY_VALUE_SEPARATOR)
            if len(elem) != 2:
                raise ConversionError(
                    f"invalid map item syntax, expected <key>:<value>, got: {item}"
                )
            try:
                result[self.key_codec.decode(elem[0])] = self.value_codec.decode(elem[1])
            except ConversionError as exc:
                raise ConversionError(
                    f"unable to decode map item (key '{elem[0]}', value: '{elem[1]}'): [{exc}]"
                ) from exc
        return result


class JsonCodec(ValueCodec):
    """
    Serializes the whole field value as compact JSON, bypassing the type
    driven conversion. Decoding validates the JSON back into the declared
    type, so dataclasses, containers and optionals are rebuilt.

    Attributes:
        _adapter (TypeAdapter[Any]):
            pydantic adapter for the declared type.
    """

    _adapter: TypeAdapter[Any]

    def __init__(self, ptype: Any):
        super().__init__(ptype)
        try:
            self._adapter = TypeAdapter(ptype)
        except (PydanticSchemaGenerationError, PydanticUserError) as exc:
            raise MetadataTypeError(
                f"type '{type_name(ptype)}' cannot be used with json encoding: {exc}"
            ) from exc

    def encode(self, value: Any) -> str:
        try:
            return self._adapter.dump_json(value).decode("utf-8")
        except PydanticSerializationError as exc:
            raise ConversionError(f"cannot marshal value: [{exc}]") from exc

    def decode(self, text: str, current: Any = None) -> Any:
        try:
            return self._adapter.validate_json(text)
        except ValidationError as exc:
            raise ConversionError(f"cannot unmarshal value: [{exc}]") from exc


class MetadataCodec:
    """
    Hands the whole metadata container to the field value's
    `marshal_to_metadata` / `unmarshal_from_metadata` methods.

    Attributes:
        ptype (Any):
            The field type, instantiated with no arguments when the field
            holds None on decode.
    """

    ptype: Any

    def __init__(self, ptype: Any):
        self.ptype = ptype

    def encode_to(self, value: Any, meta: SupportsObjectMeta) -> None:
        """
        Let `value` write itself into `meta`. A None value writes nothing.

        Raises:
            ConversionError:
                If the type lacks `marshal_to_metadata` or the call fails.
        """
        if value is None:
            return
        if not implements(type(value), MetadataMarshaler):
            raise ConversionError(
                f"type '{type_name(type(value))}' doesn't implement the MetadataMarshaler protocol"
            )
        try:
            value.marshal_to_metadata(meta)
        except Exception as exc:
            raise ConversionError(
                f"failed to serialize with MetadataMarshaler protocol: [{exc}]"
            ) from exc

    def decode_from(self, meta: SupportsObjectMeta, current: Any = None) -> Any:
        """
        Populate `current`, or a new instance, from `meta`.

        Returns:
            Any:
                The populated object.

        Raises:
            ConversionError:
                If the type lacks `unmarshal_from_metadata` or the call fails.
        """
        target = current if current is not None else _allocate(self.ptype)
        if not implements(type(target), MetadataUnmarshaler):
            raise ConversionError(
                f"type '{type_name(type(target))}' doesn't implement the MetadataUnmarshaler protocol"
            )
        try:
            target.unmarshal_from_metadata(meta)
        except Exception as exc:
            raise ConversionError(
                f"failed to deserialize with MetadataUnmarshaler protocol: [{exc}]"
            ) from exc
        return target

    def __repr__(self) -> str:
        return f"MetadataCodec({type_name(self.ptype)})"


def _allocate(ptype: Any) -> Any:
    try:
        return ptype()
    except TypeError as exc:
        raise ConversionError(
            f"cannot allocate '{type_name(ptype)}' without arguments: [{exc}]"
        ) from exc


def is_zero(value: Any) -> bool:
    """
    Check whether `value` is the zero value of its type.

    None, False, numeric zero, empty strings and containers, empty arrays and
    empty `Option`s are zero. Enum members are zero when their value is, and
    dataclass instances when all of their fields are. Anything else is
    non-zero.

    Args:
        value (Any):
            The value to inspect.

    Returns:
        bool:
            True if `value` is zero.
    """
    if value is None:
        return True
    if isinstance(value, Option):
        return not value.is_set()
    if isinstance(value, np.ndarray):
        return value.size == 0
    if isinstance(value, Enum):
        return is_zero(value.value)
    if isinstance(value, (bool, np.bool_)):
        return not value
    if isinstance(value, (int, float, np.number)):
        return bool(value == 0)
    if isinstance(value, (str, bytes, bytearray, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    if is_dataclass(value) and not isinstance(value, type):
        return all(is_zero(getattr(value, f.name)) for f in fields(value))
    return False


def values_equal(a: Any, b: Any) -> bool:
    """
    Deep value equality that also compares numpy arrays element-wise.

    Args:
        a (Any):
            First value.

        b (Any):
            Second value.

    Returns:
        bool:
            True if both values are equal.
    """
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        return isinstance(a, np.ndarray) and isinstance(b, np.ndarray) and bool(np.array_equal(a, b))
    if isinstance(a, Option) and isinstance(b, Option):
        if a.is_set() != b.is_set():
            return False
        return not a.is_set() or values_equal(a.get(), b.get())
    if is_dataclass(a) and not isinstance(a, type):
        if type(a) is not type(b):
            return False
        return all(values_equal(getattr(a, f.name), getattr(b, f.name)) for f in fields(a))
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if type(a) is not type(b) or len(a) != len(b):
            return False
        return all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict) and isinstance(b, dict):
        a_map = cast(dict[Any, Any], a)
        b_map = cast(dict[Any, Any], b)
        if a_map.keys() != b_map.keys():
            return False
        return all(values_equal(v, b_map[k]) for k, v in a_map.items())
    return bool(a == b)
