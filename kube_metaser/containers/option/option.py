from __future__ import annotations
from typing import Any, Generic, TypeVar, cast

from kube_metaser.errors.metaser_errors import OptionNotSetError

T = TypeVar("T")

_UNSET: Any = object()


class Option(Generic[T]):
    """
    A value that may or may not be present.

    Unlike `T | None`, an `Option` distinguishes "never set" from "set to the
    zero value" (including `None`). When used as a field type, only the
    contained value is written to metadata; the presence flag itself is never
    serialized. A decoded `Option` is present exactly when its key was found
    and its value converted successfully.

    Attributes:
        _value (T):
            The contained value. Meaningless while the option is empty.

        _is_set (bool):
            Whether a value was supplied.
    """

    __slots__ = ("_value", "_is_set")

    _value: T
    _is_set: bool

    def __init__(self, value: T = _UNSET):
        self._is_set = value is not _UNSET
        self._value = cast(T, None) if value is _UNSET else value

    @classmethod
    def some(cls, value: T) -> Option[T]:
        """
        Construct a present option holding `value`.
        """
        return cls(value)

    @classmethod
    def none(cls) -> Option[T]:
        """
        Construct an empty option.
        """
        return cls()

    def is_set(self) -> bool:
        return self._is_set

    def get(self) -> T:
        """
        Return the contained value.

        Returns:
            T:
                The value supplied at construction or decoded from metadata.

        Raises:
            OptionNotSetError:
                If the option is empty.
        """
        if not self._is_set:
            raise OptionNotSetError("Option value is not set.")
        return self._value

    def get_or_default(self, default: T) -> T:
        """
        Return the contained value, or `default` when the option is empty.
        """
        return self._value if self._is_set else default

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Option):
            return NotImplemented
        other_opt = cast(Option[Any], other)
        if self._is_set != other_opt._is_set:
            return False
        return not self._is_set or bool(self._value == other_opt._value)

    def __hash__(self) -> int:
        return hash((self._is_set, self._value if self._is_set else None))

    def __repr__(self) -> str:
        if self._is_set:
            return f"Option.some({self._value!r})"
        return "Option.none()"
