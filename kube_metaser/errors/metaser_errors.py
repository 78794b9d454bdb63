from __future__ import annotations
from dataclasses import dataclass


class MetaserError(Exception):
    """
    Base class for every error raised while mapping records to and from
    object metadata.
    """


class TagSyntaxError(MetaserError, ValueError):
    """
    Raised when a field's `k8s` directive cannot be parsed.

    This always indicates a defect in the record type definition and is
    never accumulated into a field error list.
    """


class MetadataTypeError(MetaserError, TypeError):
    """
    Raised when the record or its type cannot be traversed, e.g. the root is
    not a dataclass instance or an `inline` field does not hold a dataclass.
    """


class ConversionError(MetaserError, ValueError):
    """
    Raised when a single value cannot be converted to or from its string form.
    """


class ArityError(ConversionError):
    """
    Raised when a fixed-size tuple is decoded from a different number of items.
    """


class ImmutableFieldError(MetaserError, ValueError):
    """
    Raised by validation when an immutable or set-once field differs from the
    value recorded in metadata.
    """


class OptionNotSetError(MetaserError, ValueError):
    """
    Raised when the value of an empty `Option` is requested.
    """


@dataclass(frozen=True)
class FieldError:
    """
    A single field-level failure collected while decoding or validating.

    Attributes:
        field (str):
            Path of the metadata bucket the value was read from,
            e.g. `metadata.annotation`.

        key (str):
            The metadata key that was attempted. Empty for name and namespace.

        detail (str):
            Human readable description of the failure.
    """

    field: str
    key: str
    detail: str

    def __str__(self) -> str:
        return f"{self.field}: Invalid value: {self.key!r}: {self.detail}"


class DecodeError(MetaserError, ValueError):
    """
    Aggregate error raised at the end of a decode or validation pass run with
    field error accumulation enabled.

    Attributes:
        field_errors (list[FieldError]):
            Every failure in the order it was encountered.
    """

    field_errors: list[FieldError]

    def __init__(self, message: str, field_errors: list[FieldError]):
        super().__init__(message)
        self.field_errors = field_errors


def get_error_list(err: BaseException | None) -> list[FieldError] | None:
    """
    Return the field error list carried by `err` or by any exception it was
    raised from.

    Args:
        err (BaseException | None):
            The exception raised by a decode or validation call.

    Returns:
        list[FieldError] | None:
            The accumulated field errors, or None when the chain holds no
            `DecodeError`.
    """
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, DecodeError):
            return err.field_errors
        seen.add(id(err))
        err = err.__cause__
    return None
