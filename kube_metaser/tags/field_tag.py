from __future__ import annotations
from dataclasses import Field, dataclass
from enum import Enum
from typing import Any

from kube_metaser.errors.metaser_errors import TagSyntaxError

# Key under which the directive is stored in dataclass field metadata
TAG_METADATA_KEY = "k8s"

_ITEM_SEPARATOR = ","
_OPTION_SEPARATOR = ":"
_ALIAS_SEPARATOR = ";"


class Source(Enum):
    """Metadata bucket a field is read from and written to."""

    UNSET = "undefined source"
    NAME = "name"
    NAMESPACE = "namespace"
    ANNOTATION = "annotation"
    LABEL = "label"

    def __str__(self) -> str:
        return self.value


class Encoding(Enum):
    """Conversion scheme selected with `enc:<scheme>`."""

    DEFAULT = ""
    JSON = "json"
    CUSTOM = "custom"


class Direction(Enum):
    """Whether a field takes part in decoding, encoding or both."""

    IN = "in"
    OUT = "out"
    INOUT = "inout"


@dataclass(frozen=True)
class FieldTag:
    """
    Parsed form of a field's `k8s` directive.

    Attributes:
        source (Source):
            Metadata bucket of the field. `Source.UNSET` for inline markers and
            fields handled by a custom metadata converter.

        encoding (Encoding):
            Conversion scheme. `Encoding.DEFAULT` picks the conversion from the
            field type.

        direction (Direction):
            `IN` fields are only decoded, `OUT` fields are only encoded.

        key (str):
            Annotation or label key. Empty for name and namespace.

        inline (bool):
            Expand the fields of this dataclass-typed field into the parent.

        omit_empty (bool):
            Remove the key from metadata when the value is zero on encode.

        immutable (bool):
            Validation rejects any difference from the recorded value.

        set_once (bool):
            Like `immutable`, but only once the live value is non-zero.

        aliases (tuple[str, ...]):
            Alternate keys tried in order on decode when `key` is absent.
    """

    source: Source = Source.UNSET
    encoding: Encoding = Encoding.DEFAULT
    direction: Direction = Direction.INOUT
    key: str = ""
    inline: bool = False
    omit_empty: bool = False
    immutable: bool = False
    set_once: bool = False
    aliases: tuple[str, ...] = ()

    def lookup_keys(self) -> tuple[str, ...]:
        """
        Keys tried on decode, primary key first.

        Returns:
            tuple[str, ...]:
                The primary key followed by every alias in declared order.
        """
        return (self.key, *self.aliases)

    def describe(self) -> str:
        """
        Short `source 'key'` description used in error messages.
        """
        return f"{self.source} '{self.key}'"


_BARE_TOKENS: dict[str, dict[str, Any]] = {
    "name": {"source": Source.NAME, "key": ""},
    "namespace": {"source": Source.NAMESPACE, "key": ""},
    "inline": {"inline": True},
    "in": {"direction": Direction.IN},
    "out": {"direction": Direction.OUT},
    "inout": {"direction": Direction.INOUT},
    "omitempty": {"omit_empty": True},
    "immutable": {"immutable": True},
    "setonce": {"set_once": True},
}


def _parse_encoding(value: str, token: str) -> Encoding:
    try:
        return Encoding(value)
    except ValueError as exc:
        raise TagSyntaxError(
            f"invalid encoding value in '{token}'. Expected one of [json, custom], got '{value}'"
        ) from exc


def _parse_option(token: str) -> dict[str, Any]:
    """
    Parse a `<option>:<value>` token into the attributes it sets.
    """
    parts = token.split(_OPTION_SEPARATOR)
    if len(parts) != 2:
        raise TagSyntaxError(f"invalid tag syntax. Unknown k8s option: '{token}'")

    option, value = parts
    if option == "enc":
        return {"encoding": _parse_encoding(value, token)}
    if option in ("annotation", "label"):
        if not value:
            raise TagSyntaxError(f"invalid tag syntax. Missing {option} key in '{token}'")
        source = Source.ANNOTATION if option == "annotation" else Source.LABEL
        return {"source": source, "key": value}
    if option == "aliases":
        return {"aliases": tuple(a.strip() for a in value.split(_ALIAS_SEPARATOR) if a.strip())}

    raise TagSyntaxError(
        f"invalid tag syntax. Expected <option>:<value>, unknown option: '{option}' in '{token}'"
    )


def parse_tag(raw: str | None) -> FieldTag | None:
    """
    Parse a field directive into a `FieldTag`.

    The directive is a comma separated list of tokens:

      - Bare tokens: `name`, `namespace`, `inline`, `in`, `out`, `inout`,
        `omitempty`, `immutable`, `setonce`.

      - Option tokens:
          - `annotation:<key>` / `label:<key>`: source and key.
          - `enc:<scheme>`: `json`, `custom`, or empty for the type driven
            default.
          - `aliases:<k1>;<k2>`: alternate lookup keys.

    Tokens are whitespace-trimmed and case-sensitive. When the same kind of
    token appears twice, the later one wins.

    Args:
        raw (str | None):
            The directive string, usually taken from field metadata.

    Returns:
        FieldTag | None:
            The parsed directive, or None when `raw` is missing or blank and
            the field is therefore not managed.

    Raises:
        TagSyntaxError:
            If a token is unknown or malformed.
    """
    if raw is None or not raw.strip():
        return None

    attrs: dict[str, Any] = {}
    for item in raw.split(_ITEM_SEPARATOR):
        token = item.strip()
        if not token:
            raise TagSyntaxError(f"invalid tag syntax. Empty option in '{raw}'")
        bare = _BARE_TOKENS.get(token)
        if bare is not None:
            attrs.update(bare)
        else:
            attrs.update(_parse_option(token))

    if attrs.get("source") in (Source.NAME, Source.NAMESPACE):
        attrs["key"] = ""

    return FieldTag(**attrs)


def tag_from_field(f: Field[Any]) -> FieldTag | None:
    """
    Read and parse the `k8s` directive of a dataclass field.

    Args:
        f (Field[Any]):
            The dataclass field.

    Returns:
        FieldTag | None:
            The parsed directive or None when the field carries none.

    Raises:
        TagSyntaxError:
            If the directive is malformed or not a string.
    """
    meta = getattr(f, "metadata", None)
    if not meta or TAG_METADATA_KEY not in meta:
        return None
    raw = meta[TAG_METADATA_KEY]
    if not isinstance(raw, str):
        raise TagSyntaxError(
            f"field '{f.name}': k8s directive must be a string, got {type(raw).__name__}"
        )
    try:
        return parse_tag(raw)
    except TagSyntaxError as exc:
        raise TagSyntaxError(f"field '{f.name}': {exc}") from exc
