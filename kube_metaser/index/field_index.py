from __future__ import annotations
from dataclasses import dataclass, field, fields, is_dataclass
import logging
from types import UnionType
from typing import Any, Union, get_args, get_origin, get_type_hints

from kube_metaser.conversion.capabilities import implements_metadata
from kube_metaser.conversion.value_codec import (
    JsonCodec,
    MetadataCodec,
    ValueCodec,
    compile_codec,
    type_name,
)
from kube_metaser.errors.metaser_errors import MetadataTypeError
from kube_metaser.tags.field_tag import Encoding, FieldTag, Source, tag_from_field

logger = logging.getLogger(__name__)

# Returned by FieldEntry.resolve() when an intermediate object is None
MISSING: Any = object()


@dataclass(frozen=True)
class FieldEntry:
    """
    A managed leaf field reachable from the root record type.

    Attributes:
        path (tuple[str, ...]):
            Attribute names leading from the root object to the field.

        owners (tuple[Any, ...]):
            For every intermediate step of `path`, the dataclass type that is
            instantiated when the attribute holds None during decode.

        tag (FieldTag):
            The parsed directive of the field.

        ptype (Any):
            The resolved type hint of the field.

        codec (ValueCodec | None):
            String conversion for name, namespace, annotation and label
            fields.

        metadata_codec (MetadataCodec | None):
            Whole-container conversion for custom fields.
    """

    path: tuple[str, ...]
    owners: tuple[Any, ...]
    tag: FieldTag
    ptype: Any
    codec: ValueCodec | None = None
    metadata_codec: MetadataCodec | None = None

    @property
    def dotted_path(self) -> str:
        return ".".join(self.path)

    def resolve(self, root: Any) -> Any:
        """
        Read the field value from `root` without allocating anything.

        Args:
            root (Any):
                Instance of the indexed record type.

        Returns:
            Any:
                The field value, or `MISSING` when an intermediate object
                on the path is None.
        """
        obj = root
        for name in self.path[:-1]:
            obj = getattr(obj, name)
            if obj is None:
                return MISSING
        return getattr(obj, self.path[-1])

    def parent(self, root: Any) -> Any:
        """
        Return the object holding the field, allocating every intermediate
        object that is None on the way.

        Raises:
            MetadataTypeError:
                If an intermediate dataclass cannot be built without
                arguments.
        """
        obj = root
        for name, owner in zip(self.path[:-1], self.owners):
            child = getattr(obj, name)
            if child is None:
                try:
                    child = owner()
                except TypeError as exc:
                    raise MetadataTypeError(
                        f"cannot allocate '{type_name(owner)}' for '{name}' without arguments"
                    ) from exc
                setattr(obj, name, child)
            obj = child
        return obj

    def assign(self, root: Any, value: Any) -> None:
        setattr(self.parent(root), self.path[-1], value)


@dataclass
class FieldIndex:
    """
    All managed fields of one record type, grouped by metadata bucket.

    Per-key buckets map the primary key to every entry declaring it. The
    lookup tables additionally register each entry under its aliases and are
    used by decode to go from a key present in metadata to the fields that may
    read it.

    Fields converted by a whole-container converter always land in the custom
    bucket, whatever source their directive names.

    The index is read-only once built and may be shared between threads.
    """

    record_type: Any
    name_entries: list[FieldEntry] = field(default_factory=list)
    namespace_entries: list[FieldEntry] = field(default_factory=list)
    annotation_entries: dict[str, list[FieldEntry]] = field(default_factory=dict)
    label_entries: dict[str, list[FieldEntry]] = field(default_factory=dict)
    custom_entries: list[FieldEntry] = field(default_factory=list)
    annotation_lookup: dict[str, list[FieldEntry]] = field(default_factory=dict)
    label_lookup: dict[str, list[FieldEntry]] = field(default_factory=dict)

    def add(self, entry: FieldEntry) -> None:
        source = entry.tag.source
        if entry.metadata_codec is not None:
            self.custom_entries.append(entry)
        elif source is Source.NAME:
            self.name_entries.append(entry)
        elif source is Source.NAMESPACE:
            self.namespace_entries.append(entry)
        elif source is Source.ANNOTATION:
            self._add_keyed(entry, self.annotation_entries, self.annotation_lookup)
        elif source is Source.LABEL:
            self._add_keyed(entry, self.label_entries, self.label_lookup)

    @staticmethod
    def _add_keyed(entry: FieldEntry,
                   by_key: dict[str, list[FieldEntry]],
                   lookup: dict[str, list[FieldEntry]]) -> None:
        by_key.setdefault(entry.tag.key, []).append(entry)
        for key in dict.fromkeys(entry.tag.lookup_keys()):
            lookup.setdefault(key, []).append(entry)

    def entries(self) -> list[FieldEntry]:
        """
        Every entry in encode order: name, namespace, annotations, labels,
        custom.
        """
        result = [*self.name_entries, *self.namespace_entries]
        for bucket in self.annotation_entries.values():
            result.extend(bucket)
        for bucket in self.label_entries.values():
            result.extend(bucket)
        result.extend(self.custom_entries)
        return result

    def __len__(self) -> int:
        return len(self.entries())


def _unwrap_optional(tp: Any) -> Any:
    if get_origin(tp) in (Union, UnionType):
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def _type_hints(record_type: Any) -> dict[str, Any]:
    try:
        return get_type_hints(record_type)
    except (NameError, TypeError) as exc:
        raise MetadataTypeError(
            f"cannot resolve field types of '{type_name(record_type)}': {exc}"
        ) from exc


def _is_custom(tag: FieldTag, ptype: Any) -> bool:
    """
    `enc:custom` selects the whole-container converter whatever the source.
    Without a source, a type implementing the metadata protocols is custom too.
    """
    if tag.inline:
        return False
    if tag.encoding is Encoding.CUSTOM:
        return True
    return tag.source is Source.UNSET and implements_metadata(_unwrap_optional(ptype))


def _make_entry(path: tuple[str, ...], owners: tuple[Any, ...], tag: FieldTag, ptype: Any) -> FieldEntry:
    if _is_custom(tag, ptype):
        return FieldEntry(path, owners, tag, ptype, metadata_codec=MetadataCodec(_unwrap_optional(ptype)))
    if tag.encoding is Encoding.JSON:
        codec: ValueCodec = JsonCodec(ptype)
    else:
        codec = compile_codec(ptype)
    return FieldEntry(path, owners, tag, ptype, codec=codec)


def _visit(index: FieldIndex,
           record_type: Any,
           path: tuple[str, ...],
           owners: tuple[Any, ...],
           chain: frozenset[Any]) -> None:
    """
    Depth-first scan of one dataclass type in field declaration order.

    `chain` holds the dataclass types on the current path; a type already on
    it is not expanded again.
    """
    hints = _type_hints(record_type)
    for f in fields(record_type):
        tag = tag_from_field(f)
        if tag is None:
            continue
        ptype = hints.get(f.name, f.type)
        field_path = path + (f.name,)

        if tag.inline:
            inner = _unwrap_optional(ptype)
            if not (isinstance(inner, type) and is_dataclass(inner)):
                raise MetadataTypeError(
                    f"field '{'.'.join(field_path)}' is marked inline but its type "
                    f"'{type_name(ptype)}' is not a dataclass"
                )
            if inner in chain:
                logger.debug("skipping recursive inline type %s at %s",
                             type_name(inner), ".".join(field_path))
                continue
            _visit(index, inner, field_path, owners + (inner,), chain | {inner})
            continue

        if tag.source is Source.UNSET and not _is_custom(tag, ptype):
            continue

        index.add(_make_entry(field_path, owners, tag, ptype))


def build_field_index(record_type: Any) -> FieldIndex:
    """
    Build the field index of a dataclass type.

    Only field types and directives are inspected, never values.

    Args:
        record_type (Any):
            The dataclass type to index.

    Returns:
        FieldIndex:
            The bucketed index of every managed field.

    Raises:
        MetadataTypeError:
            If `record_type` is not a dataclass, a type hint cannot be
            resolved, or an inline field does not hold a dataclass.

        TagSyntaxError:
            If a directive is malformed.
    """
    if not (isinstance(record_type, type) and is_dataclass(record_type)):
        raise MetadataTypeError(f"expected a dataclass type, got '{type_name(record_type)}'")

    index = FieldIndex(record_type)
    _visit(index, record_type, (), (), frozenset({record_type}))
    logger.debug("built field index for %s with %d entries", type_name(record_type), len(index))
    return index


class FieldIndexRegistry:
    """
    Cache of field indexes keyed by record type.

    Each encoder and decoder owns one, unless a shared registry is injected.
    Index construction has no side effects, so two threads missing the cache
    at the same time simply build equivalent indexes and the last one stored
    wins. No lock is taken.

    Attributes:
        _indexes (dict[Any, FieldIndex]):
            Built indexes by record type.
    """

    _indexes: dict[Any, FieldIndex]

    def __init__(self) -> None:
        self._indexes = {}

    def get(self, record_type: Any) -> FieldIndex:
        """
        Return the index of `record_type`, building it on first use.

        Args:
            record_type (Any):
                The dataclass type.

        Returns:
            FieldIndex:
                The cached or freshly built index.
        """
        index = self._indexes.get(record_type)
        if index is None:
            logger.debug("field index cache miss for %s", type_name(record_type))
            index = build_field_index(record_type)
            self._indexes[record_type] = index
        return index

    def clear(self) -> None:
        self._indexes = {}

    def __contains__(self, record_type: object) -> bool:
        return record_type in self._indexes

    def __len__(self) -> int:
        return len(self._indexes)


def index_for_instance(registry: FieldIndexRegistry, obj: Any) -> FieldIndex:
    """
    Return the index for the type of record instance `obj`.

    Raises:
        MetadataTypeError:
            If `obj` is None, a type, or not a dataclass instance.
    """
    if obj is None or isinstance(obj, type) or not is_dataclass(obj):
        raise MetadataTypeError(f"expected a dataclass instance, got '{type_name(type(obj))}'")
    return registry.get(type(obj))
