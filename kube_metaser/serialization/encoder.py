from __future__ import annotations
import logging
from typing import Any, cast

from kube_metaser.containers.option.option import Option
from kube_metaser.conversion.value_codec import ValueCodec, is_zero
from kube_metaser.errors.metaser_errors import ConversionError
from kube_metaser.index.field_index import (
    MISSING,
    FieldEntry,
    FieldIndexRegistry,
    index_for_instance,
)
from kube_metaser.metadata.object_meta import SupportsObjectMeta, ensure_maps
from kube_metaser.tags.field_tag import Direction, Source

logger = logging.getLogger(__name__)


class Encoder:
    """
    Writes the managed fields of dataclass records into object metadata.

    Attributes:
        registry (FieldIndexRegistry):
            Cache of field indexes, private to this encoder unless one is
            passed in.
    """

    registry: FieldIndexRegistry

    def __init__(self, registry: FieldIndexRegistry | None = None):
        self.registry = registry if registry is not None else FieldIndexRegistry()

    def encode(self, obj: Any, meta: SupportsObjectMeta) -> None:
        """
        Project the fields of `obj` into `meta`.

        Fields are written in the order name, namespace, annotations, labels,
        custom. Fields declared `in` are skipped, as are fields behind an
        inline dataclass attribute that is None. A zero value on an
        `omitempty` field, or an `Option` holding no value, removes its key from
        the label or annotation map.
        Only primary keys are written; aliases are ignored.

        Args:
            obj (Any):
                The dataclass instance to read.

            meta (SupportsObjectMeta):
                The metadata to update in place. Missing label and annotation
                maps are allocated.

        Raises:
            MetadataTypeError:
                If `obj` is not a dataclass instance.

            TagSyntaxError:
                If a field directive is malformed.

            ConversionError:
                On the first field that cannot be converted.
        """
        index = index_for_instance(self.registry, obj)
        ensure_maps(meta)

        for entry in index.entries():
            if entry.tag.direction is Direction.IN:
                continue
            value = entry.resolve(obj)
            if value is MISSING:
                continue
            try:
                self._encode_field(entry, value, meta)
            except ConversionError as exc:
                raise type(exc)(
                    f"unable to process value of '{entry.dotted_path}': {entry.tag.describe()}: [{exc}]"
                ) from exc

    def _encode_field(self, entry: FieldEntry, value: Any, meta: SupportsObjectMeta) -> None:
        tag = entry.tag

        if (tag.omit_empty and is_zero(value)) or _is_absent_option(value):
            target = _target_map(tag.source, meta) if entry.metadata_codec is None else None
            if target is not None and target.pop(tag.key, None) is not None:
                logger.debug("removed %s for empty field %s", tag.describe(), entry.dotted_path)
            return

        if entry.metadata_codec is not None:
            entry.metadata_codec.encode_to(value, meta)
            return

        text = cast(ValueCodec, entry.codec).encode(value)
        if tag.source is Source.NAME:
            meta.name = text
        elif tag.source is Source.NAMESPACE:
            meta.namespace = text
        else:
            cast(dict[str, str], _target_map(tag.source, meta))[tag.key] = text


def _is_absent_option(value: Any) -> bool:
    return isinstance(value, Option) and not value.is_set()


def _target_map(source: Source, meta: SupportsObjectMeta) -> dict[str, str] | None:
    if source is Source.ANNOTATION:
        return meta.annotations
    if source is Source.LABEL:
        return meta.labels
    return None


_default_registry = FieldIndexRegistry()


def marshal(obj: Any, meta: SupportsObjectMeta, registry: FieldIndexRegistry | None = None) -> None:
    """
    Encode `obj` into `meta`.

    Uses a new `Encoder` backed by `registry`, or by a module level registry
    shared by every call that passes none.
    """
    Encoder(registry if registry is not None else _default_registry).encode(obj, meta)
