from __future__ import annotations
from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Iterator, cast

from kube_metaser.conversion.value_codec import ValueCodec, is_zero, values_equal
from kube_metaser.errors.metaser_errors import (
    ConversionError,
    DecodeError,
    FieldError,
    ImmutableFieldError,
)
from kube_metaser.index.field_index import (
    MISSING,
    FieldEntry,
    FieldIndex,
    FieldIndexRegistry,
    index_for_instance,
)
from kube_metaser.metadata.object_meta import SupportsObjectMeta
from kube_metaser.tags.field_tag import Direction, Source

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodeOptions:
    """
    Per-call decode configuration.

    Attributes:
        accumulate_field_errors (bool):
            Attempt every field and raise one `DecodeError` listing all
            failures at the end, instead of raising on the first one.

        validate (bool):
            Before decoding, check immutable and set-once fields against the
            metadata. A failed check prevents decoding.

        immutables_only (bool):
            Restrict validation and decoding to immutable and set-once fields.
    """

    accumulate_field_errors: bool = False
    validate: bool = False
    immutables_only: bool = False

    def accepts(self, entry: FieldEntry) -> bool:
        if self.immutables_only:
            return entry.tag.immutable or entry.tag.set_once
        return True


@dataclass
class _DecodeContext:
    index: FieldIndex
    meta: SupportsObjectMeta
    root: Any
    options: DecodeOptions
    field_errors: list[FieldError] = field(default_factory=list)


def _field_path(entry: FieldEntry) -> str:
    if entry.metadata_codec is not None:
        return "metadata.custom"
    return "metadata." + entry.tag.source.value


class Decoder:
    """
    Populates dataclass records from object metadata.

    Only annotation and label keys actually present in the metadata are
    looked at: the decoder walks the keys of the container and finds the
    fields reading them through the field index, instead of probing every
    declared field. Name, namespace and custom fields are always visited.

    Attributes:
        registry (FieldIndexRegistry):
            Cache of field indexes, private to this decoder unless one is
            passed in.
    """

    registry: FieldIndexRegistry

    def __init__(self, registry: FieldIndexRegistry | None = None):
        self.registry = registry if registry is not None else FieldIndexRegistry()

    def decode(self,
               meta: SupportsObjectMeta,
               obj: Any,
               *,
               accumulate_field_errors: bool = False,
               validate: bool = False,
               immutables_only: bool = False) -> None:
        """
        Populate `obj` from `meta`.

        A field whose key and aliases are all absent keeps its current value.
        For keyed fields the primary key wins over aliases, and aliases are
        tried in declared order.

        Args:
            meta (SupportsObjectMeta):
                The metadata to read.

            obj (Any):
                The dataclass instance to update in place.

            accumulate_field_errors (bool):
                See `DecodeOptions.accumulate_field_errors`.

            validate (bool):
                See `DecodeOptions.validate`.

            immutables_only (bool):
                See `DecodeOptions.immutables_only`.

        Raises:
            MetadataTypeError:
                If `obj` is not a dataclass instance or an intermediate
                dataclass cannot be allocated.

            TagSyntaxError:
                If a field directive is malformed.

            ConversionError:
                On the first field that cannot be converted.

            ImmutableFieldError:
                On the first immutable field that differs, when validating.

            DecodeError:
                When accumulating and at least one field failed.
        """
        options = DecodeOptions(accumulate_field_errors, validate, immutables_only)
        ctx = _DecodeContext(index_for_instance(self.registry, obj), meta, obj, options)

        if options.validate:
            self._run(ctx, self._validate_field, "failed to validate fields")

        self._run(ctx, self._decode_field, "failed to decode fields")

    def validate(self,
                 meta: SupportsObjectMeta,
                 obj: Any,
                 *,
                 accumulate_field_errors: bool = False,
                 immutables_only: bool = False) -> None:
        """
        Check the immutable and set-once fields of `obj` against `meta`
        without modifying `obj`.

        Each such field whose key is present is decoded into a throwaway value
        and compared with the live value. Set-once and omitempty fields holding
        their zero value are not checked.

        Args:
            meta (SupportsObjectMeta):
                The metadata holding the recorded values.

            obj (Any):
                The dataclass instance to check.

            accumulate_field_errors (bool):
                Report every mismatch through one `DecodeError`.

            immutables_only (bool):
                See `DecodeOptions.immutables_only`.

        Raises:
            ImmutableFieldError:
                On the first field that differs.

            ConversionError:
                If a recorded value cannot be converted.

            DecodeError:
                When accumulating and at least one field failed.
        """
        options = DecodeOptions(accumulate_field_errors, True, immutables_only)
        ctx = _DecodeContext(index_for_instance(self.registry, obj), meta, obj, options)
        self._run(ctx, self._validate_field, "failed to validate fields")

    def _run(self,
             ctx: _DecodeContext,
             handler: Callable[[_DecodeContext, FieldEntry], None],
             summary: str) -> None:
        for entry in self._iterate(ctx):
            try:
                handler(ctx, entry)
            except (ConversionError, ImmutableFieldError) as exc:
                if not ctx.options.accumulate_field_errors:
                    raise type(exc)(f"{summary}: {entry.tag.describe()}: [{exc}]") from exc
                ctx.field_errors.append(FieldError(_field_path(entry), entry.tag.key, str(exc)))

        if ctx.field_errors:
            raise DecodeError(f"{summary}: multiple fields errors encountered", list(ctx.field_errors))

    def _iterate(self, ctx: _DecodeContext) -> Iterator[FieldEntry]:
        """
        Yield the entries relevant to `ctx.meta`: name, namespace, fields
        reading a present annotation or label key, then custom fields.
        """
        index = ctx.index
        candidates: list[FieldEntry] = [*index.name_entries, *index.namespace_entries]

        seen: set[int] = set()
        for present, lookup in ((ctx.meta.annotations, index.annotation_lookup),
                                (ctx.meta.labels, index.label_lookup)):
            for key in list(present or ()):
                for entry in lookup.get(key, ()):
                    if id(entry) not in seen:
                        seen.add(id(entry))
                        candidates.append(entry)

        candidates.extend(index.custom_entries)

        for entry in candidates:
            if entry.tag.direction is Direction.OUT or not ctx.options.accepts(entry):
                continue
            yield entry

    @staticmethod
    def _lookup(ctx: _DecodeContext, entry: FieldEntry) -> str | None:
        source = entry.tag.source
        if source is Source.NAME:
            return ctx.meta.name or ""
        if source is Source.NAMESPACE:
            return ctx.meta.namespace or ""
        values = ctx.meta.annotations if source is Source.ANNOTATION else ctx.meta.labels
        if not values:
            return None
        for key in entry.tag.lookup_keys():
            if key in values:
                return values[key]
        return None

    def _convert(self, ctx: _DecodeContext, entry: FieldEntry, current: Any) -> Any:
        """
        Decode the metadata value of `entry`, returning MISSING when its key
        is absent.
        """
        if entry.metadata_codec is not None:
            return entry.metadata_codec.decode_from(ctx.meta, current)
        text = self._lookup(ctx, entry)
        if text is None:
            return MISSING
        return cast(ValueCodec, entry.codec).decode(text, current)

    def _decode_field(self, ctx: _DecodeContext, entry: FieldEntry) -> None:
        current = entry.resolve(ctx.root)
        value = self._convert(ctx, entry, None if current is MISSING else current)
        if value is not MISSING:
            entry.assign(ctx.root, value)

    def _validate_field(self, ctx: _DecodeContext, entry: FieldEntry) -> None:
        tag = entry.tag
        if not (tag.immutable or tag.set_once):
            return

        live = entry.resolve(ctx.root)
        if live is MISSING:
            live = None
        # a zero omitempty value is never written, so there is nothing to compare
        if (tag.set_once or tag.omit_empty) and is_zero(live):
            return

        try:
            recorded = self._convert(ctx, entry, None)
        except ConversionError as exc:
            raise ConversionError(f"unable to decode value: [{exc}]") from exc
        if recorded is MISSING:
            return

        if not values_equal(live, recorded):
            logger.debug("immutable field %s differs from %s", entry.dotted_path, tag.describe())
            raise ImmutableFieldError("field is immutable")


_default_registry = FieldIndexRegistry()


def unmarshal(meta: SupportsObjectMeta,
              obj: Any,
              *,
              registry: FieldIndexRegistry | None = None,
              accumulate_field_errors: bool = False,
              validate: bool = False,
              immutables_only: bool = False) -> None:
    """
    Decode `meta` into `obj` with a new `Decoder`.

    The decoder is backed by `registry`, or by a module level registry shared
    by every call that passes none. Keyword arguments are those of
    `Decoder.decode`.
    """
    Decoder(registry if registry is not None else _default_registry).decode(
        meta,
        obj,
        accumulate_field_errors=accumulate_field_errors,
        validate=validate,
        immutables_only=immutables_only,
    )
