from __future__ import annotations
from typing import Any, Protocol, runtime_checkable

from kube_metaser.metadata.object_meta import SupportsObjectMeta


@runtime_checkable
class TextMarshaler(Protocol):
    def marshal_text(self) -> bytes: ...


@runtime_checkable
class TextUnmarshaler(Protocol):
    def unmarshal_text(self, text: bytes) -> None: ...


@runtime_checkable
class MetadataMarshaler(Protocol):
    def marshal_to_metadata(self, meta: SupportsObjectMeta) -> None: ...


@runtime_checkable
class MetadataUnmarshaler(Protocol):
    def unmarshal_from_metadata(self, meta: SupportsObjectMeta) -> None: ...


def implements(tp: Any, capability: type) -> bool:
    """
    Check whether class `tp` provides the methods of a capability protocol.

    The check is made on the type, once, when a field is classified, so the
    value itself is never probed during encode or decode.

    Args:
        tp (Any):
            The field type. Non-class values (e.g. typing constructs) never
            implement a capability.

        capability (type):
            One of the protocols of this module.

    Returns:
        bool:
            True if every protocol method is present on `tp`.
    """
    if not isinstance(tp, type):
        return False
    try:
        return issubclass(tp, capability)
    except TypeError:
        return False


def implements_text(tp: Any) -> bool:
    return implements(tp, TextMarshaler) or implements(tp, TextUnmarshaler)


def implements_metadata(tp: Any) -> bool:
    return implements(tp, MetadataMarshaler) or implements(tp, MetadataUnmarshaler)
