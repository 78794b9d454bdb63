from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@runtime_checkable
class SupportsObjectMeta(Protocol):
    """
    The part of a Kubernetes `ObjectMeta` this library reads and writes.

    `kubernetes.client.V1ObjectMeta` satisfies this protocol structurally.
    Maps may be None; the encoder allocates them before writing.
    """

    name: str | None
    namespace: str | None
    labels: dict[str, str] | None
    annotations: dict[str, str] | None


@dataclass
class ObjectMeta:
    """
    Minimal metadata container.

    Attributes:
        name (str):
            Object name.

        namespace (str):
            Object namespace.

        labels (dict[str, str] | None):
            Label map, None until something is written.

        annotations (dict[str, str] | None):
            Annotation map, None until something is written.
    """

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None


def ensure_maps(meta: SupportsObjectMeta) -> None:
    """
    Allocate the label and annotation maps of `meta` when they are missing.
    """
    if meta.labels is None:
        meta.labels = {}
    if meta.annotations is None:
        meta.annotations = {}
