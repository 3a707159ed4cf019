"""Metric identity: labels, keys and kind-qualified keys."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class Label:
    """A single key/value pair attached to a metric."""

    key: str
    value: str


@dataclass(frozen=True, order=True)
class Key:
    """A metric name together with its ordered labels."""

    name: str
    labels: tuple[Label, ...] = ()

    def __post_init__(self) -> None:
        labels = tuple(self.labels)
        for label in labels:
            if not isinstance(label, Label):
                raise TypeError(f"expected Label, got {type(label).__name__}")
        object.__setattr__(self, "labels", labels)

    def with_labels(self, labels: Iterable[Label]) -> Key:
        """Return a new key with ``labels`` appended after the existing ones."""
        return Key(self.name, (*self.labels, *labels))


class MetricKind(enum.IntEnum):
    """The type of a metric."""

    COUNTER = 0
    GAUGE = 1
    HISTOGRAM = 2


@dataclass(frozen=True, order=True)
class CompositeKey:
    """A key qualified by the kind of metric it identifies."""

    kind: MetricKind
    key: Key