"""Spans whose fields are captured so they can later become metric labels."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any

from metricscope.keys import Label


def _field_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    return repr(value)


class Labels:
    """Span fields rendered as an ordered list of labels."""

    __slots__ = ("_labels",)

    def __init__(self, labels: Iterable[Label] = ()) -> None:
        self._labels: list[Label] = list(labels)

    def record(self, name: str, value: Any) -> None:
        """Record a field, rendering its value as label text."""
        self._labels.append(Label(name, _field_text(value)))

    def extend_from_labels(self, other: Iterable[Label]) -> None:
        """Append the labels held by ``other``."""
        self._labels.extend(other)

    @staticmethod
    def from_fields(fields: Mapping[str, Any]) -> Labels:
        """Build labels from a mapping of field names to values, in order."""
        labels = Labels()
        for name, value in fields.items():
            labels.record(name, value)
        return labels

    def __iter__(self) -> Iterator[Label]:
        return iter(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __getitem__(self, index: int) -> Label:
        return self._labels[index]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Labels):
            return self._labels == other._labels
        return NotImplemented

    def __repr__(self) -> str:
        return f"Labels({self._labels!r})"


class Span:
    """A named unit of work carrying its own fields and those of its parents."""

    def __init__(
        self,
        name: str,
        labels: Labels,
        layer: MetricsLayer | None = None,
        parent: Span | None = None,
    ) -> None:
        self.name = name
        self.labels = labels
        self.layer = layer
        self.parent = parent

    @contextmanager
    def enter(self) -> Iterator[Span]:
        """Make this span current for the duration of the ``with`` block."""
        if self.layer is None:
            yield self
            return
        token = self.layer._current.set(self)
        try:
            yield self
        finally:
            self.layer._current.reset(token)

    def __repr__(self) -> str:
        return f"Span({self.name!r}, {self.labels!r})"


class MetricsLayer:
    """Creates spans, captures their fields at creation and tracks the current one."""

    def __init__(self) -> None:
        self._current: ContextVar[Span | None] = ContextVar(
            f"metricscope_current_span_{id(self)}", default=None
        )

    def span(self, name: str, /, **kwargs: Any) -> Span:
        """Create a span; its fields are followed by those of the current span."""
        labels = Labels.from_fields(kwargs)
        parent = self._current.get()
        if parent is not None:
            labels.extend_from_labels(parent.labels)
        return Span(name, labels, self, parent)

    def current_span(self) -> Span | None:
        """Return the span entered most recently in this context, if any."""
        return self._current.get()

    def current_labels(self) -> Labels | None:
        """Return the labels of the current span, or None outside any span."""
        current = self._current.get()
        return None if current is None else current.labels


_default_layer: ContextVar[MetricsLayer | None] = ContextVar(
    "metricscope_default_layer", default=None
)


class _DefaultGuard:
    """Restores the previous default layer when reset or when its block exits."""

    def __init__(self, layer: MetricsLayer) -> None:
        self.layer = layer
        self._token: Token | None = _default_layer.set(layer)

    def reset(self) -> None:
        if self._token is not None:
            _default_layer.reset(self._token)
            self._token = None

    def __enter__(self) -> MetricsLayer:
        return self.layer

    def __exit__(self, *exc_info: object) -> None:
        self.reset()


def set_default(layer: MetricsLayer) -> _DefaultGuard:
    """Install ``layer`` as the default for this context; returns a guard."""
    return _DefaultGuard(layer)


def current_layer() -> MetricsLayer | None:
    """Return the default layer for this context, if one is installed."""
    return _default_layer.get()


def span(name: str, /, **kwargs: Any) -> Span:
    """Create a span on the default layer; without one the span captures nothing."""
    layer = current_layer()
    if layer is None:
        return Span(name, Labels())
    return layer.span(name, **kwargs)