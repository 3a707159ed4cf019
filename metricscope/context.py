"""A recorder wrapper that adds the current span's fields to metric keys."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from metricscope.keys import Key
from metricscope.label_filter import Allowlist, IncludeAll, LabelFilter
from metricscope.spans import current_layer


class TracingContextLayer:
    """Wraps recorders in a TracingContext using a given label filter."""

    def __init__(self, label_filter: LabelFilter) -> None:
        self.label_filter = label_filter

    @staticmethod
    def all() -> TracingContextLayer:
        """A layer that includes every span field."""
        return TracingContextLayer(IncludeAll())

    @staticmethod
    def only_allow(allowed: Iterable[str]) -> TracingContextLayer:
        """A layer that only includes span fields with the given names."""
        return TracingContextLayer(Allowlist(allowed))

    def layer(self, inner: Any) -> TracingContext:
        """Wrap ``inner`` so its registered keys carry span fields."""
        return TracingContext(inner, self.label_filter)


class TracingContext:
    """A recorder that injects labels from the current span before delegating."""

    def __init__(self, inner: Any, label_filter: LabelFilter) -> None:
        self.inner = inner
        self.label_filter = label_filter

    def _enhance_key(self, key: Key) -> Key:
        layer = current_layer()
        if layer is None:
            return key
        labels = layer.current_labels()
        if not labels:
            return key
        return key.with_labels(
            label for label in labels if self.label_filter.should_include_label(label)
        )

    def describe_counter(self, key_name: str, unit: Any, description: str) -> Any:
        return self.inner.describe_counter(key_name, unit, description)

    def describe_gauge(self, key_name: str, unit: Any, description: str) -> Any:
        return self.inner.describe_gauge(key_name, unit, description)

    def describe_histogram(self, key_name: str, unit: Any, description: str) -> Any:
        return self.inner.describe_histogram(key_name, unit, description)

    def register_counter(self, key: Key) -> Any:
        return self.inner.register_counter(self._enhance_key(key))

    def register_gauge(self, key: Key) -> Any:
        return self.inner.register_gauge(self._enhance_key(key))

    def register_histogram(self, key: Key) -> Any:
        return self.inner.register_histogram(self._enhance_key(key))