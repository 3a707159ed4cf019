"""Accumulates observed metric events and their metadata."""

from __future__ import annotations

import enum
import math
import threading
from collections import Counter
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import NamedTuple, Union

from metricscope.keys import CompositeKey, Key, Label, MetricKind
from metricscope.units import Unit


@dataclass(frozen=True)
class ClientState:
    """Whether the observer is connected, with an optional reason when it is not."""

    connected: bool = False
    message: str | None = None


class Summary:
    """A sketch of a distribution with bounded relative error on quantiles."""

    def __init__(self, alpha: float = 0.0001, min_value: float = 1e-9) -> None:
        if not 0.0 < alpha < 1.0:
            raise ValueError("alpha must be between 0 and 1")
        self._alpha = alpha
        self._gamma = (1.0 + alpha) / (1.0 - alpha)
        self._log_gamma = math.log(self._gamma)
        self._min_value = min_value
        self._positive: Counter[int] = Counter()
        self._negative: Counter[int] = Counter()
        self._zeros = 0
        self._count = 0
        self._min = math.inf
        self._max = -math.inf

    def _index(self, magnitude: float) -> int:
        return math.ceil(math.log(magnitude) / self._log_gamma)

    def _estimate(self, index: int) -> float:
        return 2.0 * self._gamma**index / (self._gamma + 1.0)

    def add(self, value: float) -> None:
        """Record one sample; NaN samples are ignored."""
        value = float(value)
        if math.isnan(value):
            return
        self._count += 1
        self._min = min(self._min, value)
        self._max = max(self._max, value)
        if abs(value) <= self._min_value:
            self._zeros += 1
        elif value > 0:
            self._positive[self._index(value)] += 1
        else:
            self._negative[self._index(-value)] += 1

    @property
    def count(self) -> int:
        return self._count

    @property
    def min(self) -> float:
        """The smallest sample, or infinity when empty."""
        return self._min

    @property
    def max(self) -> float:
        """The largest sample, or negative infinity when empty."""
        return self._max

    def __len__(self) -> int:
        return self._count

    def _buckets(self) -> Iterator[tuple[float, int]]:
        for index in sorted(self._negative, reverse=True):
            yield -self._estimate(index), self._negative[index]
        if self._zeros:
            yield 0.0, self._zeros
        for index in sorted(self._positive):
            yield self._estimate(index), self._positive[index]

    def quantile(self, q: float) -> float | None:
        """Estimate the value at quantile ``q``; None if empty or ``q`` is outside [0, 1]."""
        if not 0.0 <= q <= 1.0 or self._count == 0:
            return None
        if q == 0.0:
            return self._min
        if q == 1.0:
            return self._max
        rank = q * (self._count - 1)
        seen = 0
        for estimate, count in self._buckets():
            seen += count
            if seen > rank:
                return min(max(estimate, self._min), self._max)
        return self._max

    def copy(self) -> Summary:
        """An independent copy of this summary."""
        other = Summary(self._alpha, self._min_value)
        other._positive = self._positive.copy()
        other._negative = self._negative.copy()
        other._zeros = self._zeros
        other._count = self._count
        other._min = self._min
        other._max = self._max
        return other

    def __repr__(self) -> str:
        return f"Summary(count={self._count}, min={self._min}, max={self._max})"


class GaugeOp(enum.Enum):
    """How a gauge event changes the current value."""

    ABSOLUTE = "absolute"
    INCREMENT = "increment"
    DECREMENT = "decrement"


@dataclass(frozen=True)
class MetadataEvent:
    """The unit and description announced for a metric name of a given kind."""

    kind: MetricKind
    name: str
    unit: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class MetricEvent:
    """One observed update: a counter increment, a gauge change or a histogram sample."""

    kind: MetricKind
    name: str
    value: float | int | None
    labels: Mapping[str, str] = field(default_factory=dict)
    gauge_op: GaugeOp = GaugeOp.ABSOLUTE


MetricValue = Union[int, float, Summary]


class MetricEntry(NamedTuple):
    """A metric, its current value and its metadata."""

    key: CompositeKey
    value: MetricValue
    unit: Unit | None
    description: str | None


class MetricStore:
    """Thread-safe accumulation of metric values and metadata."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics: dict[CompositeKey, MetricValue] = {}
        self._metadata: dict[tuple[MetricKind, str], tuple[Unit | None, str | None]] = {}

    def apply(self, event: MetadataEvent | MetricEvent) -> None:
        """Fold one event into the store."""
        if isinstance(event, MetadataEvent):
            unit = Unit.from_string(event.unit) if event.unit is not None else None
            with self._lock:
                self._metadata[(MetricKind(event.kind), event.name)] = (
                    unit,
                    event.description,
                )
        elif isinstance(event, MetricEvent):
            self._apply_metric(event)
        else:
            raise TypeError(f"unsupported event type: {type(event).__name__}")

    def _apply_metric(self, event: MetricEvent) -> None:
        kind = MetricKind(event.kind)
        labels = tuple(Label(k, v) for k, v in sorted(event.labels.items()))
        key = CompositeKey(kind, Key(event.name, labels))
        if kind is not MetricKind.GAUGE and event.value is None:
            raise ValueError("no metric value")
        with self._lock:
            if kind is MetricKind.COUNTER:
                self._metrics[key] = self._metrics.get(key, 0) + int(event.value)
            elif kind is MetricKind.GAUGE:
                current = self._metrics.get(key, 0.0)
                if event.value is not None:
                    delta = float(event.value)
                    if event.gauge_op is GaugeOp.ABSOLUTE:
                        current = delta
                    elif event.gauge_op is GaugeOp.INCREMENT:
                        current += delta
                    else:
                        current -= delta
                self._metrics[key] = current
            else:
                summary = self._metrics.get(key)
                if summary is None:
                    summary = self._metrics[key] = Summary()
                summary.add(float(event.value))

    def snapshot(self) -> list[MetricEntry]:
        """All metrics in key order, with copied values and their metadata."""
        with self._lock:
            entries = []
            for key in sorted(self._metrics):
                value = self._metrics[key]
                if isinstance(value, Summary):
                    value = value.copy()
                unit, description = self._metadata.get((key.kind, key.key.name), (None, None))
                entries.append(MetricEntry(key, value, unit, description))
            return entries