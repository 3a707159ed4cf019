# metricscope

Tools for working with metrics in two places:

- **Span context for metrics.** Fields given to a span are captured when the
  span is created, and are appended as labels to the key of any metric
  registered while that span is entered.
- **A terminal observer.** The `metrics-observer` command connects to a
  metrics stream over TCP and shows counters, gauges and histogram summaries
  as they arrive.

## Installation

```
pip install .
```

## Adding span fields to metric labels

`TracingContextLayer.layer(recorder)` wraps any object that has
`register_counter`, `register_gauge` and `register_histogram` methods taking a
`Key` (and `describe_counter`, `describe_gauge`, `describe_histogram`, which
are passed through unchanged).

```python
from metricscope.context import TracingContextLayer
from metricscope.keys import Key, Label
from metricscope.spans import MetricsLayer, set_default, span


class PrintingRecorder:
    def register_counter(self, key):
        print(key)


set_default(MetricsLayer())
recorder = TracingContextLayer.all().layer(PrintingRecorder())

with span("login", user="ferris").enter():
    recorder.register_counter(
        Key("login_attempts", (Label("service", "login_service"),))
    )
```

The key the inner recorder receives carries `service=login_service` followed
by `user=ferris`.

How span fields are handled:

- Fields are captured only when a span is created, from the keyword arguments
  of `span(...)` or `MetricsLayer.span(...)`.
- Values become label text: `True`/`False` as `true`/`false`, strings and
  integers as themselves, anything else by its `repr`.
- A nested span holds its own fields followed by the fields of every span
  above it. Fields are not deduplicated, so two fields with the same name
  both appear.
- `set_default(layer)` installs a layer for the current context and returns a
  guard; use it as a context manager, or call `reset()`, to restore the
  previous default. Without a default layer, `span(...)` captures nothing and
  keys pass through unchanged.

To keep only some of the span fields, use
`TracingContextLayer.only_allow(["env", "service"])`. For your own rule,
subclass `LabelFilter` from `metricscope.label_filter`, implement
`should_include_label(label)`, and pass an instance to
`TracingContextLayer(...)`. Labels already on the key are always kept.

## Watching a metrics stream

```
metrics-observer 127.0.0.1:5000
```

The address defaults to `127.0.0.1:5000`. The header shows whether the
observer is connected. If connecting fails, or the connection ends, it retries
every three seconds; if the host cannot be resolved, it stops trying and
shows `failed to resolve specified host`.

The stream is a sequence of length-prefixed protocol buffer event messages;
the layout is described in the docstring of `metricscope.client`.

Below the header is one line per metric, sorted by kind, name and labels:

| Metric type | Shown as                          |
|-------------|-----------------------------------|
| counter     | running total                     |
| gauge       | current value                     |
| histogram   | min, p50, p99, p999 and max       |

Histogram quantiles are estimates with a small relative error. When a unit
has been announced for a metric, values use it: data units are scaled to
KiB, MiB and so on, and times are shown in `s`, `ms`, `µs` or `ns`.

Keys:

| Key       | Action                 |
|-----------|------------------------|
| Up, Down  | move the selection     |
| Page Up   | jump to the top        |
| Page Down | jump to the bottom     |
| q         | quit                   |

When standard input is a terminal, the observer switches it to raw mode and
uses the alternate screen; this needs a POSIX system. If input ends, the
observer exits with status 1.

The pieces behind the command can also be used directly:
`metricscope.client.Client`, `metricscope.store.MetricStore`,
`metricscope.store.Summary`, and the formatting helpers
`int_to_displayable`, `float_to_displayable` and `format_duration` in
`metricscope.units`.

## What is not included

metricscope has no recorder that stores metrics itself: `TracingContext`
only adds labels and hands keys to the recorder it wraps. Nor does it have an
exporter or server that produces the stream `metrics-observer` reads; the
observer only connects to one that is already running.

## Running the tests

```
pip install .[test]
pytest
```