import pytest

from metricscope.keys import Label
from metricscope.spans import (
    Labels,
    MetricsLayer,
    current_layer,
    set_default,
    span,
)


class DebugStruct:
    def __repr__(self):
        return 'DebugStruct { field1: "yeehaw!", field2: 324242343243 }'


@pytest.mark.parametrize(
    "value, expected",
    [
        ("test test", "test test"),
        (True, "true"),
        (False, "false"),
        (-3423432, "-3423432"),
        (3423432, "3423432"),
    ],
)
def test_record_values(value, expected):
    labels = Labels()
    labels.record("test", value)
    assert list(labels) == [Label("test", expected)]


def test_record_debug_struct():
    labels = Labels()
    labels.record("test", DebugStruct())
    assert labels[0] == Label("test", 'DebugStruct { field1: "yeehaw!", field2: 324242343243 }')


def test_from_fields_keeps_order():
    labels = Labels.from_fields({"user": "ferris", "user.email": "ferris@example.com"})
    assert list(labels) == [Label("user", "ferris"), Label("user.email", "ferris@example.com")]


def test_extend_from_labels_appends():
    labels = Labels.from_fields({"a": "1"})
    labels.extend_from_labels(Labels.from_fields({"b": "2"}))
    assert list(labels) == [Label("a", "1"), Label("b", "2")]
    assert len(labels) == 2


def test_current_labels_none_outside_span():
    layer = MetricsLayer()
    assert layer.current_labels() is None


def test_enter_sets_and_restores_current():
    layer = MetricsLayer()
    s = layer.span("login", user="ferris")
    with s.enter():
        assert list(layer.current_labels()) == [Label("user", "ferris")]
    assert layer.current_labels() is None


def test_enter_restores_after_exception():
    layer = MetricsLayer()
    s = layer.span("login", user="ferris")
    with pytest.raises(ValueError):
        with s.enter():
            raise ValueError("boom")
    assert layer.current_labels() is None


def test_nested_span_fields_come_before_parent_fields():
    layer = MetricsLayer()
    outer = layer.span("outer", shared_field="outer", outer_specific="bar")
    with outer.enter():
        inner = layer.span("inner", shared_field="inner", inner_specific="foo")
        assert inner.parent is outer
        with inner.enter():
            assert list(layer.current_labels()) == [
                Label("shared_field", "inner"),
                Label("inner_specific", "foo"),
                Label("shared_field", "outer"),
                Label("outer_specific", "bar"),
            ]
        assert layer.current_labels() is outer.labels


def test_fields_captured_only_at_creation():
    layer = MetricsLayer()
    child = layer.span("child", a="1")
    parent = layer.span("parent", b="2")
    with parent.enter():
        with child.enter():
            assert list(layer.current_labels()) == [Label("a", "1")]


def test_set_default_guard_restores_previous():
    assert current_layer() is None
    layer = MetricsLayer()
    with set_default(layer) as installed:
        assert installed is layer
        assert current_layer() is layer
    assert current_layer() is None


def test_set_default_reset_without_with():
    layer = MetricsLayer()
    guard = set_default(layer)
    assert current_layer() is layer
    guard.reset()
    guard.reset()
    assert current_layer() is None


def test_span_uses_default_layer():
    layer = MetricsLayer()
    with set_default(layer):
        s = span("login", **{"user": "ferris", "user.email": "ferris@example.com"})
        with s.enter():
            assert list(layer.current_labels()) == [
                Label("user", "ferris"),
                Label("user.email", "ferris@example.com"),
            ]


def test_span_without_default_layer_captures_nothing():
    s = span("login", user="ferris")
    with s.enter() as entered:
        assert len(entered.labels) == 0
    assert s.layer is None