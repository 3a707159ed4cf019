import socket
import time

import pytest

from metricscope.client import (
    Client,
    _encode_delimited,
    _encode_event,
    decode_event,
    read_delimited,
)
from metricscope.keys import CompositeKey, Key, Label, MetricKind
from metricscope.store import ClientState, GaugeOp, MetadataEvent, MetricEvent
from metricscope.units import Unit

COUNTER_WIRE = b"\x12\x07\x0a\x01c\x22\x02\x08\x07"


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def listener():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    sock.settimeout(5)
    yield sock
    sock.close()


def test_read_delimited_consumes_one_message():
    buffer = bytearray(b"\x03abc\x02x")
    assert read_delimited(buffer) == b"abc"
    assert buffer == bytearray(b"\x02x")


def test_read_delimited_incomplete_leaves_buffer():
    buffer = bytearray(b"\x02x")
    assert read_delimited(buffer) is None
    assert buffer == bytearray(b"\x02x")
    assert read_delimited(bytearray()) is None


def test_decode_metadata_wire_bytes():
    assert decode_event(b"\x0a\x03\x0a\x01a") == MetadataEvent(MetricKind.COUNTER, "a")


def test_counter_wire_bytes_both_ways():
    event = MetricEvent(MetricKind.COUNTER, "c", 7)
    assert decode_event(COUNTER_WIRE) == event
    assert _encode_event(event) == COUNTER_WIRE


def test_empty_event_decodes_to_none():
    assert decode_event(b"") is None


@pytest.mark.parametrize(
    "event",
    [
        MetadataEvent(MetricKind.HISTOGRAM, "latency", "milliseconds", "request time"),
        MetadataEvent(MetricKind.GAUGE, "depth"),
        MetricEvent(MetricKind.COUNTER, "hits", 42, {"host": "a", "zone": "b"}),
        MetricEvent(MetricKind.GAUGE, "g", 2.5, {"k": "v"}, GaugeOp.INCREMENT),
        MetricEvent(MetricKind.GAUGE, "g", 1.25, {}, GaugeOp.DECREMENT),
        MetricEvent(MetricKind.GAUGE, "g", None),
        MetricEvent(MetricKind.HISTOGRAM, "h", 0.75),
    ],
)
def test_round_trip(event):
    assert decode_event(_encode_event(event)) == event


def test_delimited_round_trip():
    events = [
        MetricEvent(MetricKind.COUNTER, "a", 1),
        MetadataEvent(MetricKind.COUNTER, "a", "bytes"),
    ]
    buffer = bytearray(b"".join(_encode_delimited(e) for e in events))
    decoded = []
    while (message := read_delimited(buffer)) is not None:
        decoded.append(decode_event(message))
    assert decoded == events
    assert buffer == bytearray()


def test_metric_without_value_is_rejected():
    with pytest.raises(ValueError, match="no metric value"):
        decode_event(b"\x12\x03\x0a\x01c")


def test_unknown_metric_type_is_rejected():
    with pytest.raises(ValueError, match="unknown metric type"):
        decode_event(b"\x0a\x05\x0a\x01a\x10\x09")


def test_truncated_message_is_rejected():
    with pytest.raises(ValueError):
        decode_event(COUNTER_WIRE[:-1])


def test_unresolvable_address_reports_failure():
    with Client("no-port-here") as client:
        assert _wait_for(lambda: client.state().message is not None)
        assert client.state() == ClientState(False, "failed to resolve specified host")


def test_refused_connection_backs_off():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    with Client(f"127.0.0.1:{port}") as client:
        assert _wait_for(lambda: client.state().message is not None)
        assert client.state() == ClientState(
            False, "error while connecting, retrying in 3 seconds..."
        )


def test_client_collects_events(listener):
    port = listener.getsockname()[1]
    with Client(f"127.0.0.1:{port}") as client:
        conn, _ = listener.accept()
        with conn:
            payload = b"".join(
                _encode_delimited(e)
                for e in [
                    MetadataEvent(MetricKind.COUNTER, "hits", "bytes", "bytes seen"),
                    MetricEvent(MetricKind.COUNTER, "hits", 2, {"b": "2", "a": "1"}),
                    MetricEvent(MetricKind.COUNTER, "hits", 3, {"a": "1", "b": "2"}),
                    MetricEvent(MetricKind.GAUGE, "depth", 4.0),
                    MetricEvent(MetricKind.GAUGE, "depth", 1.5, {}, GaugeOp.DECREMENT),
                ]
            )
            half = len(payload) // 2
            conn.sendall(payload[:half])
            time.sleep(0.05)
            conn.sendall(payload[half:])
            assert _wait_for(lambda: len(client.get_metrics()) == 2)
            assert _wait_for(
                lambda: client.get_metrics()[1].value == pytest.approx(2.5)
            )
            assert client.state() == ClientState(connected=True)
            counter, gauge = client.get_metrics()
            assert counter.key == CompositeKey(
                MetricKind.COUNTER, Key("hits", (Label("a", "1"), Label("b", "2")))
            )
            assert counter.value == 5
            assert counter.unit is Unit.BYTES
            assert counter.description == "bytes seen"
            assert gauge.key == CompositeKey(MetricKind.GAUGE, Key("depth"))
            assert gauge.unit is None
        assert _wait_for(lambda: client.state().message is not None)
        assert client.state() == ClientState(
            False, "error while observing, retrying in 3 seconds..."
        )