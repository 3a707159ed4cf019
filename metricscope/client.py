"""A background client that connects to a metrics endpoint and collects its events.

Events arrive as length-delimited protocol buffer messages with this layout:

    Event     { Metadata metadata = 1; Metric metric = 2; }              (one of)
    Metadata  { string name = 1; MetricType metric_type = 2;
                string unit_value = 3; string description_value = 4; }
    Metric    { string name = 1; <timestamp> = 2 (ignored);
                map<string, string> labels = 3;
                Counter counter = 4; Gauge gauge = 5; Histogram histogram = 6; }  (one of)
    Counter   { uint64 value = 1; }
    Gauge     { double absolute = 1; double increment = 2; double decrement = 3; }  (one of)
    Histogram { double value = 1; }
    MetricType: COUNTER = 0, GAUGE = 1, HISTOGRAM = 2
"""

from __future__ import annotations

import socket
import struct
import sys
import threading
from collections.abc import Iterator

from metricscope.keys import MetricKind
from metricscope.store import (
    ClientState,
    GaugeOp,
    MetadataEvent,
    MetricEntry,
    MetricEvent,
    MetricStore,
)

CONNECT_TIMEOUT = 3.0
RETRY_DELAY = 3.0
_READ_SIZE = 1024
_POLL_INTERVAL = 0.25
_RESOLVE_FAILED = "failed to resolve specified host"

_VARINT = 0
_FIXED64 = 1
_LENGTH = 2
_FIXED32 = 5
_MAX_VARINT_BYTES = 10


class _Truncated(ValueError):
    """The data ends before a complete value could be read."""


def _read_varint(data: bytes | bytearray, pos: int) -> tuple[int, int]:
    value = 0
    for shift_index in range(_MAX_VARINT_BYTES):
        if pos >= len(data):
            raise _Truncated("truncated varint")
        byte = data[pos]
        pos += 1
        value |= (byte & 0x7F) << (7 * shift_index)
        if not byte & 0x80:
            return value, pos
    raise ValueError("varint is too long")


def _take(data: bytes, pos: int, size: int) -> tuple[bytes, int]:
    end = pos + size
    if end > len(data):
        raise _Truncated("truncated field")
    return data[pos:end], end


def _fields(data: bytes) -> Iterator[tuple[int, int, int | bytes]]:
    """Yield (field number, wire type, raw value) for each field in a message."""
    pos = 0
    while pos < len(data):
        tag, pos = _read_varint(data, pos)
        number, wire_type = tag >> 3, tag & 0x7
        if number == 0:
            raise ValueError("invalid field number 0")
        if wire_type == _VARINT:
            value, pos = _read_varint(data, pos)
        elif wire_type == _FIXED64:
            value, pos = _take(data, pos, 8)
        elif wire_type == _LENGTH:
            size, pos = _read_varint(data, pos)
            value, pos = _take(data, pos, size)
        elif wire_type == _FIXED32:
            value, pos = _take(data, pos, 4)
        else:
            raise ValueError(f"unsupported wire type {wire_type}")
        yield number, wire_type, value


def _expect(wire_type: int, expected: int, what: str) -> None:
    if wire_type != expected:
        raise ValueError(f"unexpected wire type {wire_type} for {what}")


def _text(value: int | bytes, wire_type: int, what: str) -> str:
    _expect(wire_type, _LENGTH, what)
    return bytes(value).decode("utf-8")


def _double(value: int | bytes, wire_type: int, what: str) -> float:
    _expect(wire_type, _FIXED64, what)
    return struct.unpack("<d", value)[0]


def _decode_metadata(data: bytes) -> MetadataEvent:
    name = ""
    metric_type = 0
    unit: str | None = None
    description: str | None = None
    for number, wire_type, value in _fields(data):
        if number == 1:
            name = _text(value, wire_type, "metadata name")
        elif number == 2:
            _expect(wire_type, _VARINT, "metric type")
            metric_type = value
        elif number == 3:
            unit = _text(value, wire_type, "unit")
        elif number == 4:
            description = _text(value, wire_type, "description")
    try:
        kind = MetricKind(metric_type)
    except ValueError:
        raise ValueError("unknown metric type over wire") from None
    return MetadataEvent(kind, name, unit, description)


def _decode_label(data: bytes) -> tuple[str, str]:
    key = ""
    value = ""
    for number, wire_type, raw in _fields(data):
        if number == 1:
            key = _text(raw, wire_type, "label key")
        elif number == 2:
            value = _text(raw, wire_type, "label value")
    return key, value


def _decode_counter(data: bytes) -> int:
    total = 0
    for number, wire_type, value in _fields(data):
        if number == 1:
            _expect(wire_type, _VARINT, "counter value")
            total = value
    return total


def _decode_gauge(data: bytes) -> tuple[float | None, GaugeOp]:
    result: float | None = None
    op = GaugeOp.ABSOLUTE
    ops = {1: GaugeOp.ABSOLUTE, 2: GaugeOp.INCREMENT, 3: GaugeOp.DECREMENT}
    for number, wire_type, value in _fields(data):
        if number in ops:
            result = _double(value, wire_type, "gauge value")
            op = ops[number]
    return result, op


def _decode_histogram(data: bytes) -> float:
    sample = 0.0
    for number, wire_type, value in _fields(data):
        if number == 1:
            sample = _double(value, wire_type, "histogram value")
    return sample


def _decode_metric(data: bytes) -> MetricEvent:
    name = ""
    labels: dict[str, str] = {}
    payload: tuple[int, bytes] | None = None
    for number, wire_type, value in _fields(data):
        if number == 1:
            name = _text(value, wire_type, "metric name")
        elif number == 3:
            _expect(wire_type, _LENGTH, "label")
            key, text = _decode_label(value)
            labels[key] = text
        elif number in (4, 5, 6):
            _expect(wire_type, _LENGTH, "metric value")
            payload = (number, value)
    if payload is None:
        raise ValueError("no metric value")
    number, body = payload
    if number == 4:
        return MetricEvent(MetricKind.COUNTER, name, _decode_counter(body), labels)
    if number == 5:
        gauge_value, op = _decode_gauge(body)
        return MetricEvent(MetricKind.GAUGE, name, gauge_value, labels, op)
    return MetricEvent(MetricKind.HISTOGRAM, name, _decode_histogram(body), labels)


def decode_event(data: bytes) -> MetadataEvent | MetricEvent | None:
    """Decode one event message; None if it carries no event. Raises ValueError if malformed."""
    data = bytes(data)
    event: MetadataEvent | MetricEvent | None = None
    for number, wire_type, value in _fields(data):
        if number == 1:
            _expect(wire_type, _LENGTH, "metadata")
            event = _decode_metadata(value)
        elif number == 2:
            _expect(wire_type, _LENGTH, "metric")
            event = _decode_metric(value)
    return event


def read_delimited(buffer: bytearray) -> bytes | None:
    """Remove and return one length-prefixed message from ``buffer``, or None if incomplete."""
    try:
        size, pos = _read_varint(buffer, 0)
    except _Truncated:
        return None
    end = pos + size
    if end > len(buffer):
        return None
    message = bytes(buffer[pos:end])
    del buffer[:end]
    return message


def _varint(value: int) -> bytes:
    if value < 0:
        raise ValueError("varint must not be negative")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _tag(number: int, wire_type: int) -> bytes:
    return _varint((number << 3) | wire_type)


def _len_field(number: int, payload: bytes) -> bytes:
    return _tag(number, _LENGTH) + _varint(len(payload)) + payload


def _text_field(number: int, text: str) -> bytes:
    return _len_field(number, text.encode("utf-8"))


def _double_field(number: int, value: float) -> bytes:
    return _tag(number, _FIXED64) + struct.pack("<d", float(value))


def _encode_event(event: MetadataEvent | MetricEvent) -> bytes:
    """Encode an event as an event message."""
    if isinstance(event, MetadataEvent):
        body = _text_field(1, event.name) + _tag(2, _VARINT) + _varint(int(event.kind))
        if event.unit is not None:
            body += _text_field(3, event.unit)
        if event.description is not None:
            body += _text_field(4, event.description)
        return _len_field(1, body)
    if not isinstance(event, MetricEvent):
        raise TypeError(f"unsupported event type: {type(event).__name__}")
    body = _text_field(1, event.name)
    for key, value in sorted(event.labels.items()):
        body += _len_field(3, _text_field(1, key) + _text_field(2, value))
    kind = MetricKind(event.kind)
    if kind is MetricKind.COUNTER:
        counter = b"" if event.value is None else _tag(1, _VARINT) + _varint(int(event.value))
        body += _len_field(4, counter)
    elif kind is MetricKind.GAUGE:
        gauge = b""
        if event.value is not None:
            number = {GaugeOp.ABSOLUTE: 1, GaugeOp.INCREMENT: 2, GaugeOp.DECREMENT: 3}
            gauge = _double_field(number[event.gauge_op], event.value)
        body += _len_field(5, gauge)
    else:
        sample = b"" if event.value is None else _double_field(1, event.value)
        body += _len_field(6, sample)
    return _len_field(2, body)


def _encode_delimited(event: MetadataEvent | MetricEvent) -> bytes:
    """Encode an event with its length prefix, as sent over the wire."""
    message = _encode_event(event)
    return _varint(len(message)) + message


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid address: {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


class Client:
    """Keeps a connection to a metrics endpoint in the background and aggregates its events."""

    def __init__(self, address: str) -> None:
        self.address = address
        self._store = MetricStore()
        self._state = ClientState()
        self._state_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name="metricscope-client", daemon=True
        )
        self._thread.start()

    def state(self) -> ClientState:
        """The current connection state."""
        with self._state_lock:
            return self._state

    def get_metrics(self) -> list[MetricEntry]:
        """Every metric seen so far, in key order, with its unit and description."""
        return self._store.snapshot()

    def close(self) -> None:
        """Stop the background connection and wait briefly for it to finish."""
        self._stop.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=CONNECT_TIMEOUT + 1.0)

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _set_state(self, state: ClientState) -> None:
        with self._state_lock:
            self._state = state

    def _resolve(self) -> tuple:
        host, port = _split_address(self.address)
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        if not infos:
            raise OSError("no addresses")
        return infos[0]

    def _run(self) -> None:
        while not self._stop.is_set():
            self._set_state(ClientState())
            try:
                family, socktype, proto, _, sockaddr = self._resolve()
            except (OSError, ValueError, OverflowError):
                self._set_state(ClientState(False, _RESOLVE_FAILED))
                return
            sock = socket.socket(family, socktype, proto)
            try:
                sock.settimeout(CONNECT_TIMEOUT)
                sock.connect(sockaddr)
            except OSError:
                sock.close()
                self._backoff("error while connecting")
                continue
            with sock:
                self._observe(sock)
            if self._stop.is_set():
                return
            self._backoff("error while observing")

    def _backoff(self, message: str) -> None:
        self._set_state(
            ClientState(False, f"{message}, retrying in {int(RETRY_DELAY)} seconds...")
        )
        self._stop.wait(RETRY_DELAY)

    def _observe(self, sock: socket.socket) -> None:
        self._set_state(ClientState(connected=True))
        sock.settimeout(_POLL_INTERVAL)
        buffer = bytearray()
        while not self._stop.is_set():
            try:
                data = sock.recv(_READ_SIZE)
            except socket.timeout:
                continue
            except OSError as exc:
                print(f"read error: {exc!r}", file=sys.stderr)
                return
            if not data:
                return
            buffer += data
            self._drain(buffer)

    def _drain(self, buffer: bytearray) -> None:
        while True:
            try:
                message = read_delimited(buffer)
            except ValueError as exc:
                print(f"decode error: {exc}", file=sys.stderr)
                buffer.clear()
                return
            if message is None:
                return
            try:
                event = decode_event(message)
            except ValueError as exc:
                print(f"decode error: {exc}", file=sys.stderr)
                continue
            if event is not None:
                self._store.apply(event)