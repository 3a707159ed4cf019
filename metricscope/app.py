"""The terminal observer: draws collected metrics and reacts to key presses."""

from __future__ import annotations

import enum
import queue
import shutil
import sys
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager, suppress
from datetime import datetime
from typing import BinaryIO, TextIO, Union

from metricscope.client import Client
from metricscope.keys import CompositeKey, MetricKind
from metricscope.selector import Selector
from metricscope.store import ClientState, Summary
from metricscope.units import Unit, float_to_displayable, int_to_displayable

DEFAULT_ADDRESS = "127.0.0.1:5000"

_RESET = "\x1b[0m"
_BOLD = "\x1b[1m"
_RED = "\x1b[31m"
_GREEN = "\x1b[32m"
_HIGHLIGHT = "\x1b[1;96m"

Segment = tuple[str, str]


class Key(enum.Enum):
    """Special keys recognised on the terminal."""

    UP = "up"
    DOWN = "down"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    ESCAPE = "escape"


KeyPress = Union[str, Key]

_SEQUENCES = {
    b"A": Key.UP,
    b"B": Key.DOWN,
    b"5~": Key.PAGE_UP,
    b"6~": Key.PAGE_DOWN,
}


def _read_char(first: bytes, stream: BinaryIO) -> str:
    lead = first[0]
    extra = 3 if lead >= 0xF0 else 2 if lead >= 0xE0 else 1 if lead >= 0xC0 else 0
    data = first + (stream.read(extra) if extra else b"")
    return data.decode("utf-8", errors="replace")


def _keys(stream: BinaryIO) -> Iterator[KeyPress]:
    """Decode key presses from raw terminal input."""
    pending = b""
    while True:
        byte, pending = (pending, b"") if pending else (stream.read(1), b"")
        if not byte:
            return
        if byte != b"\x1b":
            yield _read_char(byte, stream)
            continue
        follow = stream.read(1)
        if follow not in (b"[", b"O"):
            yield Key.ESCAPE
            pending = follow
            continue
        sequence = b""
        while True:
            part = stream.read(1)
            if not part:
                return
            sequence += part
            if 0x40 <= part[0] <= 0x7E:
                break
        key = _SEQUENCES.get(sequence)
        if key is not None:
            yield key


_END = object()


class InputEvents:
    """Reads key presses on a background thread, keeping at most one pending."""

    poll_interval = 1.0

    def __init__(self, stream: BinaryIO | None = None) -> None:
        self._queue: queue.Queue = queue.Queue(maxsize=1)
        self._finished = False
        source = stream if stream is not None else sys.stdin.buffer
        thread = threading.Thread(target=self._pump, args=(source,), daemon=True)
        thread.start()

    def _pump(self, stream: BinaryIO) -> None:
        for key in _keys(stream):
            # A full queue drops the key; the user can press it again.
            with suppress(queue.Full):
                self._queue.put_nowait(key)
        self._queue.put(_END)

    def next(self) -> KeyPress | None:
        """Wait up to a second for a key; None on timeout. Raises EOFError once input ends."""
        if self._finished:
            raise EOFError("input event channel disconnected")
        try:
            item = self._queue.get(timeout=self.poll_interval)
        except queue.Empty:
            return None
        if item is _END:
            self._finished = True
            raise EOFError("input event channel disconnected")
        return item


def _display_name(key: CompositeKey) -> str:
    labels = [f"{label.key} = {label.value}" for label in key.key.labels]
    if not labels:
        return key.key.name
    return f"{key.key.name} [{', '.join(labels)}]"


def _display_value(kind: MetricKind, value: int | float | Summary, unit: Unit | None) -> str:
    if kind is MetricKind.COUNTER:
        return f"total: {int_to_displayable(int(value), unit)}"
    if kind is MetricKind.GAUGE:
        return f"current: {float_to_displayable(float(value), unit)}"
    quantiles = [value.quantile(q) for q in (0.5, 0.99, 0.999)]
    if value.count == 0 or any(q is None for q in quantiles):
        raise ValueError("histogram has no samples")
    p50, p99, p999 = quantiles
    return (
        f"min: {float_to_displayable(value.min, unit)} "
        f"p50: {float_to_displayable(p50, unit)} "
        f"p99: {float_to_displayable(p99, unit)} "
        f"p999: {float_to_displayable(p999, unit)} "
        f"max: {float_to_displayable(value.max, unit)}"
    )


def render_metric_line(
    key: CompositeKey, value: int | float | Summary, unit: Unit | None, line_width: int
) -> str:
    """One list row: the metric name and labels, padded, then its value."""
    name = _display_name(key)
    shown = _display_value(MetricKind(key.kind), value, unit)
    space = max(0, line_width - len(name) - len(shown))
    return f"{name}{' ' * space}{shown}"


def _state_segments(state: ClientState) -> list[Segment]:
    if state.connected:
        return [("state: ", ""), ("connected", _GREEN)]
    segments = [("state: ", ""), ("disconnected", _RED)]
    if state.message is not None:
        segments += [(" ", ""), (state.message, "")]
    return segments


def header_state_text(state: ClientState) -> str:
    """The connection state line shown in the header."""
    return "".join(text for text, _ in _state_segments(state))


def _fit(segments: Sequence[Segment], width: int, fill: str = " ") -> str:
    out = []
    used = 0
    for text, style in segments:
        if used >= width:
            break
        text = text[: width - used]
        used += len(text)
        out.append(f"{style}{text}{_RESET}" if style else text)
    out.append(fill * (width - used))
    return "".join(out)


def _box(
    title: Sequence[Segment], rows: Sequence[Sequence[Segment]], width: int, height: int
) -> list[str]:
    if width < 2 or height < 2:
        return [" " * width] * height
    inner = width - 2
    lines = ["┌" + _fit(title, inner, "─") + "┐"]
    for index in range(height - 2):
        row = rows[index] if index < len(rows) else []
        lines.append("│" + _fit(row, inner) + "│")
    lines.append("└" + "─" * inner + "┘")
    return lines


def _render_screen(
    client: Client, selector: Selector, columns: int, lines: int, now: datetime | None = None
) -> str:
    width = max(columns - 2, 0)
    header_height = min(4, max(lines - 2, 0))
    body_height = max(lines - 2 - header_height, 0)

    line_width = max(width - 6, 0)
    items = [
        render_metric_line(entry.key, entry.value, entry.unit, line_width)
        for entry in client.get_metrics()
        if not (isinstance(entry.value, Summary) and entry.value.count == 0)
    ]
    selector.set_length(len(items))

    stamp = (now or datetime.now()).strftime(" (%Y/%m/%d %I:%M:%S %p)")
    header = _box(
        [("metrics-observer", _BOLD), (stamp, "")],
        [
            _state_segments(client.state()),
            [("controls: ", _BOLD), ("up/down = scroll, q = quit", "")],
        ],
        width,
        header_height,
    )

    visible = max(body_height - 2, 0)
    selected = selector.selected
    offset = 0 if selected is None or visible == 0 else max(0, selected - visible + 1)
    rows: list[list[Segment]] = []
    for index, item in enumerate(items[offset : offset + visible], start=offset):
        if index == selected:
            rows.append([(">> " + item, _HIGHLIGHT)])
        else:
            rows.append([("   " + item, "")])
    body = _box([("observed metrics", "")], rows, width, body_height)

    blank = " " * columns
    screen = [blank, *(f" {line} " for line in header), *(f" {line} " for line in body)]
    screen += [blank] * (lines - len(screen))
    return "\x1b[H" + "\r\n".join(screen[:lines])


@contextmanager
def _terminal(stdin: TextIO, stdout: TextIO) -> Iterator[None]:
    if not stdin.isatty():
        yield
        return
    import termios
    import tty

    fd = stdin.fileno()
    saved = termios.tcgetattr(fd)
    tty.setraw(fd)
    stdout.write("\x1b[?1049h\x1b[?25l\x1b[2J")
    stdout.flush()
    try:
        yield
    finally:
        stdout.write(_RESET + "\x1b[?25h\x1b[?1049l")
        stdout.flush()
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the observer against the address given as the first argument."""
    args = list(sys.argv[1:] if argv is None else argv)
    address = args[0] if args else DEFAULT_ADDRESS
    out = sys.stdout
    actions = {
        Key.UP: Selector.previous,
        Key.DOWN: Selector.next,
        Key.PAGE_UP: Selector.top,
        Key.PAGE_DOWN: Selector.bottom,
    }
    status = 0
    with _terminal(sys.stdin, out), Client(address) as client:
        events = InputEvents()
        selector = Selector()
        while True:
            size = shutil.get_terminal_size()
            out.write(_render_screen(client, selector, size.columns, size.lines))
            out.flush()
            try:
                key = events.next()
            except EOFError as exc:
                status = 1
                message = str(exc)
                break
            if key == "q":
                break
            action = actions.get(key) if isinstance(key, Key) else None
            if action is not None:
                with suppress(IndexError):
                    action(selector)
    if status:
        print(f"Error: {message}", file=sys.stderr)
    return status


if __name__ == "__main__":
    sys.exit(main())