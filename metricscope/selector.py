"""Keeps track of the highlighted row in a scrolling list."""

from __future__ import annotations


class Selector:
    """The selected index within a list of a known length, wrapping at both ends."""

    def __init__(self) -> None:
        self.length = 0
        self.selected: int | None = 0

    def set_length(self, length: int) -> None:
        """Update the list length; shrinking it moves the selection to the top."""
        if length < self.length:
            self.selected = 0
        self.length = length

    def _last(self) -> int:
        if self.length == 0:
            raise IndexError("selector has no items")
        return self.length - 1

    def top(self) -> None:
        """Select the first item."""
        self.selected = 0

    def bottom(self) -> None:
        """Select the last item."""
        self.selected = self._last()

    def next(self) -> None:
        """Move down one item, wrapping to the top after the last."""
        last = self._last()
        if self.selected is None or self.selected >= last:
            self.selected = 0
        else:
            self.selected += 1

    def previous(self) -> None:
        """Move up one item, wrapping to the bottom before the first."""
        last = self._last()
        if self.selected is None:
            self.selected = 0
        elif self.selected == 0:
            self.selected = last
        else:
            self.selected -= 1