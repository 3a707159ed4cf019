"""Label filtering: deciding which span fields become metric labels."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from metricscope.keys import Label


class LabelFilter(ABC):
    """Decides whether a span field should be included as a label."""

    @abstractmethod
    def should_include_label(self, label: Label) -> bool:
        """Return True if ``label`` should be added to the key."""


class IncludeAll(LabelFilter):
    """A filter that allows every label."""

    def should_include_label(self, label: Label) -> bool:
        return True

    def __eq__(self, other: object) -> bool:
        return isinstance(other, IncludeAll)

    def __hash__(self) -> int:
        return hash(IncludeAll)

    def __repr__(self) -> str:
        return "IncludeAll()"


class Allowlist(LabelFilter):
    """A filter that only allows labels whose key is in a fixed set of names."""

    def __init__(self, allowed: Iterable[str]) -> None:
        self.label_names = frozenset(str(name) for name in allowed)

    def should_include_label(self, label: Label) -> bool:
        return label.key in self.label_names

    def __repr__(self) -> str:
        return f"Allowlist({sorted(self.label_names)!r})"