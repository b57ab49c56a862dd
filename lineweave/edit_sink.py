"""Collects placement edits and applies them to a source buffer."""
from __future__ import annotations
from typing import Iterator, List, Sequence

from .types import Edit


class EditSink:
    """Append-only list of edits in emission order."""

    def __init__(self) -> None:
        self.edits: List[Edit] = []

    def add(self, edit: Edit) -> None:
        self.edits.append(edit)

    def __iter__(self) -> Iterator[Edit]:
        return iter(self.edits)

    def __len__(self) -> int:
        return len(self.edits)

    def apply(self, source: str) -> str:
        return apply_edits(source, self.edits)


def apply_edits(source: str, edits: Sequence[Edit]) -> str:
    """
    Returns ``source`` with every edit applied.

    Edits are applied from the highest offset down so earlier offsets stay
    valid. Overlapping edits are rejected.

    Raises:
        ValueError: If two edits overlap or an edit falls outside the buffer.
    """
    out = source
    last_start = len(source) + 1
    for edit in sorted(edits, key=lambda e: (e.offset, e.length), reverse=True):
        end = edit.offset + edit.length
        if edit.offset < 0 or end > len(source):
            raise ValueError(f"Edit at offset {edit.offset} falls outside the buffer")
        if end > last_start:
            raise ValueError(f"Overlapping edits at offset {edit.offset}")
        out = out[: edit.offset] + edit.text + out[end:]
        last_start = edit.offset
    return out
