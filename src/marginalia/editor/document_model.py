"""The document held by the editor buffer."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(slots=True)
class DocumentState:
    """Text of the open document plus where it lives on disk.

    ``version`` increases with every committed change, loads included, so a
    caller holding an older value knows the buffer moved on.
    """

    text: str = ""
    path: Optional[Path] = None
    dirty: bool = False
    version: int = 0

    def __post_init__(self) -> None:
        if self.path is not None and not isinstance(self.path, Path):
            self.path = Path(self.path)

    def update_text(self, new_text: str, *, mark_dirty: bool = True) -> None:
        self.text = new_text
        self.version += 1
        if mark_dirty:
            self.dirty = True
