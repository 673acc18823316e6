"""Half-open character spans shared by the annotation and editor layers."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True, frozen=True)
class TextRange:
    """Half-open ``[start, end)`` span of absolute character offsets.

    Negative offsets are raised to zero and reversed bounds are swapped, so a
    constructed range is always well formed. Upper bounds depend on the document
    and are applied with :meth:`clamp`.
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        start = _coerce_offset(self.start, "start")
        end = _coerce_offset(self.end, "end")
        if end < start:
            start, end = end, start
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @property
    def width(self) -> int:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def to_dict(self) -> dict[str, int]:
        return {"from": self.start, "to": self.end}

    def overlaps(self, start: int, end: int) -> bool:
        """Return ``True`` when ``[start, end)`` intersects this range.

        Touching either boundary does not count. A caret (``start == end``)
        strictly inside the range does.
        """

        return start < self.end and end > self.start

    def clamp(self, length: int) -> TextRange:
        start, end = clamp_span(self.start, self.end, length)
        if (start, end) == (self.start, self.end):
            return self
        return TextRange(start, end)

    @classmethod
    def from_value(cls, value: Any, *, fallback: tuple[int, int] | None = None) -> TextRange:
        """Coerce a range, ``from``/``to`` mapping, pair or ``start``/``end`` object."""

        if isinstance(value, TextRange):
            return value
        if value is None:
            if fallback is None:
                raise ValueError("A range value is required")
            return cls(*fallback)
        if isinstance(value, Mapping):
            start = value.get("from", value.get("start"))
            end = value.get("to", value.get("end"))
            if start is None or end is None:
                if fallback is None:
                    raise ValueError("Range mappings need 'from' and 'to' keys")
                start = fallback[0] if start is None else start
                end = fallback[1] if end is None else end
            return cls(start, end)
        if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            if len(value) != 2:
                raise ValueError("Range pairs must have exactly two entries")
            return cls(value[0], value[1])
        start = getattr(value, "start", None)
        end = getattr(value, "end", None)
        if start is None or end is None:
            raise TypeError(f"Cannot build a TextRange from {type(value).__name__}")
        return cls(start, end)


def _coerce_offset(value: Any, label: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Range {label} must be an integer, got {value!r}") from exc
    return max(0, number)


def clamp_span(start: int, end: int, length: int) -> tuple[int, int]:
    """Clamp ``(start, end)`` into ``[0, length]`` keeping ``end >= start``."""

    length = max(0, int(length))
    start = max(0, min(int(start), length))
    end = max(start, min(int(end), length))
    return start, end


__all__ = ["TextRange", "clamp_span"]
