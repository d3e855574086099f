"""Change sets produced by the line-graphics edit surface."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from layer_core.colors import normalize_hex_color
from layer_core.model import OverrideSet
from layer_core.target import NO_LINE_WEIGHT


class _Unspecified:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSPECIFIED"

    def __bool__(self) -> bool:
        return False


UNSPECIFIED: Any = _Unspecified()


@dataclass(frozen=True)
class OverrideEdit:
    """Properties the user explicitly touched.

    ``UNSPECIFIED`` leaves the host value alone. ``None`` for colour or
    pattern and ``-1`` for weight clear that single property. ``clear_all``
    removes every override and turns halftone off.
    """

    color: Any = UNSPECIFIED
    line_pattern: Any = UNSPECIFIED
    line_weight: Any = UNSPECIFIED
    clear_all: bool = False

    @classmethod
    def clear(cls) -> "OverrideEdit":
        return cls(clear_all=True)

    def is_noop(self) -> bool:
        return (
            not self.clear_all
            and self.color is UNSPECIFIED
            and self.line_pattern is UNSPECIFIED
            and self.line_weight is UNSPECIFIED
        )

    def merge_onto(self, current: OverrideSet) -> OverrideSet:
        """Desired overrides for one entity whose effective overrides are *current*."""

        if self.clear_all:
            return OverrideSet()
        color: Optional[str] = current.color
        if self.color is not UNSPECIFIED:
            color = normalize_hex_color(self.color) if self.color is not None else None
        pattern: Optional[str] = current.line_pattern
        if self.line_pattern is not UNSPECIFIED:
            pattern = self.line_pattern or None
        weight: Optional[int] = current.line_weight
        if self.line_weight is not UNSPECIFIED:
            weight = NO_LINE_WEIGHT if self.line_weight is None else int(self.line_weight)
        return OverrideSet(color=color, line_pattern=pattern, line_weight=weight)
