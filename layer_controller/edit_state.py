"""State behind the line-graphics edit dialog (colour, pattern, weight)."""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from layer_core.colors import normalize_hex_color
from layer_core.edits import UNSPECIFIED, OverrideEdit
from layer_core.model import MAX_LINE_WEIGHT, MIN_LINE_WEIGHT, Entity
from layer_core.resolver import OverrideSummary, TriState
from layer_core.target import NO_LINE_WEIGHT

NO_OVERRIDE = "<No Override>"
VARIES = "<Varies>"
WEIGHT_CHOICES = tuple(str(weight) for weight in range(MIN_LINE_WEIGHT, MAX_LINE_WEIGHT + 1))


def _initial_choice(state: TriState) -> str:
    if state.varies:
        return VARIES
    if state.value is None:
        return NO_OVERRIDE
    return str(state.value)


class OverrideEditState:
    """Tracks which properties the user actually changed.

    Untouched properties stay UNSPECIFIED and are left alone on commit.
    Picking ``<Varies>`` again puts a property back to untouched; picking
    ``<No Override>`` clears it. ``request_clear`` discards every pending
    change and clears everything, halftone included.
    """

    def __init__(self, summary: OverrideSummary, pattern_names: Iterable[str], batch: Sequence[Entity] = ()) -> None:
        self.batch: List[Entity] = list(batch)
        self.summary = summary
        self._patterns = sorted({name for name in pattern_names if name}, key=str.casefold)
        self._color = UNSPECIFIED
        self._pattern = UNSPECIFIED
        self._weight = UNSPECIFIED
        self._clear_all = False

    # Display ------------------------------------------------------------

    @property
    def initial_color(self) -> Optional[str]:
        return self.summary.color.value if self.summary.color.has_override else None

    @property
    def color_varies(self) -> bool:
        return self.summary.color.varies

    def pattern_choices(self) -> List[str]:
        choices = [NO_OVERRIDE]
        if self.summary.line_pattern.varies:
            choices.append(VARIES)
        choices.extend(self._patterns)
        return choices

    def initial_pattern_choice(self) -> str:
        return _initial_choice(self.summary.line_pattern)

    def weight_choices(self) -> List[str]:
        choices = [NO_OVERRIDE]
        if self.summary.line_weight.varies:
            choices.append(VARIES)
        choices.extend(WEIGHT_CHOICES)
        return choices

    def initial_weight_choice(self) -> str:
        return _initial_choice(self.summary.line_weight)

    # Edits --------------------------------------------------------------

    def choose_color(self, value: Optional[str]) -> None:
        if value is None:
            self._color = None
            return
        normalized = normalize_hex_color(value)
        if normalized is None:
            raise ValueError(f"Invalid colour {value!r}; expected #RRGGBB")
        self._color = normalized

    def choose_pattern(self, choice: str) -> None:
        if choice == VARIES:
            self._pattern = UNSPECIFIED
            return
        if choice == NO_OVERRIDE:
            self._pattern = None
            return
        wanted = choice.strip().casefold()
        for name in self._patterns:
            if name.casefold() == wanted:
                self._pattern = name
                return
        raise ValueError(f"Unknown line pattern {choice!r}")

    def choose_weight(self, choice) -> None:
        if choice == VARIES:
            self._weight = UNSPECIFIED
            return
        if choice == NO_OVERRIDE:
            self._weight = NO_LINE_WEIGHT
            return
        try:
            weight = int(str(choice).strip())
        except ValueError as exc:
            raise ValueError(f"Invalid line weight {choice!r}") from exc
        if not MIN_LINE_WEIGHT <= weight <= MAX_LINE_WEIGHT:
            raise ValueError(f"Line weight must be between {MIN_LINE_WEIGHT} and {MAX_LINE_WEIGHT}")
        self._weight = weight

    def request_clear(self) -> None:
        self._clear_all = True

    @property
    def dirty(self) -> bool:
        return not self.to_edit().is_noop()

    def to_edit(self) -> OverrideEdit:
        if self._clear_all:
            return OverrideEdit.clear()
        return OverrideEdit(color=self._color, line_pattern=self._pattern, line_weight=self._weight)
