"""Boundary between the layer manager and the host document it drives."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Hashable, Iterable, Optional, Protocol, Sequence, Tuple

from PyQt6.QtGui import QColor

from layer_core.model import ExternalId

View = Any
PatternId = Hashable

NO_LINE_WEIGHT = -1


class TargetEntityError(RuntimeError):
    """Raised by a host for one entity it cannot read or modify (locked, deleted)."""


class ApplyError(RuntimeError):
    """A batch failed and every change in it was rolled back."""


@dataclass
class OverrideRecord:
    """Host-side override record; an invalid colour, no pattern id or a
    non-positive weight each mean "no override"."""

    line_color: QColor = field(default_factory=QColor)
    line_pattern_id: Optional[PatternId] = None
    line_weight: int = NO_LINE_WEIGHT
    halftone: bool = False

    def copy(self) -> "OverrideRecord":
        return OverrideRecord(
            line_color=QColor(self.line_color),
            line_pattern_id=self.line_pattern_id,
            line_weight=self.line_weight,
            halftone=self.halftone,
        )


@dataclass(frozen=True)
class HostEntity:
    """One enumerated container (with children) or sub-item as the host reports it."""

    handle: Any
    name: Optional[str]
    children: Tuple["HostEntity", ...] = ()

    @property
    def external_id(self) -> ExternalId:
        return ExternalId.coerce(self.handle)


@dataclass(frozen=True)
class ProjectInfo:
    title: str = ""
    path: Optional[Path] = None
    central_path: Optional[Path] = None
    is_family: bool = False


class Transaction(Protocol):
    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class RenderTarget(Protocol):
    """Operations the layer manager needs from the host document."""

    def enumerate_entities(self, view: View) -> Sequence[HostEntity]: ...

    def is_hidden(self, view: View, external_id: ExternalId) -> bool: ...

    def set_hidden(self, view: View, external_id: ExternalId, hidden: bool) -> None: ...

    def get_overrides(self, view: View, external_id: ExternalId) -> OverrideRecord: ...

    def set_overrides(self, view: View, external_id: ExternalId, record: OverrideRecord) -> None: ...

    def resolve_template(self, view: View) -> Optional[View]: ...

    def find_pattern_id(self, name: str) -> Optional[PatternId]: ...

    def pattern_name(self, pattern_id: PatternId) -> Optional[str]: ...

    def pattern_names(self) -> Iterable[str]: ...

    def begin_transaction(self, name: str) -> Transaction: ...

    def project_info(self) -> ProjectInfo: ...

    def view_name(self, view: View) -> str: ...


def write_view(target: RenderTarget, view: View) -> View:
    """Return the view that receives writes: its template when one governs it."""

    template = target.resolve_template(view)
    return template if template is not None else view


def resolve_pattern_id(target: RenderTarget, name: Optional[str]) -> Optional[PatternId]:
    """Look up a line pattern by case-insensitive name; unknown names give None."""

    if not name or not name.strip():
        return None
    pattern_id = target.find_pattern_id(name)
    if pattern_id is not None:
        return pattern_id
    wanted = name.strip().casefold()
    for candidate in target.pattern_names():
        if candidate.casefold() == wanted:
            return target.find_pattern_id(candidate)
    return None
