"""Summarise graphic overrides across a batch of selected entities.

Each property is reduced to a tri-state: every entity has no override,
every entity has the same override, or the entities disagree. The edit
surface uses the summary to pre-fill its controls and to decide which
values it may leave untouched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, Iterable, List, Optional, Sequence, TypeVar

from layer_core.colors import effective_color
from layer_core.model import Entity, EntityKind, OverrideSet, is_valid_line_weight, unhandled_kind
from layer_core.target import RenderTarget, TargetEntityError, View

LOGGER = logging.getLogger("CADLayerManager.Resolver")

T = TypeVar("T")


@dataclass(frozen=True)
class TriState(Generic[T]):
    value: Optional[T] = None
    varies: bool = False

    @classmethod
    def uniform(cls, value: Optional[T]) -> "TriState[T]":
        return cls(value=value)

    @property
    def is_uniform(self) -> bool:
        return not self.varies

    @property
    def has_override(self) -> bool:
        return not self.varies and self.value is not None


VARIES: TriState = TriState(varies=True)
UNIFORM_NONE: TriState = TriState()


@dataclass(frozen=True)
class OverrideSummary:
    color: TriState = UNIFORM_NONE
    line_pattern: TriState = UNIFORM_NONE
    line_weight: TriState = UNIFORM_NONE
    count: int = 0


def effective_overrides(target: RenderTarget, view: View, entity: Entity) -> OverrideSet:
    """Read the overrides of *entity* that actually take effect on the host."""

    if entity.external_id is None:
        return OverrideSet()
    record = target.get_overrides(view, entity.external_id)
    pattern = None
    if record.line_pattern_id is not None:
        pattern = target.pattern_name(record.line_pattern_id)
    weight = record.line_weight if is_valid_line_weight(record.line_weight) else None
    return OverrideSet(color=effective_color(record.line_color), line_pattern=pattern, line_weight=weight)


def summarize(override_sets: Iterable[OverrideSet]) -> OverrideSummary:
    """Fold override sets into a summary, seeding from the first one."""

    color: TriState = UNIFORM_NONE
    pattern: TriState = UNIFORM_NONE
    weight: TriState = UNIFORM_NONE
    count = 0
    for overrides in override_sets:
        if count == 0:
            color = TriState.uniform(overrides.color)
            pattern = TriState.uniform(overrides.line_pattern)
            weight = TriState.uniform(overrides.line_weight)
        else:
            if not color.varies and color.value != overrides.color:
                color = VARIES
            if not pattern.varies and pattern.value != overrides.line_pattern:
                pattern = VARIES
            if not weight.varies and weight.value != overrides.line_weight:
                weight = VARIES
        count += 1
    return OverrideSummary(color=color, line_pattern=pattern, line_weight=weight, count=count)


def read_overrides(target: RenderTarget, view: View, entities: Sequence[Entity]) -> List[OverrideSet]:
    """Effective overrides per entity; unreadable entities count as no override."""

    result: List[OverrideSet] = []
    for entity in entities:
        try:
            result.append(effective_overrides(target, view, entity))
        except TargetEntityError as exc:
            LOGGER.debug("Could not read overrides for %s: %s", entity.name, exc)
            result.append(OverrideSet())
    return result


def batch_kind(entities: Sequence[Entity]) -> Optional[EntityKind]:
    """Kind shared by every entity of a batch; mixed batches are rejected."""

    kind: Optional[EntityKind] = None
    for entity in entities:
        if entity.kind is EntityKind.CONTAINER:
            current = EntityKind.CONTAINER
        elif entity.kind is EntityKind.SUB_ITEM:
            current = EntityKind.SUB_ITEM
        else:
            raise unhandled_kind(entity)
        if kind is None:
            kind = current
        elif kind is not current:
            raise ValueError("Cannot summarise containers and sub-items together")
    return kind


def resolve_overrides(target: RenderTarget, view: View, entities: Sequence[Entity]) -> OverrideSummary:
    batch_kind(entities)
    return summarize(read_overrides(target, view, entities))
