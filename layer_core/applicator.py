"""Write visibility and graphic overrides back to the host in one transaction."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from layer_core.colors import parse_hex_color
from layer_core.model import Entity, EntityKind, OverrideSet, is_valid_line_weight, unhandled_kind
from layer_core.target import (
    ApplyError,
    OverrideRecord,
    RenderTarget,
    TargetEntityError,
    View,
    resolve_pattern_id,
    write_view,
)

LOGGER = logging.getLogger("CADLayerManager.Applicator")

DEFAULT_TRANSACTION_NAME = "Apply Layer Graphics"


@dataclass
class EntityChange:
    """Desired end state for one entity. ``halftone`` only applies to containers."""

    entity: Entity
    visible: bool
    overrides: OverrideSet
    halftone: bool = False


@dataclass
class ApplyResult:
    view: View
    applied: List[Entity] = field(default_factory=list)
    skipped: List[Entity] = field(default_factory=list)


class OverrideApplicator:
    def __init__(self, target: RenderTarget, logger: Optional[logging.Logger] = None) -> None:
        self._target = target
        self._logger = logger or LOGGER

    # Public API ---------------------------------------------------------

    def build_record(self, change: EntityChange) -> OverrideRecord:
        """Build a fresh host record; anything not set here is cleared on write."""

        record = OverrideRecord()
        desired = change.overrides
        color = parse_hex_color(desired.color) if desired.color is not None else None
        if color is not None:
            record.line_color = color
        if is_valid_line_weight(desired.line_weight):
            record.line_weight = int(desired.line_weight)  # type: ignore[arg-type]
        if desired.line_pattern:
            pattern_id = resolve_pattern_id(self._target, desired.line_pattern)
            if pattern_id is None:
                self._logger.debug("Line pattern %r not found; writing no pattern", desired.line_pattern)
            record.line_pattern_id = pattern_id
        kind = change.entity.kind
        if kind is EntityKind.CONTAINER:
            record.halftone = bool(change.halftone)
        elif kind is EntityKind.SUB_ITEM:
            record.halftone = False
        else:
            raise unhandled_kind(change.entity)
        return record

    def apply(
        self,
        view: View,
        changes: Iterable[EntityChange],
        *,
        transaction_name: str = DEFAULT_TRANSACTION_NAME,
    ) -> ApplyResult:
        """Apply *changes*, redirecting to the view template when present.

        Entities the host refuses individually are skipped. Any other failure
        rolls back the whole batch and raises ApplyError.
        """

        changes = list(changes)
        destination = write_view(self._target, view)
        result = ApplyResult(view=destination)
        transaction = self._target.begin_transaction(transaction_name)
        try:
            for change in changes:
                if self._apply_one(destination, change):
                    result.applied.append(change.entity)
                else:
                    result.skipped.append(change.entity)
            transaction.commit()
        except Exception as exc:
            self._rollback(transaction)
            self._logger.error("Failed to apply %s; rolled back %d change(s)", transaction_name, len(changes), exc_info=exc)
            raise ApplyError(f"{transaction_name} failed: {exc}") from exc
        self._logger.debug(
            "%s: applied %d, skipped %d", transaction_name, len(result.applied), len(result.skipped)
        )
        return result

    # Internal helpers ---------------------------------------------------

    def _apply_one(self, destination: View, change: EntityChange) -> bool:
        entity = change.entity
        if entity.external_id is None:
            self._logger.debug("Skipping %s without a host id", entity.name)
            return False
        record = self.build_record(change)
        was_hidden = self._read_hidden(destination, entity)
        try:
            self._target.set_hidden(destination, entity.external_id, not change.visible)
        except TargetEntityError as exc:
            self._logger.debug("Skipping %s: %s", entity.name, exc)
            return False
        try:
            self._target.set_overrides(destination, entity.external_id, record)
        except TargetEntityError as exc:
            # A skipped entity must be left as it was.
            self._logger.debug("Skipping %s after visibility write: %s", entity.name, exc)
            self._restore_hidden(destination, entity, was_hidden)
            return False
        return True

    def _read_hidden(self, destination: View, entity: Entity) -> Optional[bool]:
        try:
            return bool(self._target.is_hidden(destination, entity.external_id))
        except TargetEntityError:
            return None

    def _restore_hidden(self, destination: View, entity: Entity, was_hidden: Optional[bool]) -> None:
        if was_hidden is None:
            self._logger.warning("Visibility of %s changed but its overrides could not be written", entity.name)
            return
        try:
            self._target.set_hidden(destination, entity.external_id, was_hidden)
        except TargetEntityError as exc:
            self._logger.warning("Could not restore visibility of %s: %s", entity.name, exc)

    def _rollback(self, transaction) -> None:
        try:
            transaction.rollback()
        except Exception as exc:  # pragma: no cover - host specific
            self._logger.warning("Rollback failed: %s", exc)
