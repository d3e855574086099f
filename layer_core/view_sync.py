"""Copy container and layer graphics from one view onto other views."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set

from layer_core.applicator import EntityChange, OverrideApplicator
from layer_core.collector import collect_hierarchy
from layer_core.model import Container, Entity, EntityKind, ExternalId, iter_entities, unhandled_kind
from layer_core.target import ApplyError, RenderTarget, TargetEntityError, View, write_view

LOGGER = logging.getLogger("CADLayerManager.ViewSync")

TRANSACTION_NAME = "Apply DWG Settings to Views"


@dataclass
class ViewSyncEntry:
    view_name: str
    applied: List[str] = field(default_factory=list)
    not_found: List[str] = field(default_factory=list)


@dataclass
class ViewSyncReport:
    entries: List[ViewSyncEntry] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return sum(len(entry.applied) for entry in self.entries)

    def format(self) -> str:
        lines: List[str] = []
        for entry in self.entries:
            lines.append(f"View: {entry.view_name}")
            if entry.applied:
                lines.append("  Applied: " + ", ".join(entry.applied))
            if entry.not_found:
                lines.append("  Not found in view: " + ", ".join(entry.not_found))
        return "\n".join(lines)


class ViewSettingsCopier:
    """Push the visibility and overrides of a source view's DWGs to target views."""

    def __init__(self, target: RenderTarget, logger: Optional[logging.Logger] = None) -> None:
        self._target = target
        self._logger = logger or LOGGER
        self._applicator = OverrideApplicator(target, logger=self._logger)

    def apply_to_views(
        self,
        source_view: View,
        target_views: Sequence[View],
        containers: Optional[Sequence[Container]] = None,
    ) -> ViewSyncReport:
        """Copy *containers* (default: everything collected from *source_view*).

        Only entities that exist in a target view are written there. Runs in a
        single transaction; ApplyError is raised after a rollback.
        """

        source = list(containers) if containers is not None else collect_hierarchy(self._target, source_view)
        report = ViewSyncReport()
        transaction = self._target.begin_transaction(TRANSACTION_NAME)
        try:
            for view in target_views:
                report.entries.append(self._copy_into(view, source))
            transaction.commit()
        except Exception as exc:
            try:
                transaction.rollback()
            except Exception as rollback_exc:  # pragma: no cover - host specific
                self._logger.warning("Rollback failed: %s", rollback_exc)
            self._logger.error("Applying settings to %d view(s) failed", len(target_views), exc_info=exc)
            raise ApplyError(f"{TRANSACTION_NAME} failed: {exc}") from exc
        self._logger.info("Applied DWG settings to %d view(s)", len(report.entries))
        return report

    def _copy_into(self, view: View, source: Sequence[Container]) -> ViewSyncEntry:
        entry = ViewSyncEntry(view_name=self._target.view_name(view))
        present = self._present_ids(view)
        destination = write_view(self._target, view)
        for container in source:
            if container.external_id not in present:
                entry.not_found.append(container.name)
                continue
            for entity in iter_entities([container]):
                if entity.external_id is None or entity.external_id not in present:
                    continue
                self._write(destination, entity)
            entry.applied.append(container.name)
        return entry

    def _present_ids(self, view: View) -> Set[ExternalId]:
        present: Set[ExternalId] = set()
        for host in self._target.enumerate_entities(view):
            for item in (host, *host.children):
                try:
                    present.add(item.external_id)
                except TypeError:
                    continue
        return present

    def _write(self, destination: View, entity: Entity) -> None:
        if entity.kind is EntityKind.CONTAINER:
            halftone = entity.halftone
        elif entity.kind is EntityKind.SUB_ITEM:
            halftone = False
        else:
            raise unhandled_kind(entity)
        change = EntityChange(entity=entity, visible=entity.visible, overrides=entity.overrides, halftone=halftone)
        record = self._applicator.build_record(change)
        try:
            self._target.set_hidden(destination, entity.external_id, not entity.visible)
            self._target.set_overrides(destination, entity.external_id, record)
        except TargetEntityError as exc:
            self._logger.debug("Skipping %s in %s: %s", entity.name, self._target.view_name(destination), exc)
