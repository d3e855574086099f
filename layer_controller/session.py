"""Session controller: owns the canonical DWG/layer hierarchy for one view.

Every user action (click, checkbox, halftone, line graphics, save, load,
apply to views) goes through here. After each batch the filtered view is
re-derived from the canonical hierarchy and ``on_change`` is invoked so the
UI can redraw.
"""
from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from layer_core.applicator import ApplyResult, EntityChange, OverrideApplicator
from layer_core.collector import collect_hierarchy
from layer_core.colors import normalize_hex_color
from layer_core.log_config import configure_logger
from layer_core.model import (
    Container,
    Entity,
    EntityKey,
    EntityKind,
    OverrideSet,
    build_parent_index,
    identity_key,
    is_valid_line_weight,
    iter_entities,
    sort_hierarchy,
    unhandled_kind,
)
from layer_core.notices import NotifyFn, logging_notify
from layer_core.resolver import batch_kind, read_overrides, resolve_overrides
from layer_core.search import filter_containers
from layer_core.settings import StoreSettings
from layer_core.store import LayerStateStore
from layer_core.target import ApplyError, RenderTarget, View, resolve_pattern_id
from layer_core.view_sync import ViewSettingsCopier, ViewSyncReport
from layer_controller.edit_state import OverrideEditState
from layer_controller.selection import ClickKind, SelectionController

LOGGER = logging.getLogger("CADLayerManager.Session")


class LayerSession:
    def __init__(
        self,
        target: RenderTarget,
        view: View,
        *,
        store: Optional[LayerStateStore] = None,
        settings: Optional[StoreSettings] = None,
        notify: Optional[NotifyFn] = None,
        on_change: Optional[Callable[[], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._target = target
        self._view = view
        self._notify = notify or logging_notify
        self._on_change = on_change
        self._logger = logger or LOGGER
        self._store = store or LayerStateStore(target.project_info(), settings=settings, notify=self._notify)
        self._applicator = OverrideApplicator(target)
        self._canonical: List[Container] = []
        self._visible: List[Container] = self._canonical
        self._query = ""
        self._index: Dict[EntityKey, Entity] = {}
        self._parents: Optional[Dict[EntityKey, Container]] = None
        self.selection = SelectionController(self)

    # Hierarchy ----------------------------------------------------------

    @property
    def view(self) -> View:
        return self._view

    @property
    def store(self) -> LayerStateStore:
        return self._store

    @property
    def search_query(self) -> str:
        return self._query

    @property
    def file_operations_enabled(self) -> bool:
        return not self._store.project.is_family

    def canonical_containers(self) -> List[Container]:
        return self._canonical

    def visible_containers(self) -> List[Container]:
        return self._visible

    def replace_hierarchy(self, containers: List[Container]) -> None:
        sort_hierarchy(containers)
        self._canonical = containers
        self._rebuild_index()
        self.selection.reset()
        self._render()

    def refresh(self) -> List[Container]:
        """Re-read every DWG and layer of the view from the host."""

        containers = collect_hierarchy(self._target, self._view)
        self.replace_hierarchy(containers)
        self._logger.info("Refreshed %d DWG(s) for %s", len(containers), self._target.view_name(self._view))
        return containers

    def lookup(self, key: EntityKey) -> Optional[Entity]:
        return self._index.get(key)

    def parent_of(self, entity: Entity) -> Optional[Container]:
        if self._parents is None:
            raise RuntimeError("Parent index requested before the hierarchy was loaded")
        return self._parents.get(identity_key(entity))

    def sync_to_canonical(self, entity: Entity) -> Optional[Entity]:
        """Copy state edited through a filtered entity onto its canonical twin."""

        canonical = self._index.get(identity_key(entity))
        if canonical is None or canonical is entity:
            return canonical
        if entity.kind is EntityKind.CONTAINER:
            canonical.halftone = entity.halftone
            canonical.expanded = entity.expanded
        elif entity.kind is not EntityKind.SUB_ITEM:
            raise unhandled_kind(entity)
        canonical.visible = entity.visible
        canonical.overrides = entity.overrides.copy()
        canonical.selected = entity.selected
        return canonical

    def expand_all(self) -> None:
        for container in self._canonical:
            container.expanded = True
        self._render()

    # Search / selection -------------------------------------------------

    def set_search(self, query: str) -> List[Container]:
        self._query = query or ""
        self._render()
        return self._visible

    def clear_search(self) -> None:
        self.set_search("")

    def click(self, entity: Entity, kind: ClickKind = ClickKind.PLAIN) -> None:
        self.selection.click(entity, kind)
        self._render()

    def select_all_siblings(self) -> Optional[Container]:
        owner = self.selection.select_all_siblings()
        self._render()
        return owner

    def clear_selection(self) -> None:
        self.selection.clear()
        self._render()

    # Visibility / halftone ----------------------------------------------

    def set_visibility(self, entity: Entity, visible: bool) -> Optional[ApplyResult]:
        """Apply *visible* to the whole selection when *entity* is part of it."""

        clicked = self._canonical_of(entity)
        if clicked.selected:
            batch = [item for item in iter_entities(self._canonical) if item.selected]
        else:
            batch = [clicked]
        previous = [(item, item.visible) for item in batch]
        for item in batch:
            item.visible = visible
        result = self._apply([self._change_for(item) for item in batch], "Toggle Layer Visibility")
        for item, value in self._unapplied(previous, result):
            item.visible = value
        self._render()
        return result

    def set_halftone(self, container: Container, halftone: bool) -> Optional[ApplyResult]:
        """Halftone is per DWG; a selected DWG carries every selected DWG with it."""

        if container.kind is not EntityKind.CONTAINER:
            raise TypeError("Halftone applies to DWG containers only")
        clicked = self._canonical_of(container)
        batch = [item for item in self._canonical if item.selected] if clicked.selected else [clicked]
        previous = [(item, item.halftone) for item in batch]
        for item in batch:
            item.halftone = halftone
        result = self._apply([self._change_for(item) for item in batch], "Toggle DWG Halftone")
        for item, value in self._unapplied(previous, result):
            item.halftone = value
        self._render()
        return result

    # Line graphics ------------------------------------------------------

    def edit_batch(self, entity: Entity) -> List[Entity]:
        clicked = self._canonical_of(entity)
        if not clicked.selected:
            return [clicked]
        if clicked.kind is EntityKind.CONTAINER:
            return [item for item in self._canonical if item.selected]
        if clicked.kind is EntityKind.SUB_ITEM:
            return [item for item in iter_entities(self._canonical) if item.kind is EntityKind.SUB_ITEM and item.selected]
        raise unhandled_kind(clicked)

    def begin_override_edit(self, entity: Entity) -> OverrideEditState:
        batch = self.edit_batch(entity)
        summary = resolve_overrides(self._target, self._view, batch)
        return OverrideEditState(summary, self._target.pattern_names(), batch=batch)

    def commit_override_edit(self, state: OverrideEditState) -> Optional[ApplyResult]:
        edit = state.to_edit()
        if edit.is_noop() or not state.batch:
            return None
        batch = [self._canonical_of(item) for item in state.batch]
        batch_kind(batch)
        current = read_overrides(self._target, self._view, batch)
        changes: List[EntityChange] = []
        for entity, overrides in zip(batch, current):
            change = self._change_for(entity)
            change.overrides = edit.merge_onto(overrides)
            if edit.clear_all:
                change.halftone = False
            changes.append(change)
        result = self._apply(changes, "Apply Line Graphics")
        if result is None:
            return None
        applied = {id(entity) for entity in result.applied}
        for change in changes:
            if id(change.entity) not in applied:
                continue
            change.entity.overrides = self._stored_overrides(change.overrides)
            if change.entity.kind is EntityKind.CONTAINER:
                change.entity.halftone = change.halftone
        self._render()
        return result

    # Persistence --------------------------------------------------------

    def save(self) -> Optional[Path]:
        """Save host overrides together with the visibility shown in the tree."""

        if not self._require_file_operations():
            return None
        fresh = collect_hierarchy(self._target, self._view)
        model = {container.key: container for container in self._canonical}
        for container in fresh:
            known = model.get(container.key)
            if known is None:
                continue
            container.visible = known.visible
            container.halftone = known.halftone
            for sub in container.subitems:
                known_sub = known.find_subitem(sub.name)
                if known_sub is not None:
                    sub.visible = known_sub.visible
        return self._store.save(fresh)

    def load(self) -> bool:
        if not self._require_file_operations():
            return False
        folder = self._store.project_save_folder()
        match = self._store.find_matching_template(folder, self._canonical)
        if match is None:
            self._notify("Info", "No matching template found.")
            return False
        return self.load_from_folder(match)

    def load_from_file(self, path: Path) -> bool:
        """Load from the folder holding a file the user picked."""

        if not self._require_file_operations():
            return False
        folder = Path(path).parent
        if not self._store.does_folder_match(folder, self._canonical):
            self._notify("Info", "Selected file does not match any DWG in the current view.")
            return False
        return self.load_from_folder(folder)

    def load_from_folder(self, folder: Path) -> bool:
        backup = copy.deepcopy(self._canonical)
        if not self._store.load(folder, self._canonical):
            return False
        changes = [self._change_for(entity) for entity in iter_entities(self._canonical)]
        if self._apply(changes, "Load Layer Visibility") is None:
            self.replace_hierarchy(backup)
            return False
        self._rebuild_index()
        self._render()
        self._notify("Success", "Layer visibility loaded successfully.")
        return True

    # Other views --------------------------------------------------------

    def apply_to_views(self, target_views: Sequence[View]) -> Optional[ViewSyncReport]:
        if not target_views:
            self._notify("Info", "No views selected.")
            return None
        try:
            report = ViewSettingsCopier(self._target).apply_to_views(self._view, target_views)
        except ApplyError as exc:
            self._notify("Error", str(exc))
            return None
        self._notify("Apply to Views", report.format())
        return report

    # Internal helpers ---------------------------------------------------

    def _render(self) -> None:
        self._visible = filter_containers(self._canonical, self._query)
        if self._on_change is not None:
            self._on_change()

    def _rebuild_index(self) -> None:
        self._index = {identity_key(entity): entity for entity in iter_entities(self._canonical)}
        self._parents = build_parent_index(self._canonical)

    def _canonical_of(self, entity: Entity) -> Entity:
        canonical = self.sync_to_canonical(entity)
        return canonical if canonical is not None else entity

    def _change_for(self, entity: Entity) -> EntityChange:
        if entity.kind is EntityKind.CONTAINER:
            halftone = entity.halftone
        elif entity.kind is EntityKind.SUB_ITEM:
            halftone = False
        else:
            raise unhandled_kind(entity)
        return EntityChange(entity=entity, visible=entity.visible, overrides=entity.overrides.copy(), halftone=halftone)

    def _stored_overrides(self, desired: OverrideSet) -> OverrideSet:
        pattern = None
        pattern_id = resolve_pattern_id(self._target, desired.line_pattern)
        if pattern_id is not None:
            pattern = self._target.pattern_name(pattern_id)
        return OverrideSet(
            color=normalize_hex_color(desired.color),
            line_pattern=pattern,
            line_weight=desired.line_weight if is_valid_line_weight(desired.line_weight) else None,
        )

    def _unapplied(self, previous, result: Optional[ApplyResult]):
        """Entries of *previous* whose host write did not happen."""

        if result is None:
            return list(previous)
        skipped = {id(entity) for entity in result.skipped}
        return [(item, value) for item, value in previous if id(item) in skipped]

    def _apply(self, changes: List[EntityChange], name: str) -> Optional[ApplyResult]:
        try:
            return self._applicator.apply(self._view, changes, transaction_name=name)
        except ApplyError as exc:
            self._notify("Error", str(exc))
            return None

    def _require_file_operations(self) -> bool:
        if self.file_operations_enabled:
            return True
        self._notify("Info", "Saving and loading layer states is not available in family documents.")
        return False


def start_session(target: RenderTarget, view: View, **kwargs) -> LayerSession:
    """Entry point used by the host command: set up logging and load the view."""

    configure_logger()
    session = LayerSession(target, view, **kwargs)
    session.refresh()
    return session
