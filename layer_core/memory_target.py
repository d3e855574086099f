"""In-memory host document used for headless runs and tests."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from layer_core.model import ExternalId
from layer_core.target import HostEntity, OverrideRecord, PatternId, ProjectInfo, TargetEntityError

LOGGER = logging.getLogger("CADLayerManager.MemoryTarget")


@dataclass(eq=False)
class MemoryView:
    name: str
    entities: List[HostEntity] = field(default_factory=list)
    template: Optional["MemoryView"] = None
    hidden: Set[ExternalId] = field(default_factory=set)
    overrides: Dict[ExternalId, OverrideRecord] = field(default_factory=dict)

    def source(self) -> "MemoryView":
        # A view governed by a template reports the template's graphics.
        return self.template if self.template is not None else self


class MemoryTransaction:
    def __init__(self, owner: "MemoryTarget", name: str) -> None:
        self.name = name
        self._owner = owner
        self._snapshot = owner._snapshot()
        self.closed = False

    def commit(self) -> None:
        self._close()
        self._owner.committed.append(self.name)

    def rollback(self) -> None:
        self._close()
        self._owner._restore(self._snapshot)
        self._owner.rolled_back.append(self.name)

    def _close(self) -> None:
        if self.closed:
            raise RuntimeError(f"Transaction {self.name!r} already closed")
        self.closed = True
        self._owner._active = None


class MemoryTarget:
    """RenderTarget backed by plain Python containers.

    ``locked`` ids raise TargetEntityError on write, ``unreadable`` ids on
    read, and ``failing`` ids raise RuntimeError on write to simulate an
    unexpected host fault.
    """

    def __init__(self, patterns: Optional[Mapping[PatternId, str]] = None, project: Optional[ProjectInfo] = None) -> None:
        self.views: List[MemoryView] = []
        self.patterns: Dict[PatternId, str] = dict(patterns or {})
        self.project = project or ProjectInfo(title="Untitled")
        self.locked: Set[ExternalId] = set()
        self.unreadable: Set[ExternalId] = set()
        self.failing: Set[ExternalId] = set()
        self.writes: List[Tuple[str, ExternalId]] = []
        self.committed: List[str] = []
        self.rolled_back: List[str] = []
        self._active: Optional[MemoryTransaction] = None

    # Document setup -----------------------------------------------------

    def add_view(
        self,
        name: str,
        entities: Iterable[HostEntity] = (),
        template: Optional[MemoryView] = None,
    ) -> MemoryView:
        view = MemoryView(name=name, entities=list(entities), template=template)
        self.views.append(view)
        return view

    # RenderTarget -------------------------------------------------------

    def enumerate_entities(self, view: MemoryView) -> Sequence[HostEntity]:
        return list(view.entities)

    def is_hidden(self, view: MemoryView, external_id: ExternalId) -> bool:
        self._check_readable(external_id)
        return external_id in view.source().hidden

    def set_hidden(self, view: MemoryView, external_id: ExternalId, hidden: bool) -> None:
        self._check_writable(view, external_id)
        if hidden:
            view.hidden.add(external_id)
        else:
            view.hidden.discard(external_id)

    def get_overrides(self, view: MemoryView, external_id: ExternalId) -> OverrideRecord:
        self._check_readable(external_id)
        record = view.source().overrides.get(external_id)
        return record.copy() if record is not None else OverrideRecord()

    def set_overrides(self, view: MemoryView, external_id: ExternalId, record: OverrideRecord) -> None:
        self._check_writable(view, external_id)
        view.overrides[external_id] = record.copy()

    def resolve_template(self, view: MemoryView) -> Optional[MemoryView]:
        return view.template

    def find_pattern_id(self, name: str) -> Optional[PatternId]:
        for pattern_id, pattern_name in self.patterns.items():
            if pattern_name == name:
                return pattern_id
        return None

    def pattern_name(self, pattern_id: PatternId) -> Optional[str]:
        return self.patterns.get(pattern_id)

    def pattern_names(self) -> List[str]:
        return sorted(self.patterns.values(), key=str.casefold)

    def begin_transaction(self, name: str) -> MemoryTransaction:
        if self._active is not None:
            raise RuntimeError(f"Transaction {self._active.name!r} is still open")
        self._active = MemoryTransaction(self, name)
        return self._active

    def project_info(self) -> ProjectInfo:
        return self.project

    def view_name(self, view: MemoryView) -> str:
        return view.name

    # Internal helpers ---------------------------------------------------

    def _check_readable(self, external_id: ExternalId) -> None:
        if external_id in self.unreadable:
            raise TargetEntityError(f"Element {external_id} cannot be read")

    def _check_writable(self, view: MemoryView, external_id: ExternalId) -> None:
        if self._active is None:
            raise RuntimeError("Modifying the document requires an open transaction")
        if external_id in self.locked:
            raise TargetEntityError(f"Category {external_id} is locked")
        if external_id in self.failing:
            raise RuntimeError(f"Host failure while writing {external_id}")
        self.writes.append((view.name, external_id))

    def _snapshot(self):
        return {
            view: (set(view.hidden), {key: record.copy() for key, record in view.overrides.items()})
            for view in self.views
        }

    def _restore(self, snapshot) -> None:
        for view, (hidden, overrides) in snapshot.items():
            view.hidden = hidden
            view.overrides = overrides
        LOGGER.debug("Restored %d view(s) after rollback", len(snapshot))
