from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from layer_core.model import (
    Container,
    Entity,
    EntityKey,
    EntityKind,
    SubItem,
    identity_key,
    iter_entities,
    iter_subitems,
    unhandled_kind,
)

LOGGER = logging.getLogger("CADLayerManager.Selection")


class ClickKind(Enum):
    PLAIN = "plain"
    TOGGLE = "toggle"
    RANGE = "range"


class _SelectionHost(Protocol):
    def canonical_containers(self) -> Sequence[Container]: ...
    def visible_containers(self) -> Sequence[Container]: ...
    def lookup(self, key: EntityKey) -> Optional[Entity]: ...
    def parent_of(self, entity: Entity) -> Optional[Container]: ...
    def sync_to_canonical(self, entity: Entity) -> Optional[Entity]: ...
    def clear_search(self) -> None: ...


class SelectionController:
    """Click, toggle, range and sibling selection over containers and sub-items."""

    def __init__(self, host: _SelectionHost, logger: Optional[logging.Logger] = None) -> None:
        self._host = host
        self._logger = logger or LOGGER
        self._anchor: Optional[EntityKey] = None

    @property
    def anchor(self) -> Optional[EntityKey]:
        return self._anchor

    def reset(self) -> None:
        self._anchor = None

    # Public API ---------------------------------------------------------

    def click(self, entity: Entity, kind: ClickKind = ClickKind.PLAIN) -> None:
        if kind is ClickKind.PLAIN:
            self.select_only(entity)
        elif kind is ClickKind.TOGGLE:
            self.toggle(entity)
        elif kind is ClickKind.RANGE:
            self.select_range(entity)
        else:
            raise ValueError(f"Unknown click kind {kind!r}")

    def select_only(self, entity: Entity) -> None:
        self._clear_all()
        entity.selected = True
        self._host.sync_to_canonical(entity)
        self._anchor = identity_key(entity)

    def toggle(self, entity: Entity) -> None:
        entity.selected = not entity.selected
        self._host.sync_to_canonical(entity)
        self._anchor = identity_key(entity)

    def select_range(self, entity: Entity) -> None:
        """Select from the anchor to *entity* in the current display order."""

        anchor = self._anchor
        if anchor is None:
            self.select_only(entity)
            return
        if anchor[0] is not entity.kind:
            # No span across kinds; only the anchor's universe survives.
            self._logger.debug("Ignoring range from %s to %s", anchor[0].value, entity.kind.value)
            self._clear_kind(entity.kind)
            return
        order = self._display_order(entity.kind)
        keys = [identity_key(item) for item in order]
        try:
            start = keys.index(anchor)
            end = keys.index(identity_key(entity))
        except ValueError:
            # Anchor filtered out of view: nothing to span.
            self._clear_kind(_other_kind(entity.kind))
            entity.selected = True
            self._host.sync_to_canonical(entity)
            return
        if start > end:
            start, end = end, start
        self._clear_kind(_other_kind(entity.kind))
        for item in order[start : end + 1]:
            item.selected = True
            self._host.sync_to_canonical(item)

    def select_all_siblings(self) -> Optional[Container]:
        owner = None
        if self._anchor is not None:
            anchored = self._host.lookup(self._anchor)
            if anchored is not None:
                owner = self._owner_of(anchored)
        if owner is None:
            for entity in iter_entities(self._host.canonical_containers()):
                if entity.selected:
                    owner = self._owner_of(entity)
                    if owner is not None:
                        break
        if owner is None:
            return None
        for sub in owner.subitems:
            sub.selected = True
        return owner

    def clear(self) -> None:
        self._clear_all()
        self._anchor = None
        self._host.clear_search()

    def selected_containers(self) -> List[Container]:
        return [container for container in self._host.canonical_containers() if container.selected]

    def selected_subitems(self) -> List[SubItem]:
        return [sub for sub in iter_subitems(self._host.canonical_containers()) if sub.selected]

    # Internal helpers ---------------------------------------------------

    def _display_order(self, kind: EntityKind) -> List[Entity]:
        visible = self._host.visible_containers()
        if kind is EntityKind.CONTAINER:
            return list(visible)
        if kind is EntityKind.SUB_ITEM:
            return list(iter_subitems(visible))
        raise TypeError(f"Unhandled entity kind: {kind!r}")

    def _owner_of(self, entity: Entity) -> Optional[Container]:
        if entity.kind is EntityKind.CONTAINER:
            found = self._host.lookup(identity_key(entity))
            return found if isinstance(found, Container) else None
        if entity.kind is EntityKind.SUB_ITEM:
            return self._host.parent_of(entity)
        raise unhandled_kind(entity)

    def _clear_all(self) -> None:
        self._clear_kind(EntityKind.CONTAINER)
        self._clear_kind(EntityKind.SUB_ITEM)

    def _clear_kind(self, kind: EntityKind) -> None:
        for containers in (self._host.canonical_containers(), self._host.visible_containers()):
            if kind is EntityKind.CONTAINER:
                for container in containers:
                    container.selected = False
            elif kind is EntityKind.SUB_ITEM:
                for sub in iter_subitems(containers):
                    sub.selected = False
            else:
                raise TypeError(f"Unhandled entity kind: {kind!r}")


def _other_kind(kind: EntityKind) -> EntityKind:
    if kind is EntityKind.CONTAINER:
        return EntityKind.SUB_ITEM
    if kind is EntityKind.SUB_ITEM:
        return EntityKind.CONTAINER
    raise TypeError(f"Unhandled entity kind: {kind!r}")
