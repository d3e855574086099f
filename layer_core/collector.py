"""Build the container hierarchy from what the host reports for a view."""
from __future__ import annotations

import logging
from typing import List, Optional

from layer_core.model import (
    UNKNOWN_CONTAINER_NAME,
    Container,
    ExternalId,
    OverrideSet,
    SubItem,
    normalize_name,
    sort_hierarchy,
)
from layer_core.resolver import effective_overrides
from layer_core.target import HostEntity, RenderTarget, TargetEntityError, View

LOGGER = logging.getLogger("CADLayerManager.Collector")


def collect_hierarchy(target: RenderTarget, view: View, logger: Optional[logging.Logger] = None) -> List[Container]:
    log = logger or LOGGER
    containers: List[Container] = []
    seen: set[str] = set()
    for host in target.enumerate_entities(view):
        container = _collect_container(target, view, host, log)
        if container is None:
            continue
        if container.key in seen:
            log.debug("Skipping duplicate container %s", container.name)
            continue
        seen.add(container.key)
        containers.append(container)
    sort_hierarchy(containers)
    log.debug("Collected %d container(s) from %s", len(containers), target.view_name(view))
    return containers


def _collect_container(target: RenderTarget, view: View, host: HostEntity, log: logging.Logger) -> Optional[Container]:
    try:
        external_id = host.external_id
    except TypeError as exc:
        log.warning("Ignoring container %r with unusable id: %s", host.name, exc)
        return None
    container = Container(name=normalize_name(host.name) or UNKNOWN_CONTAINER_NAME, external_id=external_id)
    container.visible, container.overrides, container.halftone = _read_state(target, view, external_id, container, log)
    for child in host.children:
        name = normalize_name(child.name)
        if not name:
            continue
        try:
            child_id = child.external_id
        except TypeError as exc:
            log.warning("Ignoring layer %r of %s with unusable id: %s", child.name, container.name, exc)
            continue
        sub = SubItem(name=name, external_id=child_id)
        sub.visible, sub.overrides, _ = _read_state(target, view, child_id, sub, log)
        container.add_subitem(sub)
    return container


def _read_state(target: RenderTarget, view: View, external_id: ExternalId, entity, log: logging.Logger):
    try:
        visible = not target.is_hidden(view, external_id)
        overrides = effective_overrides(target, view, entity)
        halftone = bool(target.get_overrides(view, external_id).halftone)
    except TargetEntityError as exc:
        log.debug("Using defaults for %s: %s", entity.name, exc)
        return True, OverrideSet(), False
    return visible, overrides, halftone
