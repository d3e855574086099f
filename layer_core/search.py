"""Name search over the container hierarchy."""
from __future__ import annotations

from typing import List

from layer_core.model import Container, name_key


def normalize_query(query: str) -> str:
    return name_key(query)


def filter_containers(containers: List[Container], query: str) -> List[Container]:
    """Return the containers matching *query*.

    A blank query hands back *containers* itself. Otherwise a container whose
    name matches keeps all of its sub-items; a container kept only because
    some sub-items match carries just those. Returned containers are always
    new objects sharing identity with their canonical counterparts.
    """

    token = normalize_query(query or "")
    if not token:
        return containers

    result: List[Container] = []
    for container in containers:
        if token in container.key:
            result.append(container.filtered_copy(container.subitems))
            continue
        matches = [sub for sub in container.subitems if token in sub.key]
        if matches:
            result.append(container.filtered_copy(matches))
    return result
