"""Entity model for imported drawings (containers) and their layers (sub-items)."""
from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import ClassVar, Dict, Iterable, Iterator, List, Optional, Tuple, Union

UNKNOWN_CONTAINER_NAME = "Unknown DWG Name"
MIN_LINE_WEIGHT = 1
MAX_LINE_WEIGHT = 16


class EntityKind(Enum):
    CONTAINER = "container"
    SUB_ITEM = "sub_item"


@dataclass(frozen=True, order=True)
class ExternalId:
    """Stable identity of an entity on the host side."""

    value: int

    @classmethod
    def coerce(cls, raw: object) -> "ExternalId":
        """Convert a host handle into an ExternalId.

        Hosts have exposed element ids as plain integers, numeric strings and
        wrapper objects carrying ``value`` or ``integer_value`` over time; this
        is the only place that knows about those shapes.
        """

        if isinstance(raw, ExternalId):
            return raw
        if isinstance(raw, bool):
            raise TypeError("Boolean is not a valid external id")
        if isinstance(raw, int):
            return cls(raw)
        if isinstance(raw, str):
            token = raw.strip()
            try:
                return cls(int(token))
            except ValueError as exc:
                raise TypeError(f"Invalid external id {raw!r}") from exc
        for attr in ("value", "integer_value", "IntegerValue", "Value"):
            inner = getattr(raw, attr, None)
            if inner is not None and not callable(inner):
                return cls.coerce(inner)
        raise TypeError(f"Unsupported external id {raw!r}")

    def __str__(self) -> str:
        return str(self.value)


def normalize_name(name: Optional[str]) -> str:
    """Return the NFKC form of *name* with surrounding whitespace removed."""

    if not name:
        return ""
    return unicodedata.normalize("NFKC", name).strip()


def name_key(name: Optional[str]) -> str:
    """Case-insensitive comparison key for a display name."""

    return normalize_name(name).casefold()


@dataclass
class OverrideSet:
    """Graphic overrides for one entity; ``None`` means no override."""

    color: Optional[str] = None
    line_pattern: Optional[str] = None
    line_weight: Optional[int] = None

    def is_empty(self) -> bool:
        return self.color is None and self.line_pattern is None and self.line_weight is None

    def copy(self) -> "OverrideSet":
        return replace(self)


@dataclass
class SubItem:
    name: str
    visible: bool = True
    overrides: OverrideSet = field(default_factory=OverrideSet)
    selected: bool = field(default=False, compare=False)
    external_id: Optional[ExternalId] = field(default=None, compare=False)

    kind: ClassVar[EntityKind] = EntityKind.SUB_ITEM

    @property
    def key(self) -> str:
        return name_key(self.name)


@dataclass
class Container:
    name: str
    visible: bool = True
    halftone: bool = False
    overrides: OverrideSet = field(default_factory=OverrideSet)
    subitems: List[SubItem] = field(default_factory=list)
    selected: bool = field(default=False, compare=False)
    expanded: bool = field(default=True, compare=False)
    external_id: Optional[ExternalId] = field(default=None, compare=False)

    kind: ClassVar[EntityKind] = EntityKind.CONTAINER

    @property
    def key(self) -> str:
        return name_key(self.name)

    def find_subitem(self, name: str) -> Optional[SubItem]:
        target = name_key(name)
        for sub in self.subitems:
            if sub.key == target:
                return sub
        return None

    def add_subitem(self, sub: SubItem) -> bool:
        """Append *sub* unless a sub-item with the same normalised name exists."""

        if not sub.key or self.find_subitem(sub.name) is not None:
            return False
        self.subitems.append(sub)
        return True

    def filtered_copy(self, subitems: List[SubItem]) -> "Container":
        """Return a new container sharing this one's state and identity."""

        return Container(
            name=self.name,
            visible=self.visible,
            halftone=self.halftone,
            overrides=self.overrides.copy(),
            subitems=list(subitems),
            selected=self.selected,
            expanded=self.expanded,
            external_id=self.external_id,
        )


Entity = Union[Container, SubItem]
EntityKey = Tuple[EntityKind, object]


def identity_key(entity: Entity) -> EntityKey:
    """Key that is shared by a canonical entity and its filtered copies."""

    if entity.external_id is not None:
        return (entity.kind, entity.external_id)
    return (entity.kind, id(entity))


def unhandled_kind(entity: object) -> TypeError:
    return TypeError(f"Unhandled entity kind: {getattr(entity, 'kind', type(entity).__name__)!r}")


def sort_hierarchy(containers: List[Container]) -> None:
    """Sort containers and their sub-items in place by normalised name."""

    containers.sort(key=lambda item: item.key)
    for container in containers:
        container.subitems.sort(key=lambda item: item.key)


def iter_entities(containers: Iterable[Container]) -> Iterator[Entity]:
    """Yield every container followed by its sub-items, in display order."""

    for container in containers:
        yield container
        yield from container.subitems


def iter_subitems(containers: Iterable[Container]) -> Iterator[SubItem]:
    for container in containers:
        yield from container.subitems


def build_parent_index(containers: Iterable[Container]) -> Dict[EntityKey, Container]:
    """Map each sub-item's identity key to its owning container."""

    index: Dict[EntityKey, Container] = {}
    for container in containers:
        for sub in container.subitems:
            index[identity_key(sub)] = container
    return index


def is_valid_line_weight(weight: Optional[int]) -> bool:
    if weight is None or isinstance(weight, bool):
        return False
    return MIN_LINE_WEIGHT <= weight <= MAX_LINE_WEIGHT
