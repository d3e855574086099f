"""Persist container and layer visibility/override state as JSON files.

One file per container lives in a ``LayerToggles`` folder next to the project
file, or in a per-user fallback folder keyed by project title when the project
has no usable path. Layer values are read per value in one of two shapes: a
bare boolean (older files, visibility only) or a record with visibility and
overrides. Keys are matched case-insensitively so files written by earlier
releases (``Visibility``/``Layers``...) load as well.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from layer_core.colors import normalize_hex_color
from layer_core.model import Container, OverrideSet, SubItem, is_valid_line_weight, name_key, normalize_name, sort_hierarchy
from layer_core.notices import NotifyFn, noop_notify
from layer_core.settings import StoreSettings
from layer_core.target import ProjectInfo

LOGGER = logging.getLogger("CADLayerManager.Store")

UNKNOWN_PROJECT = "UnknownProject"
FILE_SUFFIX = ".json"
_INVALID_FILE_CHARS = set('<>:"/\\|?*')

KEY_VISIBLE = "visible"
KEY_HALFTONE = "halftone"
KEY_LINE_PATTERN = "linePattern"
KEY_LINE_COLOR = "lineColor"
KEY_LINE_WEIGHT = "lineWeight"
KEY_SUBITEMS = "subitems"

# Accepted spellings, compared case-insensitively.
_ALIASES: Dict[str, Tuple[str, ...]] = {
    KEY_VISIBLE: ("visible", "visibility"),
    KEY_HALFTONE: ("halftone",),
    KEY_LINE_PATTERN: ("linepattern",),
    KEY_LINE_COLOR: ("linecolor",),
    KEY_LINE_WEIGHT: ("lineweight",),
    KEY_SUBITEMS: ("subitems", "layers"),
}


class StoreError(ValueError):
    """Raised when a layer state file holds data of the wrong shape."""


def sanitize_file_name(name: str) -> str:
    cleaned = "".join("_" if ch in _INVALID_FILE_CHARS or ord(ch) < 32 else ch for ch in name)
    cleaned = cleaned.strip()
    return cleaned or "_"


def container_file_name(container_name: str) -> str:
    return sanitize_file_name(normalize_name(container_name)) + FILE_SUFFIX


# Record encoding ----------------------------------------------------------


def _override_fields(overrides: OverrideSet) -> Dict[str, Any]:
    return {
        KEY_LINE_PATTERN: overrides.line_pattern,
        KEY_LINE_COLOR: overrides.color,
        KEY_LINE_WEIGHT: overrides.line_weight if is_valid_line_weight(overrides.line_weight) else None,
    }


def encode_container(container: Container) -> Dict[str, Any]:
    payload: Dict[str, Any] = {KEY_VISIBLE: bool(container.visible), KEY_HALFTONE: bool(container.halftone)}
    payload.update(_override_fields(container.overrides))
    subitems: Dict[str, Any] = {}
    for sub in container.subitems:
        record: Dict[str, Any] = {KEY_VISIBLE: bool(sub.visible)}
        record.update(_override_fields(sub.overrides))
        subitems[normalize_name(sub.name)] = record
    payload[KEY_SUBITEMS] = subitems
    return payload


def _lookup(record: Mapping[str, Any], key: str) -> Tuple[bool, Any]:
    aliases = _ALIASES[key]
    for raw_key, value in record.items():
        if isinstance(raw_key, str) and raw_key.casefold() in aliases:
            return True, value
    return False, None


def _optional_bool(record: Mapping[str, Any], key: str, where: str) -> Optional[bool]:
    present, value = _lookup(record, key)
    if not present or value is None:
        return None
    if not isinstance(value, bool):
        raise StoreError(f"{where}: '{key}' must be true or false")
    return value


def _decode_overrides(record: Mapping[str, Any], where: str) -> OverrideSet:
    _, color = _lookup(record, KEY_LINE_COLOR)
    _, pattern = _lookup(record, KEY_LINE_PATTERN)
    _, weight = _lookup(record, KEY_LINE_WEIGHT)
    if color is not None and not isinstance(color, str):
        raise StoreError(f"{where}: '{KEY_LINE_COLOR}' must be a string")
    if pattern is not None and not isinstance(pattern, str):
        raise StoreError(f"{where}: '{KEY_LINE_PATTERN}' must be a string")
    if weight is not None and (isinstance(weight, bool) or not isinstance(weight, int)):
        raise StoreError(f"{where}: '{KEY_LINE_WEIGHT}' must be an integer")
    normalized_color = normalize_hex_color(color) if color else None
    if color and normalized_color is None:
        LOGGER.warning("%s: ignoring invalid line colour %r", where, color)
    return OverrideSet(
        color=normalized_color,
        line_pattern=(pattern.strip() or None) if pattern else None,
        line_weight=weight if is_valid_line_weight(weight) else None,
    )


@dataclass
class _SubItemUpdate:
    visible: Optional[bool]
    overrides: OverrideSet

    def apply_to(self, sub: SubItem) -> None:
        if self.visible is not None:
            sub.visible = self.visible
        sub.overrides = self.overrides.copy()


@dataclass
class _ContainerUpdate:
    visible: Optional[bool]
    halftone: bool
    overrides: OverrideSet
    subitems: Dict[str, _SubItemUpdate] = field(default_factory=dict)

    def apply_to(self, container: Container) -> None:
        if self.visible is not None:
            container.visible = self.visible
        container.halftone = self.halftone
        container.overrides = self.overrides.copy()
        for sub in container.subitems:
            update = self.subitems.get(sub.key)
            if update is not None:
                update.apply_to(sub)


def _decode_subitem(value: Any, where: str) -> Optional[_SubItemUpdate]:
    if value is None:
        return None
    if isinstance(value, bool):
        return _SubItemUpdate(visible=value, overrides=OverrideSet())
    if isinstance(value, Mapping):
        return _SubItemUpdate(visible=_optional_bool(value, KEY_VISIBLE, where), overrides=_decode_overrides(value, where))
    raise StoreError(f"{where}: unsupported layer value {value!r}")


def decode_container(payload: Any, where: str = "record") -> _ContainerUpdate:
    if not isinstance(payload, Mapping):
        raise StoreError(f"{where}: expected a JSON object")
    update = _ContainerUpdate(
        visible=_optional_bool(payload, KEY_VISIBLE, where),
        halftone=bool(_optional_bool(payload, KEY_HALFTONE, where)),
        overrides=_decode_overrides(payload, where),
    )
    _, raw_subitems = _lookup(payload, KEY_SUBITEMS)
    if raw_subitems is None:
        return update
    if not isinstance(raw_subitems, Mapping):
        raise StoreError(f"{where}: '{KEY_SUBITEMS}' must be an object")
    for raw_name, value in raw_subitems.items():
        sub_update = _decode_subitem(value, f"{where} [{raw_name}]")
        if sub_update is not None:
            update.subitems[name_key(str(raw_name))] = sub_update
    return update


# Store --------------------------------------------------------------------


class LayerStateStore:
    """Save/load the hierarchy; failures are reported once and never leak out."""

    def __init__(
        self,
        project: ProjectInfo,
        *,
        settings: Optional[StoreSettings] = None,
        notify: Optional[NotifyFn] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._project = project
        self._settings = settings or StoreSettings.from_env()
        self._notify = notify or noop_notify
        self._logger = logger or LOGGER

    @property
    def project(self) -> ProjectInfo:
        return self._project

    # Public API ---------------------------------------------------------

    def project_save_folder(self, create: bool = True) -> Path:
        folder = self._project_folder()
        if create:
            folder.mkdir(parents=True, exist_ok=True)
        return folder

    def file_path_for(self, folder: Path, container: Container) -> Path:
        return Path(folder) / container_file_name(container.name)

    def save(self, containers: Sequence[Container], folder: Optional[Path] = None) -> Optional[Path]:
        """Write one file per container; return the folder or None on failure."""

        try:
            target_folder = Path(folder) if folder is not None else self.project_save_folder()
            target_folder.mkdir(parents=True, exist_ok=True)
            for container in containers:
                self._write_json(self.file_path_for(target_folder, container), encode_container(container))
        except Exception as exc:
            self._report("Error", f"Failed to save layer visibility: {exc}", exc)
            return None
        self._logger.info("Saved %d container(s) to %s", len(containers), target_folder)
        self._notify("Success", f"Layer visibility saved to folder:\n{target_folder}")
        return target_folder

    def load(self, folder: Path, containers: List[Container]) -> bool:
        """Load every container file found in *folder* into *containers*.

        All files are parsed before anything is applied, so a failure leaves
        the hierarchy untouched. Containers without a file are left as they are.
        """

        try:
            staged = self._stage(Path(folder), containers)
        except Exception as exc:
            self._report("Error", f"Failed to load layer visibility: {exc}", exc)
            return False
        for container, update in staged:
            update.apply_to(container)
        sort_hierarchy(containers)
        self._logger.info("Loaded %d of %d container(s) from %s", len(staged), len(containers), folder)
        return True

    def does_folder_match(self, folder: Path, containers: Sequence[Container]) -> bool:
        folder = Path(folder)
        if not folder.is_dir():
            return False
        return any(self.file_path_for(folder, container).is_file() for container in containers)

    def find_matching_template(self, folder: Path, containers: Sequence[Container]) -> Optional[Path]:
        return Path(folder) if self.does_folder_match(folder, containers) else None

    def find_matching_templates(self, root: Path, containers: Sequence[Container]) -> List[Path]:
        """Return *root* and any sub-folders of it holding a file for one of *containers*."""

        root = Path(root)
        if not root.is_dir():
            return []
        matches: List[Path] = []
        if self.does_folder_match(root, containers):
            matches.append(root)
        try:
            children = sorted((child for child in root.iterdir() if child.is_dir()), key=lambda item: item.name.casefold())
        except OSError as exc:
            self._logger.warning("Could not list template folders in %s: %s", root, exc)
            return matches
        matches.extend(child for child in children if self.does_folder_match(child, containers))
        return matches

    # Internal helpers ---------------------------------------------------

    def _project_folder(self) -> Path:
        for candidate in (self._project.path, self._project.central_path):
            if candidate is not None and Path(candidate).exists():
                return Path(candidate).parent / self._settings.folder_name
        title = sanitize_file_name(normalize_name(self._project.title) or UNKNOWN_PROJECT)
        return self._settings.resolved_fallback_root() / self._settings.folder_name / title

    def _stage(self, folder: Path, containers: Sequence[Container]) -> List[Tuple[Container, _ContainerUpdate]]:
        staged: List[Tuple[Container, _ContainerUpdate]] = []
        for container in containers:
            path = self.file_path_for(folder, container)
            if not path.is_file():
                continue
            payload = json.loads(path.read_text(encoding="utf-8-sig"))
            staged.append((container, decode_container(payload, path.name)))
        return staged

    def _write_json(self, path: Path, payload: Mapping[str, Any]) -> None:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        tmp_path.replace(path)

    def _report(self, title: str, message: str, exc: BaseException) -> None:
        self._logger.error("%s", message, exc_info=exc)
        self._notify(title, message)
