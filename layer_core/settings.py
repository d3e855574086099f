"""Configuration for where layer state files are stored."""
from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

DATA_DIR_ENV_VAR = "CAD_LAYER_MANAGER_DATA_DIR"
DEFAULT_FOLDER_NAME = "LayerToggles"
VENDOR_DIR = "RK Tools"
APP_DIR = "CADManager"


def default_data_root(env: Optional[Mapping[str, str]] = None, platform: Optional[str] = None) -> Path:
    """Per-user application data directory used when a project has no folder."""

    env = os.environ if env is None else env
    platform = platform or sys.platform
    override = (env.get(DATA_DIR_ENV_VAR) or "").strip()
    if override:
        return Path(override).expanduser()
    if platform.startswith("win"):
        base = env.get("APPDATA")
        root = Path(base) if base else Path.home() / "AppData" / "Roaming"
    else:
        base = env.get("XDG_DATA_HOME")
        root = Path(base) if base else Path.home() / ".local" / "share"
    return root / VENDOR_DIR / APP_DIR


@dataclass(frozen=True)
class StoreSettings:
    folder_name: str = DEFAULT_FOLDER_NAME
    fallback_root: Optional[Path] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "StoreSettings":
        return cls(fallback_root=default_data_root(env))

    def resolved_fallback_root(self) -> Path:
        return self.fallback_root if self.fallback_root is not None else default_data_root()
