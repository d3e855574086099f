"""Logger setup for the layer manager.

The build flavour decides the default level: development builds log at DEBUG
unless ``CAD_LAYER_MANAGER_DEV_MODE`` says otherwise.
"""
from __future__ import annotations

import logging
import os
import re
from typing import Mapping, Optional, Union

MANAGER_VERSION = "1.4.0.dev0"
LOGGER_NAME = "CADLayerManager"
LOG_TAG = "CADLayerManager"
LOG_LEVEL_ENV_VAR = "CAD_LAYER_MANAGER_LOG_LEVEL"
DEV_MODE_ENV_VAR = "CAD_LAYER_MANAGER_DEV_MODE"

_DEV_MODE_TOKENS = {
    "1": True,
    "true": True,
    "yes": True,
    "on": True,
    "0": False,
    "false": False,
    "no": False,
    "off": False,
}
_DEV_RELEASE = re.compile(r"(?:\.|-)dev\d*$")


def is_dev_build(version: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> bool:
    """True for ``X.Y.Z.devN`` / ``X.Y.Z-dev`` builds or when forced by env."""

    env = os.environ if env is None else env
    forced = _DEV_MODE_TOKENS.get(env.get(DEV_MODE_ENV_VAR, "").strip().lower())
    if forced is not None:
        return forced
    return bool(_DEV_RELEASE.search((version or MANAGER_VERSION).strip().lower()))


def resolve_log_level(value: Optional[str] = None) -> int:
    """Pick the level from *value*, the environment, or the build flavour."""

    token = (value if value is not None else os.getenv(LOG_LEVEL_ENV_VAR, "")).strip()
    if token:
        if token.isdigit():
            return int(token)
        named = logging.getLevelName(token.upper())
        if isinstance(named, int):
            return named
    return logging.DEBUG if is_dev_build() else logging.INFO


def configure_logger(level: Optional[Union[int, str]] = None, stream=None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    resolved = level if isinstance(level, int) else resolve_log_level(level)
    logger.setLevel(resolved)
    if not any(getattr(handler, "_layer_manager_handler", False) for handler in logger.handlers):
        handler = logging.StreamHandler(stream)
        handler._layer_manager_handler = True  # type: ignore[attr-defined]
        handler.setFormatter(logging.Formatter(f"[%(asctime)s] [{LOG_TAG}] %(message)s", "%H:%M:%S"))
        logger.addHandler(handler)
    logger.propagate = False
    if is_dev_build():
        logger.debug("Layer manager %s (dev build); set %s=0 for release logging", MANAGER_VERSION, DEV_MODE_ENV_VAR)
    return logger
