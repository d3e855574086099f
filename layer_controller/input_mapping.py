"""Translate Qt pointer modifiers and key presses into selection actions."""
from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from PyQt6.QtCore import Qt

from layer_controller.selection import ClickKind

LOGGER = logging.getLogger("CADLayerManager.Input")

SELECT_ALL_SIBLINGS = "select_all_siblings"
CLEAR_SELECTION = "clear_selection"

# action -> (key, required modifier)
DEFAULT_SHORTCUTS: Dict[str, tuple] = {
    SELECT_ALL_SIBLINGS: (Qt.Key.Key_A, Qt.KeyboardModifier.ControlModifier),
    CLEAR_SELECTION: (Qt.Key.Key_Escape, Qt.KeyboardModifier.NoModifier),
}


def _has(modifiers, flag) -> bool:
    if modifiers is None:
        return False
    return bool(modifiers & flag)


def _key_value(key) -> int:
    return int(getattr(key, "value", key))


def click_kind_from_modifiers(modifiers) -> ClickKind:
    """Shift takes precedence over Ctrl, matching the tree's range behaviour."""

    if _has(modifiers, Qt.KeyboardModifier.ShiftModifier):
        return ClickKind.RANGE
    if _has(modifiers, Qt.KeyboardModifier.ControlModifier):
        return ClickKind.TOGGLE
    return ClickKind.PLAIN


def shortcut_action(key, modifiers=None) -> Optional[str]:
    pressed = _key_value(key)
    for action, (shortcut_key, required) in DEFAULT_SHORTCUTS.items():
        if pressed != _key_value(shortcut_key):
            continue
        if required == Qt.KeyboardModifier.NoModifier or _has(modifiers, required):
            return action
    return None


def dispatch_shortcut(session, key, modifiers=None) -> bool:
    """Run the shortcut bound to *key*; return True when one fired."""

    action = shortcut_action(key, modifiers)
    if action is None:
        return False
    handlers: Dict[str, Callable[[], object]] = {
        SELECT_ALL_SIBLINGS: session.select_all_siblings,
        CLEAR_SELECTION: session.clear_selection,
    }
    LOGGER.debug("Shortcut %s", action)
    handlers[action]()
    return True
