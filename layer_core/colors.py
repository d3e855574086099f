"""Colour helpers for line-colour overrides."""
from __future__ import annotations

from typing import Any, Optional

from PyQt6.QtGui import QColor

_HEX_DIGITS = set("0123456789abcdefABCDEF")


def parse_hex_color(value: Any) -> Optional[QColor]:
    """Parse ``#RRGGBB`` (or bare ``RRGGBB``) into a QColor, None when invalid."""

    if not isinstance(value, str):
        return None
    token = value.strip()
    if token.startswith("#"):
        token = token[1:]
    if len(token) != 6 or any(ch not in _HEX_DIGITS for ch in token):
        return None
    color = QColor(int(token[0:2], 16), int(token[2:4], 16), int(token[4:6], 16))
    return color if color.isValid() else None


def format_hex_color(color: Optional[QColor]) -> Optional[str]:
    if color is None or not color.isValid():
        return None
    return f"#{color.red():02X}{color.green():02X}{color.blue():02X}"


def normalize_hex_color(value: Any) -> Optional[str]:
    """Return *value* as upper-case ``#RRGGBB`` or None."""

    return format_hex_color(parse_hex_color(value))


def is_degenerate(color: QColor) -> bool:
    # Hosts report an unset colour override as black.
    return color.red() == 0 and color.green() == 0 and color.blue() == 0


def effective_color(color: Optional[QColor]) -> Optional[str]:
    """Hex string for a host colour that counts as an override, else None."""

    if color is None or not color.isValid() or is_degenerate(color):
        return None
    return format_hex_color(color)
