from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel

from .errors import InvalidStyleError

COLOR_RE = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")

VALID_FONTS = (
    "Arial, sans-serif",
    "Helvetica, sans-serif",
    "Times New Roman, serif",
    "Georgia, serif",
    "Verdana, sans-serif",
    "Courier New, monospace",
)

VALID_LINE_HEIGHTS = ("1.0", "1.2", "1.4", "1.5", "1.6", "1.8", "2.0")

COLOR_FIELDS = ("full_name_color", "current_role_color", "text_color", "bg_color")
FONT_FIELDS = ("heading_font", "text_font")

DEFAULT_FULL_NAME_COLOR = "#1a1a1a"
DEFAULT_CURRENT_ROLE_COLOR = "#4f46e5"
DEFAULT_TEXT_COLOR = "#000000"
DEFAULT_BG_COLOR = "#ffffff"
DEFAULT_HEADING_FONT = "Helvetica, sans-serif"
DEFAULT_TEXT_FONT = "Arial, sans-serif"
DEFAULT_LINE_HEIGHT = "1.5"

# Not user-configurable.
FONT_SIZE = "12px"
H3_COLOR = "#000000"
H4_COLOR = "#4e4e4e"


def check_color(field: str, value: Optional[str]) -> Optional[str]:
    if value and not COLOR_RE.match(value):
        raise InvalidStyleError(field, value)
    return value


def check_font(field: str, value: Optional[str]) -> Optional[str]:
    if value and value not in VALID_FONTS:
        raise InvalidStyleError(field, value)
    return value


def check_line_height(value: Optional[str]) -> Optional[str]:
    if value and value not in VALID_LINE_HEIGHTS:
        raise InvalidStyleError("line_height", value)
    return value


class ResolvedStyle(BaseModel):
    """Concrete CSS values for one rendered document."""

    text_font: str = DEFAULT_TEXT_FONT
    heading_font: str = DEFAULT_HEADING_FONT
    text_color: str = DEFAULT_TEXT_COLOR
    bg_color: str = DEFAULT_BG_COLOR
    line_height: str = DEFAULT_LINE_HEIGHT
    font_size: str = FONT_SIZE
    h1_color: str = DEFAULT_FULL_NAME_COLOR
    h2_color: str = DEFAULT_CURRENT_ROLE_COLOR
    h3_color: str = H3_COLOR
    h4_color: str = H4_COLOR


def resolve_style(settings: Optional[object]) -> ResolvedStyle:
    """
    Map a profile's style bundle onto concrete CSS values.

    Any missing or empty field falls back to its default. Values are checked
    against the allow-lists again here, since this is the last step before
    they are written into the document.
    """
    if settings is None:
        return ResolvedStyle()

    def pick(field: str) -> Optional[str]:
        value = getattr(settings, field, None)
        return value or None

    for field in COLOR_FIELDS:
        check_color(field, pick(field))
    for field in FONT_FIELDS:
        check_font(field, pick(field))
    check_line_height(pick("line_height"))

    return ResolvedStyle(
        text_font=pick("text_font") or DEFAULT_TEXT_FONT,
        heading_font=pick("heading_font") or DEFAULT_HEADING_FONT,
        text_color=pick("text_color") or DEFAULT_TEXT_COLOR,
        bg_color=pick("bg_color") or DEFAULT_BG_COLOR,
        line_height=pick("line_height") or DEFAULT_LINE_HEIGHT,
        h1_color=pick("full_name_color") or DEFAULT_FULL_NAME_COLOR,
        h2_color=pick("current_role_color") or DEFAULT_CURRENT_ROLE_COLOR,
    )
