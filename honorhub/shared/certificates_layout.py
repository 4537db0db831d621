from __future__ import annotations

import re
from typing import NamedTuple

RGB = tuple[float, float, float]

PAGE_SIZE: tuple[float, float] = (842.0, 595.0)  # A4 landscape, points

BRAND_ORANGE_HEX = "#F7941D"
BRAND_CYAN_HEX = "#00B8E6"

CREAM: RGB = (0.99, 0.97, 0.94)
DARK_GRAY: RGB = (0.15, 0.15, 0.15)
GRAY: RGB = (0.35, 0.35, 0.35)
LIGHT_GRAY: RGB = (0.55, 0.55, 0.55)
FAINT_GRAY: RGB = (0.7, 0.7, 0.7)

TITLE_FONT = "Times-Bold"
CAPTION_FONT = "Times-Italic"
BODY_FONT = "Helvetica"

TITLE_TEXT = "CERTIFICATE OF RECOGNITION"
TITLE_SIZE = 38
CAPTION_SIZE = 16
NAME_SIZE = 44
TIER_SIZE = 34
PERIOD_SIZE = 14
DESCRIPTION_SIZE = 13
DESCRIPTION_LEADING = 18
MESSAGE_SIZE = 12
MESSAGE_LEADING = 16
FOOTER_VALUE_SIZE = 11
FOOTER_LABEL_SIZE = 10
CERT_ID_SIZE = 8

OUTER_MARGIN = 25
OUTER_BORDER_WIDTH = 6
INNER_MARGIN = OUTER_MARGIN + 12
TOP_OFFSET = 80
TITLE_RULE_WIDTH = 280
NAME_RULE_PADDING = 40
NAME_RULE_MAX = 380
TEXT_SIDE_MARGIN = 90
LOGO_MAX_WIDTH = 200
LOGO_MAX_HEIGHT = 50
FOOTER_Y = 75
FOOTER_COLUMN_INSET = 170
CERT_ID_Y = 38

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})$")


def parse_hex_color(value: str | None, fallback: RGB | None = None) -> RGB | None:
    """Map ``#RRGGBB`` to a 0-1 RGB triple; anything else yields fallback."""

    if not isinstance(value, str):
        return fallback
    match = _HEX_RE.match(value.strip())
    if not match:
        return fallback
    return tuple(int(part, 16) / 255 for part in match.groups())


BRAND_ORANGE: RGB = parse_hex_color(BRAND_ORANGE_HEX)
BRAND_CYAN: RGB = parse_hex_color(BRAND_CYAN_HEX)


class Palette(NamedTuple):
    primary: RGB
    secondary: RGB


# Frame, rules and the tier fallback always use the brand colours; templates
# do not change them.
BRAND_PALETTE = Palette(primary=BRAND_ORANGE, secondary=BRAND_CYAN)
