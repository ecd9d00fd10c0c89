from __future__ import annotations

import os
from typing import NamedTuple

POINTS_PER_INCH = 72.0

PAGE_WIDTH_IN = 8.0
PAGE_HEIGHT_IN = 6.3
PAGE_SIZE: tuple[float, float] = (
    PAGE_WIDTH_IN * POINTS_PER_INCH,
    PAGE_HEIGHT_IN * POINTS_PER_INCH,
)

MAX_TEXT_LENGTH = 100
# Competition names longer than this use the variant's smaller subtitle size.
LONG_COMPETITION_CHARS = 19
MIN_FONT_SIZE = 12.0

SAFE_FALLBACK_FONT = "Times-Italic"
TEXT_ALPHA = 0.863

RASTER_EXTENSIONS = (".png", ".jpg", ".jpeg")
PDF_EXTENSIONS = (".pdf",)


def _in(value: float) -> float:
    return value * POINTS_PER_INCH


class TextRegion(NamedTuple):
    """Horizontal band a line of text is centred in, in points from bottom-left."""

    center_x: float
    baseline_y: float
    width: float


class TemplateLayout(NamedTuple):
    name: TextRegion
    competition: TextRegion
    name_size: float
    competition_size: float
    long_competition_size: float

    def competition_font_size(self, competition: str) -> float:
        if len(competition) > LONG_COMPETITION_CHARS:
            return self.long_competition_size
        return self.competition_size


_DESIGN_2025 = TemplateLayout(
    name=TextRegion(center_x=_in(3.1 + 4.4 / 2), baseline_y=_in(3.34), width=_in(4.4)),
    competition=TextRegion(
        center_x=_in(4.0 + 4.1 / 2), baseline_y=_in(2.72), width=_in(4.1)
    ),
    name_size=26.64,
    competition_size=26.64,
    long_competition_size=23.76,
)

_DESIGN_2024 = TemplateLayout(
    name=TextRegion(center_x=_in(PAGE_WIDTH_IN / 2), baseline_y=_in(3.2), width=_in(5.6)),
    competition=TextRegion(
        center_x=_in(PAGE_WIDTH_IN / 2), baseline_y=_in(2.45), width=_in(5.2)
    ),
    name_size=28.0,
    competition_size=24.0,
    long_competition_size=20.0,
)

TEMPLATE_LAYOUTS: dict[str, TemplateLayout] = {
    "certificatedesign2025": _DESIGN_2025,
    "certificatedesign1": _DESIGN_2024,
}

DEFAULT_LAYOUT = _DESIGN_2025


def layout_for_template(path: str) -> TemplateLayout:
    stem = os.path.splitext(os.path.basename(path))[0].lower()
    return TEMPLATE_LAYOUTS.get(stem, DEFAULT_LAYOUT)


def template_kind(path: str) -> str | None:
    ext = os.path.splitext(path)[1].lower()
    if ext in RASTER_EXTENSIONS:
        return "raster"
    if ext in PDF_EXTENSIONS:
        return "pdf"
    return None


def truncate_text(value: str, limit: int = MAX_TEXT_LENGTH) -> str:
    return value[:limit]
