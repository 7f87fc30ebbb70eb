from datetime import timezone
from pathlib import Path
from typing import Optional, Sequence
import os

import PIL
from PIL import Image, ImageDraw, ImageFont

from country_cache.config import settings
from country_cache.schemas import CountryRecord, StatusOut

WIDTH, HEIGHT = 800, 480
MAX_ROWS = 5

BG = (255, 255, 255)
FG = (34, 34, 34)
MUTED = (90, 90, 90)
GRID = (225, 230, 240)
HEADER_BG = (245, 247, 250)
STRIPE = (252, 253, 255)
ACCENT = (60, 99, 243)


def _text(draw: ImageDraw.ImageDraw, xy, text: str, fill=FG, font=None):
    draw.text(xy, text, fill=fill, font=font)


def _right_text(draw: ImageDraw.ImageDraw, x_right: int, y: int, text: str, fill=FG, font=None):
    bbox = draw.textbbox((0, 0), text, font=font)
    _text(draw, (x_right - (bbox[2] - bbox[0]), y), text, fill=fill, font=font)


def _load_ttf(font_filename: str, size: int):
    base = Path(PIL.__file__).parent
    for p in (base / font_filename, base / "fonts" / font_filename, base.parent / font_filename):
        if p.exists():
            try:
                return ImageFont.truetype(str(p), size)
            except OSError:
                continue
    return ImageFont.load_default()


def format_gdp(value: Optional[float]) -> str:
    """Compact USD figure: $1.5T, $820.3B, $12M, $950."""
    if value is None:
        return "-"
    n = float(value)
    for div, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if abs(n) >= div:
            s = f"{n / div:.1f}".rstrip("0").rstrip(".")
            return f"${s}{suffix}"
    return f"${n:,.0f}"


def format_timestamp(status: StatusOut) -> str:
    if status.last_refreshed_at is None:
        return "(never)"
    return status.last_refreshed_at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def generate_summary_image(
    top_countries: Sequence[CountryRecord],
    status: StatusOut,
    output_path: Optional[Path] = None,
) -> Path:
    """Render the top countries by estimated GDP plus the cache status to a PNG.

    Columns: Rank | Country | Region | Estimated GDP
    Header: total cached countries and last refresh timestamp.
    """
    output_path = Path(output_path or settings.summary_image_path)
    os.makedirs(output_path.parent, exist_ok=True)

    img = Image.new("RGB", (WIDTH, HEIGHT), color=BG)
    draw = ImageDraw.Draw(img)

    font_title = _load_ttf("DejaVuSans-Bold.ttf", 20)
    font_meta = _load_ttf("DejaVuSans.ttf", 16)
    font_header = _load_ttf("DejaVuSans-Bold.ttf", 16)
    font_cell = _load_ttf("DejaVuSans.ttf", 16)

    margin = 24
    y = margin
    _text(draw, (margin, y), "Country Cache Summary: Top Estimated GDP", fill=ACCENT, font=font_title)
    y += 30
    _text(
        draw,
        (margin, y),
        f"Total Countries: {status.total_countries}    Last Refresh: {format_timestamp(status)}",
        fill=MUTED,
        font=font_meta,
    )
    y += 24

    table_top = y + 10
    table_left = margin
    table_right = WIDTH - margin
    row_h = 38
    header_h = 40

    col_rank_w = 60
    col_country_w = int((table_right - table_left - col_rank_w) * 0.45)
    col_region_w = int((table_right - table_left - col_rank_w) * 0.25)
    x_rank = table_left
    x_country = x_rank + col_rank_w
    x_region = x_country + col_country_w
    x_gdp_right = table_right - 12

    draw.rectangle([table_left, table_top, table_right, table_top + header_h], fill=HEADER_BG)
    _text(draw, (x_rank + 12, table_top + 11), "#", font=font_header)
    _text(draw, (x_country + 12, table_top + 11), "Country", font=font_header)
    _text(draw, (x_region + 12, table_top + 11), "Region", font=font_header)
    _right_text(draw, x_gdp_right, table_top + 11, "Estimated GDP (USD)", font=font_header)
    draw.line([table_left, table_top + header_h, table_right, table_top + header_h], fill=GRID, width=1)

    y_row = table_top + header_h
    rows = list(top_countries[:MAX_ROWS])
    for i in range(MAX_ROWS):
        if i % 2 == 0:
            draw.rectangle([table_left, y_row, table_right, y_row + row_h], fill=STRIPE)

        if i < len(rows):
            c = rows[i]
            _text(draw, (x_rank + 12, y_row + 10), str(i + 1), font=font_cell)
            _text(draw, (x_country + 12, y_row + 10), c.name, font=font_cell)
            _text(draw, (x_region + 12, y_row + 10), c.region or "-", font=font_cell)
            _right_text(draw, x_gdp_right, y_row + 10, format_gdp(c.estimated_gdp), font=font_cell)

        draw.line([table_left, y_row + row_h, table_right, y_row + row_h], fill=GRID, width=1)
        y_row += row_h

    draw.rectangle([table_left, table_top, table_right, y_row], outline=GRID, width=1)

    _text(
        draw,
        (margin, y_row + 16),
        "Data sources: Rest Countries API, Open ER API (base USD)",
        fill=(110, 110, 110),
        font=font_meta,
    )

    img.save(str(output_path))
    return output_path
