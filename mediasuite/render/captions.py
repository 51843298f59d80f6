"""Caption rasterizer.

Caption text is drawn with Pillow onto a transparent PNG which the clip
preprocessor overlays near the bottom of the frame. Rasterizing up front keeps
arbitrary user text out of the filter graph entirely.
"""

import logging
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from mediasuite.config import get_settings
from mediasuite.render.filtergraph import Filter

logger = logging.getLogger(__name__)

FONT_CANDIDATES = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Bold.ttc",
    "/usr/share/fonts/truetype/noto/NotoSansCJK-Bold.ttc",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/System/Library/Fonts/Supplemental/Arial Bold.ttf",  # macOS
]

TEXT_RGBA = (255, 255, 255, 255)
SHADOW_RGBA = (0, 0, 0, 255)
SHADOW_OFFSET = 2
LINE_SPACING = 1.25
PADDING = 8


def load_font(size: int, font_path: str | None = None) -> ImageFont.ImageFont:
    candidates = [font_path] if font_path else []
    candidates += FONT_CANDIDATES
    for candidate in candidates:
        try:
            font = ImageFont.truetype(candidate, size)
            logger.debug(f"[CAPTION] Loaded font: {candidate}")
            return font
        except OSError:
            continue
    logger.warning("[CAPTION] No suitable font found, using PIL default")
    return ImageFont.load_default()


def wrap_text(text: str, font: ImageFont.ImageFont, max_width: int) -> list[str]:
    """Greedy word wrap; explicit newlines are kept."""
    lines: list[str] = []
    for paragraph in text.splitlines() or [""]:
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = words[0]
        for word in words[1:]:
            candidate = f"{current} {word}"
            if font.getlength(candidate) <= max_width:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return lines


def render_caption(
    text: str,
    output_path: str | Path,
    frame_width: int,
    *,
    font_size: int | None = None,
    font_path: str | None = None,
) -> Path:
    """Rasterize caption text to a transparent PNG.

    Args:
        text: Caption text, may contain newlines
        output_path: Where to write the PNG
        frame_width: Width of the video frame; lines wrap at 90% of it
        font_size: Defaults to ``settings.caption_font_size``
        font_path: Explicit font file, tried before the built-in candidates

    Returns:
        Path of the written PNG
    """
    settings = get_settings()
    font_size = font_size or settings.caption_font_size
    font = load_font(font_size, font_path or settings.caption_font_path or None)

    lines = wrap_text(text.strip(), font, int(frame_width * 0.9))
    line_height = int(font_size * LINE_SPACING)
    widths = [int(font.getlength(line or " ")) for line in lines]

    img_width = max(widths) + PADDING * 2 + SHADOW_OFFSET
    img_height = line_height * len(lines) + PADDING * 2 + SHADOW_OFFSET

    img = Image.new("RGBA", (img_width, img_height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)

    y = PADDING
    for line, width in zip(lines, widths):
        x = (img_width - SHADOW_OFFSET - width) / 2
        draw.text((x + SHADOW_OFFSET, y + SHADOW_OFFSET), line, font=font, fill=SHADOW_RGBA)
        draw.text((x, y), line, font=font, fill=TEXT_RGBA)
        y += line_height

    output_path = Path(output_path)
    img.save(output_path, "PNG")
    logger.info(f"[CAPTION] Generated PNG: {output_path} ({img_width}x{img_height})")
    return output_path


def overlay_filters(margin_bottom: int | None = None) -> list[Filter]:
    """Overlay centered horizontally, ``margin_bottom`` pixels above the bottom edge."""
    settings = get_settings()
    margin = settings.caption_margin_bottom if margin_bottom is None else margin_bottom
    return [
        Filter("overlay", x="(W-w)/2", y=f"H-h-{margin}", format="auto"),
        Filter("format", settings.render_pix_fmt),
    ]