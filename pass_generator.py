"""
Event Pass Renderer
Composites a participant's details and a QR code onto the pass template and
returns JPEG bytes.

The template and fonts are loaded once per renderer; get_renderer() hands out
a single process-wide renderer so worker threads share the loaded assets.
"""

from __future__ import annotations

import base64
import logging
import threading
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import config
from config import (
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    GLOW_COLOR,
    GLOW_WIDTH,
    JPEG_QUALITY,
    QR_BOX,
    QR_PADDING,
    STROKE_COLOR,
    STROKE_WIDTH,
    TEXT_CENTER_X,
    TEXT_COLOR,
    TEXT_FIELDS,
    TEXT_MAX_WIDTH,
    TEXT_MIN_FONT_SIZE,
)
from errors import PassAssetError
from models import PassRequest
from qr_payload import encode, make_qr_image

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@lru_cache(maxsize=None)
def _read_font_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


class PassRenderer:
    """Renders event passes onto a fixed-size template."""

    def __init__(self, template_path: PathLike, bold_font_path: PathLike, regular_font_path: PathLike):
        """
        Args:
            template_path: Background artwork (any size; resized to the canvas)
            bold_font_path: TrueType font for the team ID and participant name
            regular_font_path: TrueType font for the remaining fields
        """
        self.template_path = Path(template_path)
        self.font_paths = {"bold": Path(bold_font_path), "regular": Path(regular_font_path)}
        self._template = None
        self._fonts: Dict[Tuple[str, int], object] = {}
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._template is not None

    def load(self) -> None:
        """Load template and fonts once. Missing assets raise PassAssetError."""
        if self._template is not None:
            return
        with self._lock:
            if self._template is not None:
                return
            from PIL import Image, ImageFont

            if not self.template_path.is_file():
                raise PassAssetError(f"Pass template not found at {self.template_path}")
            for weight, path in self.font_paths.items():
                if not path.is_file():
                    raise PassAssetError(f"{weight.capitalize()} font not found at {path}")

            try:
                with Image.open(self.template_path) as src:
                    template = src.convert("RGBA")
            except OSError as e:
                raise PassAssetError(f"Could not read pass template {self.template_path}: {e}") from e
            if template.size != (CANVAS_WIDTH, CANVAS_HEIGHT):
                logger.info(
                    "Resizing template %s from %sx%s to %sx%s",
                    self.template_path.name, template.width, template.height, CANVAS_WIDTH, CANVAS_HEIGHT,
                )
                template = template.resize((CANVAS_WIDTH, CANVAS_HEIGHT), Image.Resampling.LANCZOS)

            # Preload every size the layout asks for, so renders only read the cache
            fonts = {}
            for _field, _y, size, weight in TEXT_FIELDS:
                try:
                    fonts[(weight, size)] = ImageFont.truetype(
                        BytesIO(_read_font_bytes(str(self.font_paths[weight]))), size
                    )
                except OSError as e:
                    raise PassAssetError(f"Could not load font {self.font_paths[weight]}: {e}") from e
            self._fonts = fonts
            self._template = template
            logger.info("Loaded pass template %s and %d font sizes", self.template_path, len(fonts))

    def _font(self, weight: str, size: int):
        key = (weight, size)
        font = self._fonts.get(key)
        if font is None:
            from PIL import ImageFont

            # Shrunk sizes are built on demand from the cached font bytes
            font = ImageFont.truetype(BytesIO(_read_font_bytes(str(self.font_paths[weight]))), size)
            with self._lock:
                self._fonts.setdefault(key, font)
        return font

    def _fit_font(self, draw, text: str, weight: str, size: int):
        font = self._font(weight, size)
        while size > TEXT_MIN_FONT_SIZE:
            left, _top, right, _bottom = draw.textbbox((0, 0), text, font=font, stroke_width=GLOW_WIDTH)
            if right - left <= TEXT_MAX_WIDTH:
                break
            size -= 2
            font = self._font(weight, size)
        return font

    def _draw_outlined_text(self, card, xy: Tuple[int, int], text: str, font):
        """Outer stroke, then a wider translucent glow, then the fill on top."""
        from PIL import Image, ImageDraw

        draw = ImageDraw.Draw(card)
        draw.text(xy, text, font=font, anchor="mm", fill=STROKE_COLOR,
                  stroke_width=STROKE_WIDTH, stroke_fill=STROKE_COLOR)

        glow = Image.new("RGBA", card.size, (0, 0, 0, 0))
        ImageDraw.Draw(glow).text(xy, text, font=font, anchor="mm", fill=GLOW_COLOR,
                                  stroke_width=GLOW_WIDTH, stroke_fill=GLOW_COLOR)
        card = Image.alpha_composite(card, glow)

        ImageDraw.Draw(card).text(xy, text, font=font, anchor="mm", fill=TEXT_COLOR)
        return card

    def _paste_qr(self, card, request: PassRequest) -> None:
        from PIL import Image

        x, y, size = QR_BOX
        try:
            qr_img = make_qr_image(encode(request))
            if hasattr(qr_img, "get_image"):
                qr_img = qr_img.get_image()
            qr_img = qr_img.convert("RGB").resize((size, size), Image.Resampling.NEAREST)
        except Exception:
            logger.exception("QR generation failed for %s (%s); rendering without QR",
                             request.participant_name, request.team_id)
            return
        qr_bg = Image.new("RGBA", (size + QR_PADDING * 2, size + QR_PADDING * 2), (255, 255, 255, 255))
        qr_bg.paste(qr_img, (QR_PADDING, QR_PADDING))
        card.paste(qr_bg, (x - QR_PADDING, y - QR_PADDING))

    def render_image(self, request: PassRequest):
        """Compose the pass and return it as an RGB PIL image."""
        from PIL import ImageDraw

        self.load()
        card = self._template.copy()
        self._paste_qr(card, request)

        measure = ImageDraw.Draw(card)
        for field, y, size, weight in TEXT_FIELDS:
            text = str(getattr(request, field) or "").strip()
            if not text:
                continue
            font = self._fit_font(measure, text, weight, size)
            card = self._draw_outlined_text(card, (TEXT_CENTER_X, y), text, font)
            measure = ImageDraw.Draw(card)

        return card.convert("RGB")

    def render(self, request: PassRequest) -> bytes:
        """Render a pass as JPEG bytes (fixed canvas, quality JPEG_QUALITY)."""
        img = self.render_image(request)
        buf = BytesIO()
        img.save(buf, format="JPEG", quality=JPEG_QUALITY, optimize=True)
        return buf.getvalue()

    def render_base64(self, request: PassRequest) -> str:
        """Render a pass and return it base64 encoded (for email attachments)."""
        return base64.b64encode(self.render(request)).decode("ascii")


_renderer: Optional[PassRenderer] = None
_renderer_lock = threading.Lock()


def get_renderer(settings: Optional[config.Settings] = None) -> PassRenderer:
    """Process-wide renderer; assets are loaded on first call and then reused."""
    global _renderer
    if _renderer is not None:
        return _renderer
    with _renderer_lock:
        if _renderer is None:
            s = settings or config.Settings.from_env()
            renderer = PassRenderer(s.template_path, s.bold_font_path, s.regular_font_path)
            renderer.load()
            _renderer = renderer
    return _renderer


def reset_renderer() -> None:
    global _renderer
    with _renderer_lock:
        _renderer = None
