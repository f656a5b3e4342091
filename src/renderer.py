"""
Renderer Module

Rasterises an entity's primitives onto the shared 400x400 glass. Output is
PNG bytes; the same primitives and color always produce the same bytes.
"""

from typing import Any, Iterable, Sequence, Tuple
import io
import logging

from PIL import Image, ImageColor, ImageDraw

from shapes import (
    CANVAS_SIZE,
    DEFAULT_THICKNESS,
    Arc,
    Circle,
    Dot,
    DrawingPrimitive,
    Line,
    validate_primitives,
)

logger = logging.getLogger(__name__)

BACKGROUND_COLOR = (10, 10, 10)
GRID_COLOR = (17, 17, 17)
GRID_SPACING = 40
FALLBACK_COLOR = "#ffffff"


def _resolve_color(color: str) -> Tuple[int, int, int]:
    try:
        return ImageColor.getrgb(color)[:3]
    except (ValueError, AttributeError):
        logger.warning(f"Unknown identity color {color!r}, using {FALLBACK_COLOR}")
        return ImageColor.getrgb(FALLBACK_COLOR)[:3]


def _width(primitive: DrawingPrimitive) -> int:
    thickness = getattr(primitive, "thickness", None) or DEFAULT_THICKNESS
    return max(1, int(round(thickness)))


def _bbox(cx: float, cy: float, r: float) -> Sequence[float]:
    return [cx - r, cy - r, cx + r, cy + r]


class ShapeRenderer:
    """
    Draws primitives onto a fixed-size canvas with a faint background grid.

    Primitives are drawn in input order, so later marks cover earlier ones.
    """

    def __init__(self, size: int = CANVAS_SIZE, grid_spacing: int = GRID_SPACING):
        """
        Initialize the renderer.

        Args:
            size: Canvas width and height in pixels
            grid_spacing: Distance between grid lines
        """
        self.size = size
        self.grid_spacing = grid_spacing

    def _draw_grid(self, draw: ImageDraw.ImageDraw) -> None:
        for offset in range(0, self.size + 1, self.grid_spacing):
            draw.line([(offset, 0), (offset, self.size)], fill=GRID_COLOR, width=1)
            draw.line([(0, offset), (self.size, offset)], fill=GRID_COLOR, width=1)

    def _draw_primitive(
        self,
        draw: ImageDraw.ImageDraw,
        primitive: DrawingPrimitive,
        color: Tuple[int, int, int]
    ) -> None:
        if isinstance(primitive, Circle):
            bbox = _bbox(primitive.cx, primitive.cy, primitive.r)
            if primitive.filled:
                draw.ellipse(bbox, fill=color)
            else:
                draw.ellipse(bbox, outline=color, width=_width(primitive))
        elif isinstance(primitive, Line):
            draw.line(
                [(primitive.x1, primitive.y1), (primitive.x2, primitive.y2)],
                fill=color,
                width=_width(primitive)
            )
        elif isinstance(primitive, Arc):
            draw.arc(
                _bbox(primitive.cx, primitive.cy, primitive.r),
                start=primitive.start_angle,
                end=primitive.end_angle,
                fill=color,
                width=_width(primitive)
            )
        elif isinstance(primitive, Dot):
            draw.ellipse(_bbox(primitive.cx, primitive.cy, primitive.r), fill=color)

    def render_image(self, primitives: Iterable[Any], color: str) -> Image.Image:
        """
        Render primitives to a PIL image.

        Args:
            primitives: Primitive instances or raw shape mappings; invalid ones are skipped
            color: Identity color (any PIL color string, e.g. '#10b981')

        Returns:
            RGB image of size x size
        """
        image = Image.new("RGB", (self.size, self.size), BACKGROUND_COLOR)
        draw = ImageDraw.Draw(image)
        self._draw_grid(draw)

        rgb = _resolve_color(color)
        for primitive in validate_primitives(primitives):
            self._draw_primitive(draw, primitive, rgb)

        return image

    def render(self, primitives: Iterable[Any], color: str) -> bytes:
        """
        Render primitives to PNG bytes.

        Args:
            primitives: Primitive instances or raw shape mappings
            color: Identity color

        Returns:
            PNG-encoded image
        """
        image = self.render_image(primitives, color)
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()


_default_renderer = ShapeRenderer()


def render(primitives: Iterable[Any], color: str) -> bytes:
    """Render with the default 400x400 renderer."""
    return _default_renderer.render(primitives, color)
