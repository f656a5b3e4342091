"""
Tests for the shape renderer.

Run with: pytest tests/test_renderer.py -v
"""

import io

from PIL import Image

from renderer import BACKGROUND_COLOR, GRID_COLOR, ShapeRenderer, render
from shapes import Arc, Circle, Dot, Line

GREEN = "#10b981"
GREEN_RGB = (16, 185, 129)


def _open(png: bytes) -> Image.Image:
    return Image.open(io.BytesIO(png)).convert("RGB")


class TestRender:
    """Output format and determinism."""

    def test_png_of_fixed_size(self):
        png = render([Dot(200, 200)], GREEN)
        assert png.startswith(b"\x89PNG")
        assert _open(png).size == (400, 400)

    def test_deterministic(self):
        shapes = [Circle(100, 100, 40), Line(0, 0, 399, 399, thickness=3), Dot(300, 50)]
        assert render(shapes, GREEN) == render(shapes, GREEN)

    def test_invalid_primitives_are_skipped(self):
        good = [{"type": "circle", "cx": 200, "cy": 200, "r": 50}]
        bad = [{"type": "star", "cx": 1}, {"type": "circle", "cx": "x", "cy": 1, "r": 1}]
        assert render(good + bad, GREEN) == render(good, GREEN)

    def test_empty_list_is_background_and_grid(self):
        image = _open(render([], GREEN))
        assert image.getpixel((0, 0)) == GRID_COLOR
        assert image.getpixel((20, 20)) == BACKGROUND_COLOR


class TestDrawing:
    """Marks land in the identity color."""

    def test_dot_uses_identity_color(self):
        image = _open(render([Dot(100, 100, r=6)], GREEN))
        assert image.getpixel((100, 100)) == GREEN_RGB

    def test_filled_circle_vs_outline(self):
        filled = _open(render([Circle(200, 200, 50, filled=True)], GREEN))
        outline = _open(render([Circle(200, 200, 50)], GREEN))
        assert filled.getpixel((210, 210)) == GREEN_RGB
        assert outline.getpixel((210, 210)) == BACKGROUND_COLOR

    def test_later_marks_draw_over_earlier(self):
        shapes = [Dot(100, 100, r=10), {"type": "dot", "cx": 100, "cy": 100, "r": 4}]
        image = ShapeRenderer().render_image(shapes, "#ff0000")
        assert image.getpixel((100, 100)) == (255, 0, 0)

    def test_unknown_color_falls_back_to_white(self):
        image = _open(render([Dot(100, 100, r=6)], "not-a-color"))
        assert image.getpixel((100, 100)) == (255, 255, 255)


def _column_has(image: Image.Image, x: int, ys, rgb) -> bool:
    return any(image.getpixel((x, y)) == rgb for y in ys)


class TestGeometry:
    """Arcs sweep clockwise from start_angle; lines join their endpoints."""

    def test_default_arc_is_lower_half(self):
        image = _open(render([Arc(200, 200, 50)], GREEN))
        assert image.getpixel((200, 249)) == GREEN_RGB
        assert image.getpixel((200, 150)) != GREEN_RGB
        assert not _column_has(image, 200, range(146, 156), GREEN_RGB)

    def test_default_arc_off_grid(self):
        image = _open(render([Arc(220, 220, 50, thickness=4)], GREEN))
        assert _column_has(image, 220, range(265, 271), GREEN_RGB)
        assert not _column_has(image, 220, range(166, 177), GREEN_RGB)
        assert image.getpixel((220, 220)) == BACKGROUND_COLOR

    def test_explicit_angles_draw_upper_half(self):
        image = _open(render([Arc(220, 220, 50, 180, 360, thickness=4)], GREEN))
        assert _column_has(image, 220, range(169, 176), GREEN_RGB)
        assert not _column_has(image, 220, range(264, 272), GREEN_RGB)

    def test_thick_line_covers_its_path(self):
        image = _open(render([Line(20, 30, 380, 390, thickness=6)], GREEN))
        assert image.getpixel((200, 210)) == GREEN_RGB
        assert image.getpixel((30, 40)) == GREEN_RGB
        assert image.getpixel((300, 100)) == BACKGROUND_COLOR
