"""
Tests for shape validation.

Run with: pytest tests/test_shapes.py -v
"""

from shapes import (
    CANVAS_SIZE,
    Arc,
    Circle,
    Dot,
    Line,
    coerce_primitive,
    placeholder_primitive,
    validate_primitives,
)


class TestCoercePrimitive:
    """Each shape type accepts well-formed objects and rejects broken ones."""

    def test_circle(self):
        shape = coerce_primitive({"type": "circle", "cx": 100, "cy": 120, "r": 30, "filled": True})
        assert shape == Circle(cx=100, cy=120, r=30, filled=True)

    def test_line_with_thickness(self):
        shape = coerce_primitive({"type": "line", "x1": 0, "y1": 0, "x2": 400, "y2": 400, "thickness": 4})
        assert shape == Line(0, 0, 400, 400, thickness=4)

    def test_arc_defaults_to_half_circle(self):
        shape = coerce_primitive({"type": "arc", "cx": 200, "cy": 200, "r": 50})
        assert isinstance(shape, Arc)
        assert shape.start_angle == 0
        assert shape.end_angle == 180

    def test_dot_default_radius(self):
        assert coerce_primitive({"type": "dot", "cx": 5, "cy": 6}) == Dot(5, 6, 5)

    def test_numeric_strings_are_accepted(self):
        shape = coerce_primitive({"type": "dot", "cx": "10", "cy": " 20.5 "})
        assert shape == Dot(10, 20.5)

    def test_type_is_case_insensitive(self):
        assert isinstance(coerce_primitive({"type": "Circle", "cx": 1, "cy": 1, "r": 1}), Circle)

    def test_unknown_type_dropped(self):
        assert coerce_primitive({"type": "square", "x": 1}) is None

    def test_missing_field_dropped(self):
        assert coerce_primitive({"type": "circle", "cx": 1, "cy": 1}) is None

    def test_non_numeric_field_dropped(self):
        assert coerce_primitive({"type": "line", "x1": "left", "y1": 0, "x2": 1, "y2": 1}) is None

    def test_boolean_is_not_a_number(self):
        assert coerce_primitive({"type": "dot", "cx": True, "cy": 1}) is None

    def test_non_finite_dropped(self):
        assert coerce_primitive({"type": "dot", "cx": float("nan"), "cy": 1}) is None
        assert coerce_primitive({"type": "dot", "cx": float("inf"), "cy": 1}) is None

    def test_negative_radius_dropped(self):
        assert coerce_primitive({"type": "circle", "cx": 1, "cy": 1, "r": -4}) is None

    def test_non_mapping_dropped(self):
        assert coerce_primitive("circle") is None
        assert coerce_primitive(None) is None

    def test_zero_thickness_falls_back_to_default(self):
        shape = coerce_primitive({"type": "line", "x1": 0, "y1": 0, "x2": 1, "y2": 1, "thickness": 0})
        assert shape.thickness is None


class TestValidatePrimitives:
    def test_keeps_order_and_drops_invalid(self):
        items = [
            {"type": "dot", "cx": 1, "cy": 1},
            {"type": "hexagon"},
            {"type": "circle", "cx": 2, "cy": 2, "r": 2},
            42,
        ]
        assert validate_primitives(items) == [Dot(1, 1), Circle(2, 2, 2)]

    def test_none_and_non_lists(self):
        assert validate_primitives(None) == []
        assert validate_primitives("shapes") == []
        assert validate_primitives({"type": "dot", "cx": 1, "cy": 1}) == []

    def test_to_dict_uses_wire_names(self):
        arc = Arc(10, 10, 5, start_angle=90, end_angle=270)
        data = arc.to_dict()
        assert data["type"] == "arc"
        assert data["startAngle"] == 90
        assert data["endAngle"] == 270
        assert coerce_primitive(data) == arc


class TestPlaceholder:
    def test_centered_dot(self):
        assert placeholder_primitive() == Dot(CANVAS_SIZE / 2, CANVAS_SIZE / 2, 5)
