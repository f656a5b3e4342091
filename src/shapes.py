"""
Shapes Module

Defines the closed set of drawing primitives an entity may emit (circle,
line, arc, dot) and the tolerant coercion that turns decoded model output
into validated primitives. Anything that cannot be coerced is dropped.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Union
import logging
import math

logger = logging.getLogger(__name__)

CANVAS_SIZE = 400
DEFAULT_THICKNESS = 2
DEFAULT_DOT_RADIUS = 5.0
DEFAULT_ARC_START = 0.0
DEFAULT_ARC_END = 180.0
MAX_MAGNITUDE = 100_000.0


class InvalidPrimitive(ValueError):
    """Raised internally when a shape object fails its field checks."""


def _number(value: Any, field_name: str) -> float:
    """
    Coerce a JSON value to a finite float.

    Args:
        value: Raw decoded value
        field_name: Field name used in the error message

    Returns:
        Finite float

    Raises:
        InvalidPrimitive: If the value is missing, non-numeric, non-finite or out of range
    """
    if value is None or isinstance(value, bool):
        raise InvalidPrimitive(f"missing or invalid '{field_name}'")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise InvalidPrimitive(f"non-numeric '{field_name}': {value!r}")
    if not isinstance(value, (int, float)):
        raise InvalidPrimitive(f"non-numeric '{field_name}': {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise InvalidPrimitive(f"non-finite '{field_name}'")
    if abs(number) > MAX_MAGNITUDE:
        raise InvalidPrimitive(f"out-of-range '{field_name}': {number}")
    return number


def _optional_number(data: Mapping, field_name: str, default: Optional[float]) -> Optional[float]:
    if data.get(field_name) is None:
        return default
    return _number(data[field_name], field_name)


def _radius(value: Any, field_name: str = "r") -> float:
    radius = _number(value, field_name)
    if radius < 0:
        raise InvalidPrimitive(f"negative radius: {radius}")
    return radius


def _thickness(data: Mapping) -> Optional[float]:
    thickness = _optional_number(data, "thickness", None)
    if thickness is not None and thickness <= 0:
        return None
    return thickness


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


@dataclass(frozen=True)
class Circle:
    """Circle centred on (cx, cy), stroked or filled."""
    kind: ClassVar[str] = "circle"

    cx: float
    cy: float
    r: float
    filled: bool = False
    thickness: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping) -> "Circle":
        return cls(
            cx=_number(data.get("cx"), "cx"),
            cy=_number(data.get("cy"), "cy"),
            r=_radius(data.get("r")),
            filled=_flag(data.get("filled", False)),
            thickness=_thickness(data)
        )

    def to_dict(self) -> Dict:
        """Convert to the model-facing JSON shape."""
        data = {"type": self.kind, "cx": self.cx, "cy": self.cy, "r": self.r, "filled": self.filled}
        if self.thickness is not None:
            data["thickness"] = self.thickness
        return data


@dataclass(frozen=True)
class Line:
    """Straight segment between two endpoints."""
    kind: ClassVar[str] = "line"

    x1: float
    y1: float
    x2: float
    y2: float
    thickness: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping) -> "Line":
        return cls(
            x1=_number(data.get("x1"), "x1"),
            y1=_number(data.get("y1"), "y1"),
            x2=_number(data.get("x2"), "x2"),
            y2=_number(data.get("y2"), "y2"),
            thickness=_thickness(data)
        )

    def to_dict(self) -> Dict:
        """Convert to the model-facing JSON shape."""
        data = {"type": self.kind, "x1": self.x1, "y1": self.y1, "x2": self.x2, "y2": self.y2}
        if self.thickness is not None:
            data["thickness"] = self.thickness
        return data


@dataclass(frozen=True)
class Arc:
    """Partial circle drawn clockwise from start_angle to end_angle (degrees)."""
    kind: ClassVar[str] = "arc"

    cx: float
    cy: float
    r: float
    start_angle: float = DEFAULT_ARC_START
    end_angle: float = DEFAULT_ARC_END
    thickness: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping) -> "Arc":
        return cls(
            cx=_number(data.get("cx"), "cx"),
            cy=_number(data.get("cy"), "cy"),
            r=_radius(data.get("r")),
            start_angle=_optional_number(data, "startAngle", DEFAULT_ARC_START),
            end_angle=_optional_number(data, "endAngle", DEFAULT_ARC_END),
            thickness=_thickness(data)
        )

    def to_dict(self) -> Dict:
        """Convert to the model-facing JSON shape."""
        data = {
            "type": self.kind,
            "cx": self.cx,
            "cy": self.cy,
            "r": self.r,
            "startAngle": self.start_angle,
            "endAngle": self.end_angle
        }
        if self.thickness is not None:
            data["thickness"] = self.thickness
        return data


@dataclass(frozen=True)
class Dot:
    """Small filled circle."""
    kind: ClassVar[str] = "dot"

    cx: float
    cy: float
    r: float = DEFAULT_DOT_RADIUS

    @classmethod
    def from_dict(cls, data: Mapping) -> "Dot":
        radius = data.get("r")
        return cls(
            cx=_number(data.get("cx"), "cx"),
            cy=_number(data.get("cy"), "cy"),
            r=DEFAULT_DOT_RADIUS if radius is None else _radius(radius)
        )

    def to_dict(self) -> Dict:
        """Convert to the model-facing JSON shape."""
        return {"type": self.kind, "cx": self.cx, "cy": self.cy, "r": self.r}


DrawingPrimitive = Union[Circle, Line, Arc, Dot]

PRIMITIVE_TYPES = {
    cls.kind: cls for cls in (Circle, Line, Arc, Dot)
}


def coerce_primitive(item: Any) -> Optional[DrawingPrimitive]:
    """
    Turn one decoded shape object into a validated primitive.

    Args:
        item: A primitive instance or a mapping with a ``type`` tag

    Returns:
        The primitive, or None if the item is invalid
    """
    if isinstance(item, (Circle, Line, Arc, Dot)):
        return item
    if not isinstance(item, Mapping):
        logger.debug(f"Dropping non-object shape: {item!r}")
        return None

    kind = str(item.get("type") or "").strip().lower()
    cls = PRIMITIVE_TYPES.get(kind)
    if cls is None:
        logger.debug(f"Dropping shape with unknown type: {kind!r}")
        return None

    try:
        return cls.from_dict(item)
    except InvalidPrimitive as e:
        logger.debug(f"Dropping invalid {kind}: {e}")
        return None


def validate_primitives(items: Optional[Iterable[Any]]) -> List[DrawingPrimitive]:
    """
    Validate a sequence of shapes, keeping order and dropping invalid ones.

    Args:
        items: Decoded shapes (or None)

    Returns:
        List of valid primitives
    """
    if not items or isinstance(items, (str, bytes, Mapping)):
        return []
    primitives = []
    for item in items:
        primitive = coerce_primitive(item)
        if primitive is not None:
            primitives.append(primitive)
    return primitives


def placeholder_primitive() -> DrawingPrimitive:
    """Single mark used when an entity draws nothing valid."""
    center = CANVAS_SIZE / 2
    return Dot(cx=center, cy=center, r=DEFAULT_DOT_RADIUS)
