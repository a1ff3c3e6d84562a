from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Point:
    x: int
    y: int

    def to_dict(self) -> dict[str, Any]:
        return {'x': self.x, 'y': self.y}


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def area(self) -> int:
        return max(self.width, 0) * max(self.height, 0)

    def center(self) -> Point:
        return Point(self.x + self.width // 2, self.y + self.height // 2)

    def intersection_area(self, other: "Rect") -> int:
        w = min(self.right, other.right) - max(self.x, other.x)
        h = min(self.bottom, other.bottom) - max(self.y, other.y)
        return w * h if w > 0 and h > 0 else 0

    def overlap_ratio(self, other: "Rect") -> float:
        """Intersection over union, 0.0 for disjoint rectangles."""
        inter = self.intersection_area(other)
        if inter == 0:
            return 0.0
        return inter / float(self.area() + other.area() - inter)

    def to_dict(self) -> dict[str, Any]:
        return {
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
        }
