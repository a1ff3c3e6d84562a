# perception/coordinates.py
from agent_runtime import config
from .geometry import Point, Rect


class CoordinateMapper:
    """
    Converts between logical (UI-space) and physical (device-pixel) coordinates.

    Everything handed to or received from tools is logical; screen capture and
    template matching work on physical pixels. Each value should cross the
    boundary once per direction, results are rounded to whole pixels.
    """

    def __init__(self, scale_x: float = 1.0, scale_y: float = 1.0):
        if scale_x <= 0 or scale_y <= 0:
            raise ValueError(f"Scale factors must be positive, got ({scale_x}, {scale_y})")
        self.scale_x = scale_x
        self.scale_y = scale_y

    @classmethod
    def from_config(cls) -> "CoordinateMapper":
        return cls(config.DISPLAY_SCALE_X, config.DISPLAY_SCALE_Y)

    @property
    def is_identity(self) -> bool:
        return self.scale_x == 1 and self.scale_y == 1

    def to_physical_point(self, point: Point) -> Point:
        if self.is_identity:
            return point
        return Point(round(point.x * self.scale_x), round(point.y * self.scale_y))

    def to_logical_point(self, point: Point) -> Point:
        if self.is_identity:
            return point
        return Point(round(point.x / self.scale_x), round(point.y / self.scale_y))

    def to_physical_rect(self, rect: Rect) -> Rect:
        if self.is_identity:
            return rect
        return Rect(round(rect.x * self.scale_x), round(rect.y * self.scale_y),
                    round(rect.width * self.scale_x), round(rect.height * self.scale_y))

    def to_logical_rect(self, rect: Rect) -> Rect:
        if self.is_identity:
            return rect
        return Rect(round(rect.x / self.scale_x), round(rect.y / self.scale_y),
                    round(rect.width / self.scale_x), round(rect.height / self.scale_y))
