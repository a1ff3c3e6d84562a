import pytest
from perception.coordinates import CoordinateMapper
from perception.geometry import Point, Rect

SCALES = [1.0, 1.25, 1.5, 2.0]

@pytest.mark.parametrize("scale", SCALES)
def test_point_round_trip_within_one_pixel(scale):
    mapper = CoordinateMapper(scale, scale)
    for x, y in [(0, 0), (1, 1), (7, 13), (333, 517), (1919, 1079)]:
        back = mapper.to_logical_point(mapper.to_physical_point(Point(x, y)))
        assert abs(back.x - x) <= 1
        assert abs(back.y - y) <= 1

def test_independent_axis_scales():
    mapper = CoordinateMapper(scale_x=2.0, scale_y=1.5)
    assert mapper.to_physical_point(Point(10, 10)) == Point(20, 15)
    assert mapper.to_logical_point(Point(20, 15)) == Point(10, 10)

def test_rect_conversion():
    mapper = CoordinateMapper(1.5, 1.5)
    physical = mapper.to_physical_rect(Rect(20, 20, 10, 10))
    assert physical == Rect(30, 30, 15, 15)
    assert mapper.to_logical_rect(physical) == Rect(20, 20, 10, 10)

def test_identity_scale_returns_same_values():
    mapper = CoordinateMapper()
    rect = Rect(3, 4, 5, 6)
    assert mapper.is_identity
    assert mapper.to_physical_rect(rect) == rect
    assert mapper.to_logical_point(Point(3, 4)) == Point(3, 4)

def test_invalid_scale_rejected():
    with pytest.raises(ValueError):
        CoordinateMapper(0, 1.0)

def test_from_config(monkeypatch):
    from agent_runtime import config
    monkeypatch.setattr(config, "DISPLAY_SCALE_X", 1.25)
    monkeypatch.setattr(config, "DISPLAY_SCALE_Y", 2.0)
    mapper = CoordinateMapper.from_config()
    assert (mapper.scale_x, mapper.scale_y) == (1.25, 2.0)

def test_rect_overlap_ratio():
    a = Rect(0, 0, 10, 10)
    assert a.overlap_ratio(a) == 1.0
    assert a.overlap_ratio(Rect(20, 20, 5, 5)) == 0.0
    assert a.overlap_ratio(Rect(5, 0, 10, 10)) == pytest.approx(50 / 150)
    assert a.center() == Point(5, 5)
