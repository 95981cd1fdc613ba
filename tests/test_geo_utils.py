"""
Tests for line segment geometry
"""

import pytest
from regatta.errors import GeometryError
from regatta.geo_utils import LineSegment, domains_overlap, segments_intersect


class TestLineSegment:
    """Tests for LineSegment construction"""

    def test_sloped_segment(self):
        """Test slope and offset of a sloped segment"""
        seg = LineSegment.from_points(0, 1, 2, 5)
        assert seg.slope == pytest.approx(2)
        assert seg.offset == pytest.approx(1)
        assert (seg.start, seg.end) == (0, 2)
        assert seg.is_vertical is False

    def test_vertical_segment(self):
        """Test vertical segment keeps x in offset and y as domain"""
        seg = LineSegment.from_points(3, 1, 3, -4)
        assert seg.is_vertical is True
        assert seg.offset == 3
        assert (seg.low, seg.high) == (-4, 1)

    def test_y_at_x(self):
        """Test evaluating a sloped segment"""
        seg = LineSegment.from_points(0, 0, 4, 2)
        assert seg.y(2) == pytest.approx(1)

    def test_y_on_vertical_raises(self):
        """Test asking a vertical segment for y is a geometry error"""
        seg = LineSegment.from_points(1, 0, 1, 1)
        with pytest.raises(GeometryError):
            seg.y(1)

    def test_domains_overlap_touching(self):
        """Test domains touching at one point overlap"""
        a = LineSegment.from_points(0, 0, 1, 1)
        b = LineSegment.from_points(1, 5, 2, 6)
        assert domains_overlap(a, b) is True


class TestSegmentsIntersect:
    """Tests for segment intersection"""

    def test_crossing_segments(self):
        """Test clearly intersecting segments"""
        a = LineSegment.from_points(0, 0, 2, 2)
        b = LineSegment.from_points(0, 2, 2, 0)
        assert segments_intersect(a, b) is True

    def test_disjoint_segments(self):
        """Test lines meet outside both segments"""
        a = LineSegment.from_points(0, 0, 1, 1)
        b = LineSegment.from_points(3, 0, 4, -1)
        assert segments_intersect(a, b) is False

    def test_symmetric(self):
        """Test intersection does not depend on argument order"""
        a = LineSegment.from_points(0, 0, 2, 2)
        b = LineSegment.from_points(0, 2, 2, 0)
        c = LineSegment.from_points(5, 0, 6, 3)
        assert segments_intersect(a, b) == segments_intersect(b, a)
        assert segments_intersect(a, c) == segments_intersect(c, a)

    def test_segment_with_itself(self):
        """Test a segment intersects itself"""
        a = LineSegment.from_points(0, 0, 2, 1)
        assert segments_intersect(a, a) is True

    def test_parallel_segments(self):
        """Test parallel segments never intersect"""
        a = LineSegment.from_points(0, 0, 2, 2)
        b = LineSegment.from_points(0, 1, 2, 3)
        assert segments_intersect(a, b) is False

    def test_collinear_overlapping(self):
        """Test collinear segments with overlapping domains"""
        a = LineSegment.from_points(0, 0, 2, 2)
        b = LineSegment.from_points(1, 1, 3, 3)
        assert segments_intersect(a, b) is True

    def test_collinear_apart(self):
        """Test collinear segments with separate domains"""
        a = LineSegment.from_points(0, 0, 1, 1)
        b = LineSegment.from_points(2, 2, 3, 3)
        assert segments_intersect(a, b) is False

    def test_touching_endpoint(self):
        """Test touching at an endpoint counts as intersecting"""
        a = LineSegment.from_points(0, 0, 1, 1)
        b = LineSegment.from_points(1, 1, 2, 0)
        assert segments_intersect(a, b) is True

    def test_vertical_crossing_sloped(self):
        """Test vertical segment crossing a sloped one"""
        vertical = LineSegment.from_points(1, -1, 1, 1)
        sloped = LineSegment.from_points(0, 0, 2, 0.5)
        assert segments_intersect(vertical, sloped) is True
        assert segments_intersect(sloped, vertical) is True

    def test_vertical_outside_domain(self):
        """Test vertical segment left of the sloped segment's domain"""
        vertical = LineSegment.from_points(-1, -1, -1, 1)
        sloped = LineSegment.from_points(0, 0, 2, 0)
        assert segments_intersect(vertical, sloped) is False

    def test_vertical_above_sloped(self):
        """Test vertical segment passes above the sloped segment"""
        vertical = LineSegment.from_points(1, 2, 1, 3)
        sloped = LineSegment.from_points(0, 0, 2, 0)
        assert segments_intersect(vertical, sloped) is False

    def test_two_verticals_same_x(self):
        """Test overlapping verticals on the same x"""
        a = LineSegment.from_points(1, 0, 1, 2)
        b = LineSegment.from_points(1, 1, 1, 3)
        assert segments_intersect(a, b) is True

    def test_two_verticals_different_x(self):
        """Test verticals on different x never meet"""
        a = LineSegment.from_points(1, 0, 1, 2)
        b = LineSegment.from_points(2, 0, 2, 2)
        assert segments_intersect(a, b) is False
