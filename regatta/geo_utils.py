"""
Planar line segment geometry used for buoy gate crossing detection

Coordinates are treated as Cartesian (x, y). The buoy detector passes
latitude as x and longitude as y.
"""

from regatta.errors import GeometryError


class LineSegment:
    """
    Line segment stored as y = slope * x + offset over the x domain [start, end].

    A vertical segment (both endpoints share x) keeps x in offset and its
    y domain in [start, end].
    """

    def __init__(self, slope, offset, start, end, is_vertical=False):
        self.slope = slope
        self.offset = offset
        self.start = start
        self.end = end
        self.is_vertical = is_vertical

    @classmethod
    def from_points(cls, x0, y0, x1, y1):
        """
        Build the segment between (x0, y0) and (x1, y1)

        Args:
            x0, y0: First endpoint
            x1, y1: Second endpoint

        Returns:
            LineSegment: Vertical when x0 == x1, sloped otherwise
        """
        if x0 == x1:
            return cls(0.0, x0, y0, y1, is_vertical=True)

        slope = (y1 - y0) / (x1 - x0)
        offset = y1 - slope * x1
        return cls(slope, offset, x0, x1)

    @property
    def low(self):
        return min(self.start, self.end)

    @property
    def high(self):
        return max(self.start, self.end)

    def y(self, x):
        """y value of the segment's line at x"""
        if self.is_vertical:
            raise GeometryError("line segment is vertical")
        return self.slope * x + self.offset

    def __repr__(self):
        if self.is_vertical:
            return f"LineSegment(x={self.offset}, y=[{self.start}, {self.end}])"
        return (f"LineSegment(slope={self.slope}, offset={self.offset}, "
                f"x=[{self.start}, {self.end}])")


def domains_overlap(a, b):
    """Closed-interval overlap of the two segments' domains"""
    return not (a.high < b.low or b.high < a.low)


def _vertical_intersects(vertical, other):
    if other.low > vertical.offset or other.high < vertical.offset:
        return False

    y = other.y(vertical.offset)
    return vertical.low <= y <= vertical.high


def segments_intersect(a, b):
    """
    Check if two line segments intersect. Touching at an endpoint counts.

    Args:
        a, b: LineSegment instances

    Returns:
        bool: True if the segments share at least one point

    Raises:
        GeometryError: If a degenerate segment is asked for y at x
    """
    if a.is_vertical and b.is_vertical:
        # Same x: overlap of the y domains, otherwise parallel
        if a.offset == b.offset:
            return domains_overlap(a, b)
        return False

    if a.is_vertical:
        return _vertical_intersects(a, b)

    if b.is_vertical:
        return _vertical_intersects(b, a)

    if a.slope == b.slope:
        # Collinear segments overlap, parallel ones never meet
        if a.offset == b.offset:
            return domains_overlap(a, b)
        return False

    x = -(b.offset - a.offset) / (b.slope - a.slope)
    return a.low <= x <= a.high and b.low <= x <= b.high
