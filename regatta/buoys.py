"""
Buoy gate construction and crossing detection
"""

import logging
from math import atan2, cos, degrees, fmod, radians

from regatta.errors import GeometryError
from regatta.geo_utils import LineSegment, segments_intersect
from regatta.motion import destination_point

logger = logging.getLogger(__name__)

# Length of the gate on the course side, long enough to span the channel
BUOY_FAR_OFF_DISTANCE = 1000


def gate_points(buoy, far_off_distance=BUOY_FAR_OFF_DISTANCE):
    """
    Endpoints of a buoy's gate line

    Args:
        buoy: Buoy instance
        far_off_distance: Metres the gate extends along the pass angle

    Returns:
        tuple: ((near_lat, near_lon), (far_lat, far_lon)). The near point
               lies tolerance metres behind the buoy, the far point lies out
               on the course side.
    """
    near = destination_point(buoy.latitude, buoy.longitude,
                             buoy.pass_angle + 180, buoy.tolerance)
    far = destination_point(buoy.latitude, buoy.longitude,
                            buoy.pass_angle, far_off_distance)
    return near, far


def is_pass_direction_correct(near, far, old, new, clockwise):
    """
    Check which way the boat rotated around the gate's near point.

    Builds the vectors near->far (baseline), near->old and near->new, takes
    their polar angles and compares the boat angles against the baseline.
    Longitude components are scaled by the cosine of the mean latitude
    (converted to radians) to square up the coordinate system.

    Args:
        near, far: (lat, lon) gate endpoints
        old, new: (lat, lon) of the boat before and after the step
        clockwise: Required rounding direction of the buoy

    Returns:
        bool: True only if the detected rotation matches clockwise
    """
    def polar_angle(point):
        vec_y = point[0] - near[0]
        vec_x = (point[1] - near[1]) * cos(radians((point[0] + near[0]) / 2))
        return degrees(atan2(vec_y, vec_x))

    baseline = polar_angle(far)
    alpha = fmod(polar_angle(old) - baseline, 360)
    gamma = fmod(polar_angle(new) - baseline, 360)

    if alpha >= 0 and gamma <= 0:
        return clockwise

    if alpha <= 0 and gamma >= 0:
        return not clockwise

    # No consistent rotation, so the gate was not really rounded
    return False


def crossed(buoys, old_fix, new_fix, far_off_distance=BUOY_FAR_OFF_DISTANCE):
    """
    Check for every buoy whether the step old_fix -> new_fix passed its gate

    Args:
        buoys: Ordered list of Buoy instances
        old_fix, new_fix: Consecutive fixes of one boat
        far_off_distance: Gate length on the course side in metres

    Returns:
        list: One bool per buoy, True if the gate was crossed in the
              buoy's required direction
    """
    old = (old_fix.latitude, old_fix.longitude)
    new = (new_fix.latitude, new_fix.longitude)
    boat_segment = LineSegment.from_points(old[0], old[1], new[0], new[1])

    passed = []
    for buoy in buoys:
        near, far = gate_points(buoy, far_off_distance)
        buoy_segment = LineSegment.from_points(near[0], near[1], far[0], far[1])

        try:
            intersects = segments_intersect(buoy_segment, boat_segment)
        except GeometryError as e:
            logger.warning(f"Gate check for buoy {buoy.id} v{buoy.version} failed: {e}")
            intersects = False

        if not intersects:
            passed.append(False)
            continue

        passed.append(is_pass_direction_correct(near, far, old, new, buoy.clockwise))

    return passed
