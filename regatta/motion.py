"""
Heading, distance and projection math for GPS fixes
"""

from math import radians, degrees, sin, cos, asin, atan2, sqrt

EARTH_RADIUS_M = 6371e3
NAUTICAL_MILES_PER_DEGREE = 60


def destination_point(lat, lon, bearing, distance):
    """
    Project a point along a great circle on a spherical earth

    Args:
        lat, lon: Start point (decimal degrees)
        bearing: Degrees clockwise from north
        distance: Metres

    Returns:
        tuple: (lat, lon) of the projected point in decimal degrees
    """
    lat1 = radians(lat)
    lon1 = radians(lon)
    theta = radians(bearing)
    delta = distance / EARTH_RADIUS_M

    lat2 = asin(sin(lat1) * cos(delta) + cos(lat1) * sin(delta) * cos(theta))
    lon2 = lon1 + atan2(sin(theta) * sin(delta) * cos(lat1),
                        cos(delta) - sin(lat1) * sin(lat2))

    return degrees(lat2), degrees(lon2)


def calculate_heading(old_lat, old_lon, new_lat, new_lon):
    """
    Forward azimuth from the old to the new position.

    0 degrees is north and the heading rotates clockwise. The raw atan2
    result is returned, so headings west of north come out negative
    (range (-180, 180]). Use normalize_heading() where [0, 360) is needed.
    Identical points yield 0.
    """
    old_lat_r, old_lon_r = radians(old_lat), radians(old_lon)
    new_lat_r, new_lon_r = radians(new_lat), radians(new_lon)

    x = cos(new_lat_r) * sin(new_lon_r - old_lon_r)
    y = (cos(old_lat_r) * sin(new_lat_r)
         - sin(old_lat_r) * cos(new_lat_r) * cos(new_lon_r - old_lon_r))
    return degrees(atan2(x, y))


def normalize_heading(heading):
    """Map a heading onto [0, 360)"""
    return heading % 360


def distance_nm(old_lat, old_lon, new_lat, new_lon):
    """
    Distance in nautical miles on a locally flat plane.

    The longitude scale is the mean of cos() applied to the latitudes in
    degrees, not radians. Buoy tolerances and recorded distances were tuned
    against this scaling, so it is kept as is. Only meaningful over the few
    kilometres of a regatta course.
    """
    cos_latitude = (cos(new_lat) + cos(old_lat)) / 2
    delta_n = (new_lat - old_lat) * NAUTICAL_MILES_PER_DEGREE
    delta_w = (new_lon - old_lon) * NAUTICAL_MILES_PER_DEGREE * cos_latitude
    return sqrt(delta_n * delta_n + delta_w * delta_w)


def velocity_knots(distance, seconds):
    """Speed over ground in knots, or None when no time has passed"""
    if seconds <= 0:
        return None
    return distance * 3600 / seconds
