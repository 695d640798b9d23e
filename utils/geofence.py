# app/utils/geofence.py

from math import atan2, cos, floor, radians, sin, sqrt, tan

from models.coordinates import Coordinates

EARTH_RADIUS_M = 6371000

# WGS84 ellipsoid
WGS84_A = 6378137.0
WGS84_F = 1 / 298.257223563
UTM_K0 = 0.9996


def haversine_dist(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    R = EARTH_RADIUS_M
    φ1, φ2 = radians(lat1), radians(lat2)
    Δφ = radians(lat2 - lat1)
    Δλ = radians(lng2 - lng1)

    a = sin(Δφ/2)**2 + cos(φ1) * cos(φ2) * sin(Δλ/2)**2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return R * c


def distance_between(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in meters between two coordinates."""
    return haversine_dist(a.latitude, a.longitude, b.latitude, b.longitude)


def in_geofence(distance_m: float, radius_m: float) -> bool:
    # Inclusive: a reading exactly on the boundary is inside
    return distance_m <= radius_m


def latlon_to_utm(lat: float, lon: float) -> str:
    """
    Convert a WGS84 position to a UTM display string.

    Uses the series expansion of the transverse Mercator projection, which is
    accurate to well under a meter inside a zone. Meant for showing officers
    a grid reference next to a scan, not for surveying.

    Returns:
        "Zone 47 | E: 662153 N: 1521187", or "Outside UTM Limits" outside
        latitudes [-80, 84].
    """
    if not (-80 <= lat <= 84):
        return "Outside UTM Limits"

    false_easting = 500000.0
    false_northing = 0.0 if lat >= 0.0 else 10000000.0

    zone_number = floor((lon + 180.0) / 6) + 1
    central_meridian = radians((zone_number - 1) * 6 - 180 + 3)

    a = WGS84_A
    b = a * (1 - WGS84_F)
    e_sq = (a * a - b * b) / (a * a)
    e_prime_sq = (a * a - b * b) / (b * b)

    lat_rad = radians(lat)
    lon_rad = radians(lon)

    N = a / sqrt(1 - e_sq * sin(lat_rad) ** 2)
    T = tan(lat_rad) ** 2
    C = e_prime_sq * cos(lat_rad) ** 2
    A = cos(lat_rad) * (lon_rad - central_meridian)

    M = a * (
        (1 - e_sq / 4 - 3 * e_sq ** 2 / 64 - 5 * e_sq ** 3 / 256) * lat_rad
        - (3 * e_sq / 8 + 3 * e_sq ** 2 / 32 + 45 * e_sq ** 3 / 1024) * sin(2 * lat_rad)
        + (15 * e_sq ** 2 / 256 + 45 * e_sq ** 3 / 1024) * sin(4 * lat_rad)
        - (35 * e_sq ** 3 / 3072) * sin(6 * lat_rad)
    )

    easting = false_easting + UTM_K0 * N * (
        A
        + (1 - T + C) * A ** 3 / 6
        + (5 - 18 * T + T * T + 72 * C - 58 * e_prime_sq) * A ** 5 / 120
    )

    northing = false_northing + UTM_K0 * (
        M
        + N * tan(lat_rad) * (
            A ** 2 / 2
            + (5 - T + 9 * C + 4 * C * C) * A ** 4 / 24
            + (61 - 58 * T + T * T + 600 * C - 330 * e_prime_sq) * A ** 6 / 720
        )
    )

    return f"Zone {zone_number} | E: {floor(easting)} N: {floor(northing)}"
