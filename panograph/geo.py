"""Geographic utility functions."""

import math

EARTH_RADIUS = 6371000  # meters, haversine
MERCATOR_RADIUS = 6378137  # meters, EPSG:3857
MERCATOR_MAX_LAT = 85.0511287798  # degrees


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points in meters using Haversine formula"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (math.sin(delta_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1 - a)))

    return EARTH_RADIUS * c


def bearing_between(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate bearing from point 1 to point 2 in degrees (0-360, 0=North).

    Coincident points have no direction; they get 0 rather than NaN.
    """
    if lat1 == lat2 and lon1 == lon2:
        return 0.0

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)

    x = math.sin(delta_lambda) * math.cos(phi2)
    y = (math.cos(phi1) * math.sin(phi2) -
         math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda))

    return norm360(math.degrees(math.atan2(x, y)))


def norm360(degrees: float) -> float:
    """Wrap any angle into [0, 360)"""
    wrapped = degrees % 360.0
    # Tiny negative inputs round up to exactly 360.0
    return 0.0 if wrapped >= 360.0 else wrapped


def signed_angle_delta(a: float, b: float) -> float:
    """Smallest signed rotation from b to a, in (-180, 180]"""
    delta = (a - b + 540.0) % 360.0 - 180.0
    return 180.0 if delta <= -180.0 else delta


def bearing_to_vector(bearing: float) -> tuple[float, float]:
    """Unit (east, north) vector pointing along a compass bearing"""
    rad = math.radians(bearing)
    return math.sin(rad), math.cos(rad)


def vector_to_bearing(east: float, north: float) -> float:
    """Compass bearing of an (east, north) vector; 0 for the zero vector"""
    if east == 0 and north == 0:
        return 0.0
    return norm360(math.degrees(math.atan2(east, north)))


def local_offset_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> tuple[float, float]:
    """Equirectangular (east, north) offset in meters from point 1 to point 2.

    Only accurate for the short hops between neighboring panoramas.
    """
    k = math.cos(math.radians((lat1 + lat2) / 2))
    meters_per_degree = math.radians(1) * EARTH_RADIUS
    east = (lon2 - lon1) * k * meters_per_degree
    north = (lat2 - lat1) * meters_per_degree
    return east, north


def project_mercator(lat: float, lon: float) -> tuple[float, float]:
    """Project WGS84 degrees to Web Mercator (EPSG:3857) meters as (x, y)"""
    lat = max(-MERCATOR_MAX_LAT, min(MERCATOR_MAX_LAT, lat))
    x = MERCATOR_RADIUS * math.radians(lon)
    y = MERCATOR_RADIUS * math.log(math.tan(math.pi / 4 + math.radians(lat) / 2))
    return x, y


def bearing_to_compass(bearing: float) -> str:
    """Convert bearing to compass direction"""
    directions = ["north", "northeast", "east", "southeast",
                  "south", "southwest", "west", "northwest"]
    index = round(bearing / 45) % 8
    return directions[index]


def relative_direction(from_bearing: float, to_bearing: float) -> str:
    """Get relative direction (left, right, straight, etc.)"""
    diff = (to_bearing - from_bearing + 360) % 360

    if diff < 30 or diff > 330:
        return "straight"
    elif 30 <= diff < 60:
        return "slight right"
    elif 60 <= diff < 120:
        return "right"
    elif 120 <= diff < 150:
        return "sharp right"
    elif 150 <= diff < 210:
        return "u-turn"
    elif 210 <= diff < 240:
        return "sharp left"
    elif 240 <= diff < 300:
        return "left"
    else:
        return "slight left"
