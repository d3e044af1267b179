import math
from typing import Iterable, Tuple

# Mean Earth radius (IUGG), same sphere used by common web-mapping libraries
EARTH_RADIUS_KM = 6371.0088


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points using the haversine formula.

    Args:
        lat1, lon1: First point in decimal degrees.
        lat2, lon2: Second point in decimal degrees.

    Returns:
        Surface distance in kilometers. NaN if any coordinate is not finite.
    """
    if not all(math.isfinite(v) for v in (lat1, lon1, lat2, lon2)):
        return math.nan

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # Rounding can push a marginally above 1 for antipodal points
    if a > 1.0:
        a = 1.0

    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def centroid(points: Iterable[Tuple[float, float]]) -> Tuple[float, float]:
    """
    Planar centroid of (latitude, longitude) pairs.

    Plain arithmetic mean of raw degree values. Good enough for clusters that
    are small compared to the Earth's curvature.
    """
    points = list(points)
    if not points:
        raise ValueError("centroid() requires at least one point")

    latitude = sum(lat for lat, _ in points) / len(points)
    longitude = sum(lon for _, lon in points) / len(points)
    return latitude, longitude


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    """True for finite latitude in [-90, 90] and longitude in [-180, 180]."""
    try:
        latitude = float(latitude)
        longitude = float(longitude)
    except (TypeError, ValueError):
        return False

    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return False

    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0
