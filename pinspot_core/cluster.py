import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from .config import settings
from .geo import centroid, distance_km, is_valid_coordinate
from .geocoding import Geocoder, fallback_location_name
from .models import LocationCluster, PhotoLocation

logger = logging.getLogger(__name__)


def _resolve_radius(radius_km: Optional[float]) -> float:
    if radius_km is None:
        radius_km = settings.CLUSTER_RADIUS_KM
    if radius_km < 0 or math.isnan(radius_km):
        raise ValueError(f"radius_km must be a non-negative number, got {radius_km}")
    return radius_km


def _partition_by_seed(
    photos: Sequence[PhotoLocation], radius_km: float
) -> List[List[PhotoLocation]]:
    """
    Greedy seed-based partition in input order.

    The first unconsumed photo becomes a seed and takes every later unconsumed
    photo within radius_km of the seed itself. Membership is not transitive:
    two members may be farther apart than radius_km.
    """
    groups = []
    consumed = set()

    for i, seed in enumerate(photos):
        if i in consumed:
            continue

        consumed.add(i)
        members = [seed]

        for j in range(i + 1, len(photos)):
            if j in consumed:
                continue

            other = photos[j]
            distance = distance_km(seed.latitude, seed.longitude, other.latitude, other.longitude)

            # NaN distances never compare <= radius
            if distance <= radius_km:
                members.append(other)
                consumed.add(j)

        groups.append(members)

    return groups


def _timestamp_sort_key(timestamp: Optional[datetime]) -> Tuple[int, datetime]:
    # Naive values compare as-is, aware ones as UTC wall time, missing ones last
    if timestamp is None:
        return (1, datetime.min)
    if timestamp.tzinfo is not None and timestamp.utcoffset() is not None:
        try:
            timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)
        except (OverflowError, ValueError):
            timestamp = timestamp.replace(tzinfo=None)
    return (0, timestamp)


def _caller_cancelled() -> bool:
    task = asyncio.current_task()
    # Task.cancelling() exists from Python 3.11
    cancelling = getattr(task, "cancelling", None)
    return bool(cancelling and cancelling())


async def _resolve_location_name(
    geocoder: Optional[Geocoder],
    latitude: float,
    longitude: float,
    timeout: Optional[float],
    semaphore: asyncio.Semaphore,
) -> str:
    """Reverse geocodes a cluster centre, degrading to a coordinate string."""
    fallback = fallback_location_name(latitude, longitude)

    if geocoder is None or not is_valid_coordinate(latitude, longitude):
        return fallback

    async with semaphore:
        try:
            result = await asyncio.wait_for(
                geocoder.reverse_geocode(latitude, longitude), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Reverse geocoding timed out for ({latitude}, {longitude}), using {fallback!r}")
            return fallback
        except asyncio.CancelledError:
            if _caller_cancelled():
                raise
            logger.warning(f"Reverse geocoding was cancelled for ({latitude}, {longitude}), using {fallback!r}")
            return fallback
        except Exception as e:
            logger.warning(f"Reverse geocoding failed for ({latitude}, {longitude}): {e}. Using {fallback!r}")
            return fallback

    name = getattr(result, "display_name", None) if result is not None else None
    if not name or not name.strip():
        logger.warning(f"Reverse geocoding returned no name for ({latitude}, {longitude}), using {fallback!r}")
        return fallback

    return name


async def cluster_photos_by_location(
    photos: Sequence[PhotoLocation],
    radius_km: Optional[float] = None,
    geocoder: Optional[Geocoder] = None,
    geocode_timeout: Optional[float] = None,
    max_concurrency: Optional[int] = None,
) -> List[LocationCluster]:
    """
    Groups geotagged photos into location clusters, one per map pin.

    Photos are scanned in input order. Each unconsumed photo seeds a new cluster
    and claims every later unconsumed photo within radius_km of it. Each cluster
    gets a planar centroid and one reverse-geocoding lookup for its name.

    Args:
        photos: Photos with coordinates and timestamps, in import order.
        radius_km: Maximum seed-to-member distance. Defaults to
                   settings.CLUSTER_RADIUS_KM (1km).
        geocoder: Reverse geocoder used to name clusters. Without one, every
                  cluster is named by its coordinates.
        geocode_timeout: Per-lookup timeout in seconds.
        max_concurrency: Maximum number of lookups in flight at once.

    Returns:
        Clusters ordered by earliest photo timestamp, each with its photos in
        chronological order.
    """
    radius_km = _resolve_radius(radius_km)

    if not photos:
        return []

    groups = _partition_by_seed(photos, radius_km)
    centres = [centroid((p.latitude, p.longitude) for p in group) for group in groups]

    # Membership is final here, so lookups can run in any order
    if max_concurrency is None:
        max_concurrency = settings.GEOCODE_MAX_CONCURRENCY
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    names = await asyncio.gather(
        *(
            _resolve_location_name(geocoder, latitude, longitude, geocode_timeout, semaphore)
            for latitude, longitude in centres
        )
    )

    clusters = []
    for group, (latitude, longitude), name in zip(groups, centres, names):
        sorted_photos = sorted(group, key=lambda p: _timestamp_sort_key(p.timestamp))
        clusters.append(
            LocationCluster(
                latitude=latitude,
                longitude=longitude,
                location_name=name,
                photos=sorted_photos,
                earliest_timestamp=sorted_photos[0].timestamp,
            )
        )

    clusters.sort(key=lambda c: _timestamp_sort_key(c.earliest_timestamp))

    logger.info(f"Clustered {len(photos)} photos into {len(clusters)} location clusters (radius={radius_km}km)")

    return clusters


def group_photos_within_radius(
    photos: Sequence[PhotoLocation],
    radius_km: Optional[float] = None,
) -> Dict[str, List[PhotoLocation]]:
    """
    Groups photos with the same seed-based rule as cluster_photos_by_location.

    Keys are the first member's coordinates rounded to 4 decimal places
    ("lat_lon"). Members keep input order; no names are resolved.
    """
    radius_km = _resolve_radius(radius_km)

    groups: Dict[str, List[PhotoLocation]] = {}
    for members in _partition_by_seed(photos, radius_km):
        first = members[0]
        base_key = f"{first.latitude:.4f}_{first.longitude:.4f}"

        # Distinct seeds can round to the same key when radius_km < ~11m
        key = base_key
        suffix = 2
        while key in groups:
            key = f"{base_key}#{suffix}"
            suffix += 1

        groups[key] = members

    return groups


def filter_valid_photos(photos: Sequence[PhotoLocation]) -> List[PhotoLocation]:
    """Drops photos with unusable coordinates or no timestamp."""
    valid = []
    for photo in photos:
        if not is_valid_coordinate(photo.latitude, photo.longitude):
            logger.warning(f"Skipping {photo.filename}: invalid coordinates ({photo.latitude}, {photo.longitude})")
            continue
        if photo.timestamp is None:
            logger.warning(f"Skipping {photo.filename}: no timestamp")
            continue
        valid.append(photo)

    if len(valid) != len(photos):
        logger.info(f"Kept {len(valid)} of {len(photos)} photos with valid location and time")

    return valid
