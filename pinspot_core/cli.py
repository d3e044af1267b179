"""
Command-line entry point: clusters geotagged photos into map pins.

    pinspot-cluster ~/Pictures/trip --radius-km 0.5
    pinspot-cluster --from-json photos.json --no-geocode
"""

import argparse
import asyncio
import json
import logging
import math
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from .cluster import cluster_photos_by_location, filter_valid_photos
from .config import settings
from .exif import load_photo_locations
from .geocoding import NominatimGeocoder
from .models import LocationCluster, PhotoLocation

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pinspot-cluster",
        description="Group geotagged photos into location pins",
    )
    parser.add_argument("paths", nargs="*", help="Photo files or directories")
    parser.add_argument("--from-json", type=Path, help="JSON array of photo locations")
    parser.add_argument(
        "--radius-km",
        type=float,
        default=settings.CLUSTER_RADIUS_KM,
        help=f"Cluster radius in km (default: {settings.CLUSTER_RADIUS_KM})",
    )
    parser.add_argument("--no-geocode", action="store_true", help="Name clusters by coordinates only")
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.GEOCODE_TIMEOUT_SECONDS,
        help="Reverse geocoding timeout per cluster, in seconds",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _load_json_photos(path: Path) -> List[PhotoLocation]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return TypeAdapter(List[PhotoLocation]).validate_python(data)


async def _run(args: argparse.Namespace, photos: List[PhotoLocation]) -> List[LocationCluster]:
    if args.no_geocode:
        return await cluster_photos_by_location(photos, radius_km=args.radius_km)

    async with NominatimGeocoder() as geocoder:
        return await cluster_photos_by_location(
            photos,
            radius_km=args.radius_km,
            geocoder=geocoder,
            geocode_timeout=args.timeout,
        )


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if not args.paths and not args.from_json:
        parser.error("give photo paths or --from-json")
    if math.isnan(args.radius_km) or args.radius_km < 0:
        parser.error("--radius-km must be a non-negative number")

    photos: List[PhotoLocation] = []
    if args.from_json:
        try:
            photos.extend(_load_json_photos(args.from_json))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Could not load photo locations from {args.from_json}: {e}")
            return 1
    if args.paths:
        loaded, _ = load_photo_locations(args.paths)
        photos.extend(loaded)

    photos = filter_valid_photos(photos)
    if not photos:
        logger.error("No photos with GPS coordinates and capture time found")
        return 1

    clusters = asyncio.run(_run(args, photos))

    json.dump([c.model_dump(mode="json") for c in clusters], sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
