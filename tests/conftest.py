from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import piexif
import pytest
from PIL import Image

from pinspot_core.geocoding import GeocodingUnavailable
from pinspot_core.models import PhotoLocation, ReverseGeocodeResult

BASE_TIME = datetime(2025, 6, 10, 9, 0, 0)


def make_photo(
    photo_id: str,
    latitude: float,
    longitude: float,
    minutes: Optional[float] = 0,
) -> PhotoLocation:
    """Photo taken `minutes` after BASE_TIME (None for no timestamp)."""
    return PhotoLocation(
        id=photo_id,
        latitude=latitude,
        longitude=longitude,
        timestamp=BASE_TIME + timedelta(minutes=minutes) if minutes is not None else None,
        filename=f"{photo_id}.jpg",
        mime_type="image/jpeg",
    )


class RecordingGeocoder:
    """Returns deterministic names and records every lookup."""

    def __init__(self):
        self.calls: List[Tuple[float, float]] = []

    async def reverse_geocode(self, latitude, longitude):
        self.calls.append((latitude, longitude))
        return ReverseGeocodeResult(display_name=f"Place {len(self.calls)}")


class FailingGeocoder:
    def __init__(self):
        self.calls = 0

    async def reverse_geocode(self, latitude, longitude):
        self.calls += 1
        raise GeocodingUnavailable("service down")


def _to_dms_rational(value: float):
    value = abs(value)
    degrees = int(value)
    minutes_float = (value - degrees) * 60
    minutes = int(minutes_float)
    seconds = round((minutes_float - minutes) * 60 * 100)
    return ((degrees, 1), (minutes, 1), (seconds, 100))


def write_geotagged_jpeg(
    path,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    shot_at: Optional[datetime] = None,
):
    """Writes a tiny JPEG with optional GPS and DateTimeOriginal EXIF tags."""
    exif_dict = {"0th": {}, "Exif": {}, "GPS": {}, "1st": {}, "thumbnail": None}

    if shot_at is not None:
        exif_dict["Exif"][piexif.ExifIFD.DateTimeOriginal] = shot_at.strftime(
            "%Y:%m:%d %H:%M:%S"
        ).encode("utf-8")

    if latitude is not None and longitude is not None:
        exif_dict["GPS"] = {
            piexif.GPSIFD.GPSLatitudeRef: b"N" if latitude >= 0 else b"S",
            piexif.GPSIFD.GPSLatitude: _to_dms_rational(latitude),
            piexif.GPSIFD.GPSLongitudeRef: b"E" if longitude >= 0 else b"W",
            piexif.GPSIFD.GPSLongitude: _to_dms_rational(longitude),
        }

    Image.new("RGB", (8, 8), color=(200, 120, 40)).save(
        str(path), "JPEG", exif=piexif.dump(exif_dict)
    )
    return path


@pytest.fixture
def recording_geocoder():
    return RecordingGeocoder()


@pytest.fixture
def failing_geocoder():
    return FailingGeocoder()
