import hashlib
import json
import logging
import mimetypes
import shutil
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import piexif
from PIL import Image

from .geo import is_valid_coordinate
from .models import PhotoLocation

logger = logging.getLogger(__name__)

SUPPORTED_PIEXIF_EXTENSIONS = {".jpg", ".jpeg", ".tif", ".tiff"}
SUPPORTED_PILLOW_EXTENSIONS = {".png", ".webp"}
SUPPORTED_EXIFTOOL_EXTENSIONS = {".heic", ".heif", ".mov", ".mp4"}
SUPPORTED_EXTENSIONS = (
    SUPPORTED_PIEXIF_EXTENSIONS | SUPPORTED_PILLOW_EXTENSIONS | SUPPORTED_EXIFTOOL_EXTENSIONS
)

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

# Pillow tag ids
_EXIF_IFD_POINTER = 0x8769
_GPS_IFD_POINTER = 0x8825
_DATETIME_ORIGINAL = 36867

# Check exiftool availability once at module load
EXIFTOOL_AVAILABLE = shutil.which("exiftool") is not None

if not EXIFTOOL_AVAILABLE:
    logger.warning("exiftool not found in PATH – video/HEIC metadata disabled")


def _rational_to_float(value: Any) -> float:
    # piexif gives (numerator, denominator), Pillow gives IFDRational
    if isinstance(value, tuple):
        return value[0] / value[1]
    return float(value)


def _convert_gps_to_decimal(
    gps_coord: Optional[Tuple[Any, ...]],
    gps_ref: Optional[Union[bytes, str]],
) -> Optional[float]:
    """Converts GPS coordinates from EXIF format (degrees, minutes, seconds) to decimal degrees."""
    if not gps_coord or not gps_ref:
        return None

    try:
        degrees = _rational_to_float(gps_coord[0])
        minutes = _rational_to_float(gps_coord[1])
        seconds = _rational_to_float(gps_coord[2])

        decimal = degrees + minutes / 60 + seconds / 3600

        if isinstance(gps_ref, bytes):
            gps_ref = gps_ref.decode("utf-8")
        if gps_ref.strip("\x00").upper() in ["S", "W"]:
            decimal = -decimal

        return decimal
    except (IndexError, ZeroDivisionError, TypeError, ValueError) as e:
        logger.warning(f"Could not parse GPS coordinate: {e}")
        return None


def _parse_exif_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    if not isinstance(value, str):
        return None

    value = value.strip("\x00").strip()
    # exiftool may append sub-seconds or a timezone, e.g. "2025:06:10 14:30:00+09:00"
    try:
        return datetime.strptime(value[:19], EXIF_DATETIME_FORMAT)
    except ValueError:
        logger.warning(f"Could not parse date string: {value}")
        return None


def _extract_piexif_metadata(file_path: Path) -> Dict[str, Any]:
    """Reads DateTimeOriginal and GPS from JPEG/TIFF files."""
    result = {"DateTimeOriginal": None, "GPSLat": None, "GPSLong": None}

    exif_dict = piexif.load(str(file_path))

    exif_ifd = exif_dict.get("Exif") or {}
    if piexif.ExifIFD.DateTimeOriginal in exif_ifd:
        result["DateTimeOriginal"] = exif_ifd[piexif.ExifIFD.DateTimeOriginal]

    gps_info = exif_dict.get("GPS") or {}
    if gps_info:
        result["GPSLat"] = _convert_gps_to_decimal(
            gps_info.get(piexif.GPSIFD.GPSLatitude),
            gps_info.get(piexif.GPSIFD.GPSLatitudeRef),
        )
        result["GPSLong"] = _convert_gps_to_decimal(
            gps_info.get(piexif.GPSIFD.GPSLongitude),
            gps_info.get(piexif.GPSIFD.GPSLongitudeRef),
        )

    return result


def _extract_pillow_metadata(file_path: Path) -> Dict[str, Any]:
    """Reads DateTimeOriginal and GPS from formats piexif cannot load (PNG, WebP)."""
    result = {"DateTimeOriginal": None, "GPSLat": None, "GPSLong": None}

    with Image.open(file_path) as img:
        exif = img.getexif()
        exif_ifd = exif.get_ifd(_EXIF_IFD_POINTER)
        gps_info = exif.get_ifd(_GPS_IFD_POINTER)

    result["DateTimeOriginal"] = exif_ifd.get(_DATETIME_ORIGINAL)

    if gps_info:
        result["GPSLat"] = _convert_gps_to_decimal(
            gps_info.get(piexif.GPSIFD.GPSLatitude),
            gps_info.get(piexif.GPSIFD.GPSLatitudeRef),
        )
        result["GPSLong"] = _convert_gps_to_decimal(
            gps_info.get(piexif.GPSIFD.GPSLongitude),
            gps_info.get(piexif.GPSIFD.GPSLongitudeRef),
        )

    return result


def _extract_exiftool_metadata(file_path: Path) -> Dict[str, Any]:
    """Extracts metadata from HEIC and video files using exiftool."""
    result = {"DateTimeOriginal": None, "GPSLat": None, "GPSLong": None}

    if not EXIFTOOL_AVAILABLE:
        logger.debug(f"exiftool not available, skipping metadata for {file_path.name}")
        return result

    try:
        cmd = ["exiftool", "-j", "-n", str(file_path)]
        output = subprocess.run(cmd, capture_output=True, text=True, timeout=15)
        if output.returncode == 0:
            data = json.loads(output.stdout)[0]
            # Try to find a date, checking common tags
            for date_field in ["DateTimeOriginal", "CreateDate", "MediaCreateDate", "DateCreated"]:
                if date_field in data:
                    result["DateTimeOriginal"] = data[date_field]
                    break
            # -n gives signed decimal degrees
            if "GPSLatitude" in data and "GPSLongitude" in data:
                result["GPSLat"] = float(data["GPSLatitude"])
                result["GPSLong"] = float(data["GPSLongitude"])

    except (
        subprocess.TimeoutExpired,
        FileNotFoundError,
        json.JSONDecodeError,
        IndexError,
        TypeError,
        ValueError,
    ) as e:
        logger.warning(
            f"exiftool processing failed for {file_path.name}: {e}. "
            "Ensure exiftool is installed and in your PATH."
        )

    return result


def _content_id(file_path: Path) -> str:
    digest = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()[:16]


def extract_photo_location(file_path: Union[str, Path]) -> Optional[PhotoLocation]:
    """
    Builds a PhotoLocation from a file's EXIF date and GPS position.

    Args:
        file_path: Path to an image or video file.

    Returns:
        The photo location, or None when the file has no usable GPS position
        or capture time.
    """
    file_path = Path(file_path)
    suffix = file_path.suffix.lower()

    try:
        if suffix in SUPPORTED_PIEXIF_EXTENSIONS:
            metadata = _extract_piexif_metadata(file_path)
        elif suffix in SUPPORTED_PILLOW_EXTENSIONS:
            metadata = _extract_pillow_metadata(file_path)
        elif suffix in SUPPORTED_EXIFTOOL_EXTENSIONS:
            metadata = _extract_exiftool_metadata(file_path)
        else:
            logger.debug(f"Unsupported file type for EXIF extraction: {file_path.name}")
            return None
    except Exception as e:
        logger.error(f"Failed to extract EXIF for {file_path.name}: {e}")
        return None

    timestamp = _parse_exif_datetime(metadata["DateTimeOriginal"])
    lat = metadata["GPSLat"]
    lon = metadata["GPSLong"]

    if lat is None or lon is None:
        logger.info(f"No GPS coordinates found in EXIF for {file_path.name}")
        return None
    if not is_valid_coordinate(lat, lon):
        logger.warning(f"GPS coordinates out of range for {file_path.name}: lat={lat}, lon={lon}")
        return None
    if timestamp is None:
        logger.info(f"No capture time found in EXIF for {file_path.name}")
        return None

    mime_type, _ = mimetypes.guess_type(file_path.name)

    try:
        photo_id = _content_id(file_path)
    except OSError as e:
        logger.error(f"Failed to read {file_path.name}: {e}")
        return None

    return PhotoLocation(
        id=photo_id,
        latitude=lat,
        longitude=lon,
        timestamp=timestamp,
        filename=file_path.name,
        mime_type=mime_type or "application/octet-stream",
    )


def _expand_paths(paths: Iterable[Union[str, Path]]) -> List[Path]:
    files = []
    for path in paths:
        path = Path(path)
        if path.is_dir():
            files.extend(
                p for p in path.rglob("*")
                if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS
            )
        else:
            files.append(path)
    return sorted(files)


def load_photo_locations(
    paths: Iterable[Union[str, Path]],
) -> Tuple[List[PhotoLocation], List[Path]]:
    """
    Extracts photo locations from files and directories (searched recursively).

    Returns:
        A tuple of (photos, skipped_paths), both in sorted path order.
    """
    photos = []
    skipped = []

    for file_path in _expand_paths(paths):
        if not file_path.exists():
            logger.error(f"File not found: {file_path}")
            skipped.append(file_path)
            continue

        photo = extract_photo_location(file_path)
        if photo is None:
            skipped.append(file_path)
        else:
            photos.append(photo)

    logger.info(f"Loaded {len(photos)} geotagged photos, skipped {len(skipped)} files")

    return photos, skipped
