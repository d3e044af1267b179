# pinspot_core/__init__.py

from .geo import distance_km, centroid, is_valid_coordinate
from .models import PhotoLocation, LocationCluster, ReverseGeocodeResult, Place
from .cluster import cluster_photos_by_location, group_photos_within_radius, filter_valid_photos
from .geocoding import Geocoder, GeocodingUnavailable, NominatimGeocoder, fallback_location_name
from .exif import extract_photo_location, load_photo_locations
from .pins import build_pin_drafts

__all__ = [
    "distance_km",
    "centroid",
    "is_valid_coordinate",
    "PhotoLocation",
    "LocationCluster",
    "ReverseGeocodeResult",
    "Place",
    "cluster_photos_by_location",
    "group_photos_within_radius",
    "filter_valid_photos",
    "Geocoder",
    "GeocodingUnavailable",
    "NominatimGeocoder",
    "fallback_location_name",
    "extract_photo_location",
    "load_photo_locations",
    "build_pin_drafts",
]
