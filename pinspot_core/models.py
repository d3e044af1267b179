from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class PhotoLocation(BaseModel):
    """A geotagged photo as produced by an import or manual entry."""

    id: str
    latitude: float
    longitude: float
    timestamp: Optional[datetime] = None
    filename: str
    # Photo-library imports send "mimeType"
    mime_type: str = Field(default="image/jpeg", alias="mimeType")

    class Config:
        frozen = True
        populate_by_name = True


class LocationCluster(BaseModel):
    """Photos grouped under one map pin."""

    latitude: float
    longitude: float
    location_name: str
    photos: List[PhotoLocation]
    earliest_timestamp: Optional[datetime] = None

    @property
    def photo_count(self) -> int:
        return len(self.photos)


class ReverseGeocodeResult(BaseModel):
    """Reverse geocoding response, cleaned up for display."""

    display_name: str
    country: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


class Place(BaseModel):
    """A forward search hit."""

    name: str
    address: str
    latitude: float
    longitude: float
    place_id: int
