import logging
from typing import List, Optional, Sequence

from pydantic import BaseModel

from .models import LocationCluster

logger = logging.getLogger(__name__)

PIN_SOURCES = ("manual", "google_photos")


class PinPayload(BaseModel):
    """Row to insert into the pins table."""

    user_id: str
    latitude: float
    longitude: float
    location_name: str
    visit_date: Optional[str] = None  # ISO date of the earliest photo
    notes: Optional[str] = None
    source: str


class PhotoPayload(BaseModel):
    """Row to insert into the photos table once the pin id is known."""

    storage_path: str
    google_photo_id: Optional[str] = None
    display_order: int
    taken_date: Optional[str] = None


class PinDraft(BaseModel):
    pin: PinPayload
    photos: List[PhotoPayload]


def photo_storage_path(user_id: str, photo_id: str, filename: str) -> str:
    """Object storage key for an imported photo."""
    return f"{user_id}/{photo_id}_{filename}"


def build_pin_drafts(
    clusters: Sequence[LocationCluster],
    user_id: str,
    source: str = "google_photos",
) -> List[PinDraft]:
    """
    Maps location clusters 1:1 to pin and photo insert payloads.

    Args:
        clusters: Output of cluster_photos_by_location.
        user_id: Owner of the new pins.
        source: "google_photos" for library imports, "manual" otherwise.

    Returns:
        One draft per cluster, in cluster order. Photo display_order follows
        the cluster's chronological photo order.
    """
    if source not in PIN_SOURCES:
        raise ValueError(f"Unknown pin source {source!r}, expected one of {PIN_SOURCES}")

    drafts = []
    for cluster in clusters:
        visit_date = (
            cluster.earliest_timestamp.date().isoformat()
            if cluster.earliest_timestamp
            else None
        )

        pin = PinPayload(
            user_id=user_id,
            latitude=cluster.latitude,
            longitude=cluster.longitude,
            location_name=cluster.location_name,
            visit_date=visit_date,
            source=source,
        )

        photos = [
            PhotoPayload(
                storage_path=photo_storage_path(user_id, photo.id, photo.filename),
                google_photo_id=photo.id if source == "google_photos" else None,
                display_order=index,
                taken_date=photo.timestamp.isoformat() if photo.timestamp else None,
            )
            for index, photo in enumerate(cluster.photos)
        ]

        drafts.append(PinDraft(pin=pin, photos=photos))

    logger.info(f"Prepared {len(drafts)} pins with {sum(len(d.photos) for d in drafts)} photos for user {user_id}")

    return drafts
