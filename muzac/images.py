"""
Daily image calendar on top of object storage.

Images are never stored as records: the calendar is rebuilt on each call from
keys shaped ``daily-images/{owner}/{YYYY-MM-DD}.jpg``. Writing always targets
today's UTC date, so a second upload on the same day replaces the first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from muzac.image_utils import compress_image
from muzac.storage import StorageClient

logger = logging.getLogger(__name__)

IMAGE_ROOT = "daily-images"
SHARED_OWNER = "shared"
IMAGE_SUFFIX = ".jpg"


def owner_prefix(owner: str) -> str:
    return f"{IMAGE_ROOT}/{owner}/"


def image_key(owner: str, day: str) -> str:
    return f"{owner_prefix(owner)}{day}{IMAGE_SUFFIX}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DailyImage:
    date: str
    url: str

    def as_dict(self) -> dict:
        return {"date": self.date, "url": self.url}


@dataclass
class ImageCalendar:
    storage: StorageClient
    expires_in: int = 3600
    compress: bool = True
    max_dimension: int = 1920
    quality: int = 80
    clock: Callable[[], datetime] = field(default=_utcnow)

    def today(self) -> str:
        return self.clock().astimezone(timezone.utc).date().isoformat()

    def list_images(self, owner: str) -> list[DailyImage]:
        prefix = owner_prefix(owner)
        images: list[DailyImage] = []
        for key in self.storage.list_keys(prefix):
            if key == prefix:
                continue
            day = key[len(prefix):].removesuffix(IMAGE_SUFFIX)
            url = self.storage.presign_get(key, expires_in=self.expires_in)
            images.append(DailyImage(date=day, url=url))

        images.sort(key=lambda image: image.date, reverse=True)
        return images

    def upload_image(self, owner: str, image_bytes: bytes) -> str:
        day = self.today()
        key = image_key(owner, day)
        if self.compress:
            original_size = len(image_bytes)
            image_bytes = compress_image(
                image_bytes, max_dimension=self.max_dimension, quality=self.quality
            )
            logger.info(
                "Compressed upload for %s: %d -> %d bytes",
                owner,
                original_size,
                len(image_bytes),
            )
        logger.info("Uploading %s (%d bytes)", key, len(image_bytes))
        self.storage.put_bytes(key, image_bytes, content_type="image/jpeg")
        logger.info("Upload completed for %s", owner)
        return day
