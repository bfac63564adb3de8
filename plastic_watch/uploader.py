"""Turns a finished draft into a stored contribution.

Photos go up first, all at once; the row is written only after every upload
attempt has settled. There is no rollback of uploaded files if the insert
fails; ``flask sweep-uploads`` removes them later.
"""
import asyncio
import logging
from typing import Callable, Dict, Optional

from .capture import CapturedImage, ImageCaptureStore, ImageSlot
from .errors import PersistFailed, UploadFailed, ValidationFailed
from .models import ContributionStatus
from .storage import ContributionStore, ObjectStorage

logger = logging.getLogger(__name__)

SLOT_COLUMNS = {
    ImageSlot.PRODUCT: "product_image_url",
    ImageSlot.BACK: "back_image_url",
    ImageSlot.RECYCLING: "recycling_image_url",
    ImageSlot.MANUFACTURER: "manufacturer_image_url",
}


def _blank_to_none(value):
    if value is None:
        return None
    value = value.strip()
    return value or None


class SubmissionUploader:
    def __init__(
        self,
        storage: ObjectStorage,
        store: ContributionStore,
        on_created: Optional[Callable[[str, dict], None]] = None,
    ):
        self.storage = storage
        self.store = store
        self.on_created = on_created

    async def _upload(self, image: CapturedImage) -> str:
        return await self.storage.upload(image.data, image.content_type)

    async def upload_images(self, images: ImageCaptureStore) -> Dict[ImageSlot, Optional[str]]:
        """Upload every captured photo concurrently; failed slots map to None."""
        captured = images.captured()
        results = await asyncio.gather(*(self._upload(image) for image in captured), return_exceptions=True)

        urls = {}
        for image, result in zip(captured, results):
            if isinstance(result, BaseException):
                logger.error("Error uploading %s image: %r", image.slot.value, result)
                urls[image.slot] = None
            else:
                urls[image.slot] = result
        return urls

    async def submit(self, draft, submitted_by: Optional[int] = None) -> str:
        if not draft.images.has(ImageSlot.PRODUCT):
            raise UploadFailed("A product image is required.")
        if draft.location is None:
            raise ValidationFailed("A location is required.")

        urls = await self.upload_images(draft.images)
        uploaded = [url for url in urls.values() if url]
        if not urls.get(ImageSlot.PRODUCT):
            raise UploadFailed(uploaded=uploaded)

        details = draft.details
        fields = {column: urls.get(slot) for slot, column in SLOT_COLUMNS.items()}
        fields.update(
            latitude=draft.location.latitude,
            longitude=draft.location.longitude,
            beach_name=_blank_to_none(details.beach_name),
            brand_suggestion=_blank_to_none(details.brand),
            manufacturer_suggestion=_blank_to_none(details.manufacturer),
            plastic_type_suggestion=_blank_to_none(details.plastic_type),
            notes=_blank_to_none(details.notes),
            status=ContributionStatus.PENDING.value,
            submitted_by_id=submitted_by,
        )

        try:
            contribution_id = await self.store.insert(fields)
        except Exception as exc:
            logger.exception("Error saving contribution; %d uploaded file(s) left unreferenced", len(uploaded))
            raise PersistFailed(uploaded=uploaded) from exc

        logger.info("Contribution %s submitted (%d image(s))", contribution_id, len(uploaded))
        if self.on_created is not None:
            try:
                self.on_created(contribution_id, fields)
            except Exception:
                logger.exception("Error notifying reviewers about contribution %s", contribution_id)
        return contribution_id
