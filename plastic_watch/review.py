"""Staff review of pending contributions.

A contribution moves ``pending -> classified`` (approve) or
``pending -> rejected`` (reject) exactly once. The status, the confirmed
fields and the classification timestamp are written by one conditional
UPDATE, so a reader never sees ``classified`` without the confirmed brand and
manufacturer.
"""
import enum
import logging
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional

from .errors import (
    ClassificationPersistFailed,
    InvalidReview,
    InvalidTransition,
    NotFound,
)
from .models import ContributionStatus, utcnow
from .storage import ContributionStore

logger = logging.getLogger(__name__)


class Decision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def status(self) -> ContributionStatus:
        if self is Decision.APPROVE:
            return ContributionStatus.CLASSIFIED
        return ContributionStatus.REJECTED


@dataclass(frozen=True)
class ReviewEdits:
    brand: str = ""
    manufacturer: str = ""
    plastic_type: str = ""
    beach_name: str = ""
    notes: str = ""
    review_notes: str = ""


@dataclass(frozen=True)
class ContributionView:
    record: dict

    @property
    def id(self) -> str:
        return self.record["id"]

    @property
    def status(self) -> str:
        return self.record["status"]

    @property
    def images(self) -> List[dict]:
        labelled = [
            ("Product Image", self.record.get("product_image_url")),
            ("Back Image", self.record.get("back_image_url")),
            ("Recycling Image", self.record.get("recycling_image_url")),
            ("Manufacturer Image", self.record.get("manufacturer_image_url")),
        ]
        return [{"label": label, "url": url} for label, url in labelled if url]

    def initial_edits(self) -> ReviewEdits:
        """Form defaults: the volunteer's suggestions."""
        record = self.record
        return ReviewEdits(
            brand=record.get("brand_suggestion") or "",
            manufacturer=record.get("manufacturer_suggestion") or "",
            plastic_type=record.get("plastic_type_suggestion") or "",
            beach_name=record.get("beach_name") or "",
            notes=record.get("notes") or "",
        )

    def to_dict(self) -> dict:
        payload = dict(self.record)
        payload["images"] = self.images
        payload["form"] = asdict(self.initial_edits())
        return payload


def _or_none(value: str) -> Optional[str]:
    value = (value or "").strip()
    return value or None


class ReviewClassifier:
    def __init__(
        self,
        store: ContributionStore,
        clock: Callable = utcnow,
        on_classified: Optional[Callable[[str, str], None]] = None,
    ):
        self.store = store
        self.clock = clock
        self.on_classified = on_classified

    async def load(self, contribution_id: str) -> ContributionView:
        record = await self.store.get(contribution_id)
        if record is None:
            raise NotFound(contribution_id=contribution_id)
        return ContributionView(record)

    async def pending(self, limit: Optional[int] = None) -> List[ContributionView]:
        records = await self.store.list_by_status(ContributionStatus.PENDING.value, limit=limit)
        return [ContributionView(r) for r in records]

    async def classify(
        self,
        contribution_id: str,
        edits: ReviewEdits,
        decision: Decision,
        reviewer_id: Optional[int] = None,
    ) -> ContributionStatus:
        decision = Decision(decision)
        if decision is Decision.APPROVE and not (edits.brand.strip() and edits.manufacturer.strip()):
            raise InvalidReview()

        status = decision.status
        fields = {
            "brand": _or_none(edits.brand),
            "manufacturer": _or_none(edits.manufacturer),
            "plastic_type": _or_none(edits.plastic_type),
            "beach_name": _or_none(edits.beach_name),
            "notes": _or_none(edits.notes),
            "review_notes": _or_none(edits.review_notes),
            "status": status.value,
            "classified_at": self.clock(),
            "reviewer_id": reviewer_id,
        }

        try:
            updated = await self.store.transition(contribution_id, fields)
        except Exception as exc:
            logger.exception("Classification of %s failed", contribution_id)
            raise ClassificationPersistFailed(contribution_id=contribution_id) from exc

        if not updated:
            # distinguish a missing record from one already reviewed
            existing = await self.store.get(contribution_id)
            if existing is None:
                raise NotFound(contribution_id=contribution_id)
            raise InvalidTransition(contribution_id=contribution_id, status=existing["status"])

        logger.info("Contribution %s %s by reviewer %s", contribution_id, status.value, reviewer_id)
        if self.on_classified is not None:
            try:
                self.on_classified(contribution_id, status.value)
            except Exception:
                logger.exception("Error broadcasting classification of %s", contribution_id)
        return status
