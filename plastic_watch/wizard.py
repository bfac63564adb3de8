"""The contribution wizard: location -> photos -> details -> submitted.

State lives in an immutable ``Draft``. ``transition(draft, event)`` is the
whole state machine and has no side effects; ``ContributionWizard`` drives it
and performs the I/O (geolocation, AI suggestions, upload) between steps.
"""
import enum
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field, fields, replace
from typing import Dict, List, Optional

from .capture import ImageCaptureStore, ImageSlot
from .errors import (
    SuggestionError,
    SuggestionsDisabled,
    TransitionRejected,
    ValidationFailed,
)
from .geolocation import GeolocationAcquirer, Reading
from .suggestions import MetadataSuggestionClient, Suggestion

logger = logging.getLogger(__name__)


class WizardStep(enum.IntEnum):
    LOCATION = 0
    PHOTOS = 1
    DETAILS = 2
    SUBMITTED = 3

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class Details:
    brand: str = ""
    manufacturer: str = ""
    plastic_type: str = ""
    beach_name: str = ""
    notes: str = ""

    def with_changes(self, **changes) -> "Details":
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValidationFailed(f"Unknown field(s): {', '.join(sorted(unknown))}")
        return replace(self, **{k: (v or "") for k, v in changes.items()})

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class Draft:
    step: WizardStep = WizardStep.LOCATION
    location: Optional[Reading] = None
    images: ImageCaptureStore = field(default_factory=ImageCaptureStore)
    details: Details = field(default_factory=Details)
    revision: int = 0
    contribution_id: Optional[str] = None


# --- Events ---
@dataclass(frozen=True)
class LocationAcquired:
    reading: Reading


@dataclass(frozen=True)
class ImageCaptured:
    slot: ImageSlot
    data: bytes
    filename: Optional[str] = None


@dataclass(frozen=True)
class ImageRemoved:
    slot: ImageSlot


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class DetailsEdited:
    changes: Dict[str, str]


@dataclass(frozen=True)
class SuggestionApplied:
    suggestion: Suggestion


@dataclass(frozen=True)
class Submitted:
    contribution_id: str


def merge_suggestion(details: Details, suggestion: Suggestion) -> Details:
    """Fill empty fields from a suggestion; anything the user typed stays."""
    changes = {}
    if suggestion.brand and not details.brand.strip():
        changes["brand"] = suggestion.brand
    if suggestion.manufacturer and not details.manufacturer.strip():
        changes["manufacturer"] = suggestion.manufacturer
    if suggestion.plastic_type and not details.plastic_type.strip():
        changes["plastic_type"] = suggestion.plastic_type
    return replace(details, **changes) if changes else details


def _require_step(draft: Draft, step: WizardStep, action: str):
    if draft.step is not step:
        raise TransitionRejected(f"Cannot {action} during the {draft.step.label} step.")


def transition(draft: Draft, event) -> Draft:
    if draft.step is WizardStep.SUBMITTED:
        raise TransitionRejected("This contribution has already been submitted.")

    if isinstance(event, LocationAcquired):
        step = WizardStep.PHOTOS if draft.step is WizardStep.LOCATION else draft.step
        new = replace(draft, location=event.reading, step=step)

    elif isinstance(event, ImageCaptured):
        _require_step(draft, WizardStep.PHOTOS, "add photos")
        new = replace(draft, images=draft.images.with_image(event.slot, event.data, event.filename))

    elif isinstance(event, ImageRemoved):
        _require_step(draft, WizardStep.PHOTOS, "remove photos")
        new = replace(draft, images=draft.images.without_image(event.slot))

    elif isinstance(event, Next):
        if draft.step is WizardStep.LOCATION:
            if draft.location is None:
                raise TransitionRejected("Share your location first.")
            new = replace(draft, step=WizardStep.PHOTOS)
        elif draft.step is WizardStep.PHOTOS:
            if not draft.images.has(ImageSlot.PRODUCT):
                raise TransitionRejected("A product photo is required.")
            new = replace(draft, step=WizardStep.DETAILS)
        else:
            raise TransitionRejected("Submit the contribution to finish.")

    elif isinstance(event, Back):
        if draft.step is WizardStep.LOCATION:
            raise TransitionRejected("Already at the first step.")
        new = replace(draft, step=WizardStep(draft.step - 1))

    elif isinstance(event, DetailsEdited):
        _require_step(draft, WizardStep.DETAILS, "edit details")
        new = replace(draft, details=draft.details.with_changes(**event.changes))

    elif isinstance(event, SuggestionApplied):
        _require_step(draft, WizardStep.DETAILS, "apply suggestions")
        new = replace(draft, details=merge_suggestion(draft.details, event.suggestion))

    elif isinstance(event, Submitted):
        _require_step(draft, WizardStep.DETAILS, "submit")
        new = replace(draft, step=WizardStep.SUBMITTED, contribution_id=event.contribution_id)

    else:
        raise TypeError(f"Unknown wizard event: {event!r}")

    return replace(new, revision=draft.revision + 1)


def validate_for_submit(draft: Draft, skip: bool = False) -> Dict[str, str]:
    """Problems preventing submission, keyed by field.

    A full submit needs brand and manufacturer; skipping only needs the
    product photo and the location.
    """
    problems = {}
    if not draft.images.has(ImageSlot.PRODUCT):
        problems["product_image"] = "Product image is required."
    if draft.location is None:
        problems["location"] = "Location is required."
    if not skip:
        if not draft.details.brand.strip():
            problems["brand"] = "Brand is required."
        if not draft.details.manufacturer.strip():
            problems["manufacturer"] = "Manufacturer is required."
    return problems


@dataclass(frozen=True)
class Notice:
    level: str  # info, success, error
    title: str
    message: str = ""

    def to_dict(self) -> dict:
        return {"level": self.level, "title": self.title, "message": self.message}


class ContributionWizard:
    def __init__(
        self,
        suggestions: MetadataSuggestionClient,
        uploader,
        acquirer: Optional[GeolocationAcquirer] = None,
    ):
        self.id = uuid.uuid4().hex
        self.suggestions = suggestions
        self.uploader = uploader
        self.acquirer = acquirer
        self.ai_enabled: Optional[bool] = None
        self.submitting = False
        self.notices: List[Notice] = []
        self._draft = Draft()
        self._latest_request: Optional[int] = None
        # bumped on every entry into details; a suggestion is tied to one visit
        self._details_visit = 0
        self._suggestion_visit: Optional[int] = None
        self._lock = threading.RLock()

    @property
    def draft(self) -> Draft:
        return self._draft

    @property
    def step(self) -> WizardStep:
        return self._draft.step

    def _apply(self, event) -> Draft:
        with self._lock:
            self._draft = transition(self._draft, event)
            return self._draft

    def _notify(self, level: str, title: str, message: str = ""):
        self.notices.append(Notice(level, title, message))

    def drain_notices(self) -> List[Notice]:
        with self._lock:
            notices, self.notices = self.notices, []
        return notices

    # --- Location ---
    async def locate(self, acquirer: Optional[GeolocationAcquirer] = None, best: bool = True) -> Reading:
        acquirer = acquirer or self.acquirer
        if acquirer is None:
            raise TransitionRejected("No location source available.")
        reading = await (acquirer.acquire_best() if best else acquirer.acquire())
        self.use_location(reading)
        return reading

    def use_location(self, reading: Reading) -> Draft:
        draft = self._apply(LocationAcquired(reading))
        if reading.accuracy is not None:
            self._notify("success", "Location captured successfully!", f"Accuracy: {round(reading.accuracy)} meters")
        else:
            self._notify("success", "Location captured successfully!")
        return draft

    # --- Photos ---
    def capture(self, slot, data: bytes, filename: Optional[str] = None) -> Draft:
        return self._apply(ImageCaptured(ImageSlot(slot), data, filename))

    def remove(self, slot) -> Draft:
        return self._apply(ImageRemoved(ImageSlot(slot)))

    def preview(self, slot) -> Optional[str]:
        return self._draft.images.get_preview(slot)

    # --- Navigation ---
    async def next(self, auto_suggest: bool = True) -> Draft:
        """Advance one step.

        Entering details with a product photo and no brand waits for the AI
        suggestion (bounded by the suggestion timeout) unless ``auto_suggest``
        is off.
        """
        with self._lock:
            draft = transition(self._draft, Next())
            self._draft = draft
            if draft.step is WizardStep.DETAILS:
                self._details_visit += 1
        if (
            auto_suggest
            and draft.step is WizardStep.DETAILS
            and draft.images.has(ImageSlot.PRODUCT)
            and not draft.details.brand.strip()
        ):
            await self.request_suggestions()
        return self._draft

    def back(self) -> Draft:
        if self.submitting:
            raise TransitionRejected("Please wait for the submission to finish.")
        return self._apply(Back())

    def edit(self, **changes) -> Draft:
        return self._apply(DetailsEdited(changes))

    # --- Suggestions ---
    async def request_suggestions(self) -> Optional[Suggestion]:
        """Ask the AI for suggestions; failures become notices, never errors."""
        with self._lock:
            draft = self._draft
            _require_step(draft, WizardStep.DETAILS, "request suggestions")
            request_id = self.suggestions.next_request_id()
            self._latest_request = request_id
            self._suggestion_visit = self._details_visit

        try:
            tagged = await self.suggestions.suggest(draft.images, draft.location, request_id=request_id)
        except SuggestionsDisabled as exc:
            self.ai_enabled = False
            self._notify("info", "AI Analysis Disabled", exc.message)
            return None
        except SuggestionError as exc:
            self._notify("error", "AI Suggestion Failed", exc.message)
            return None

        self.ai_enabled = True
        with self._lock:
            if (
                tagged.request_id != self._latest_request
                or self._suggestion_visit != self._details_visit
                or self._draft.step is not WizardStep.DETAILS
                or self._draft.images is not draft.images
            ):
                logger.info("Discarding stale AI suggestion %d", tagged.request_id)
                return None
            self._draft = transition(self._draft, SuggestionApplied(tagged.suggestion))
        self._notify("success", "AI Suggestions Applied", "Please review and adjust the details below.")
        return tagged.suggestion

    # --- Submission ---
    async def submit(self, skip: bool = False, submitted_by: Optional[int] = None) -> str:
        with self._lock:
            draft = self._draft
            _require_step(draft, WizardStep.DETAILS, "submit")
            if self.submitting:
                raise TransitionRejected("A submission is already in progress.")
            problems = validate_for_submit(draft, skip=skip)
            if problems:
                if skip:
                    message = "A product image is still required to skip."
                else:
                    message = "Please correct the highlighted fields."
                raise ValidationFailed(message, fields=problems)
            self.submitting = True

        try:
            contribution_id = await self.uploader.submit(draft, submitted_by=submitted_by)
            self._apply(Submitted(contribution_id))
        finally:
            self.submitting = False

        self._notify(
            "success",
            "Thank You!",
            "Your contribution has been successfully submitted.",
        )
        return contribution_id

    def to_dict(self, previews: bool = False) -> dict:
        draft = self._draft
        state = {
            "id": self.id,
            "step": draft.step.label,
            "revision": draft.revision,
            "location": draft.location.to_dict() if draft.location else None,
            "photos": {slot.value: draft.images.has(slot) for slot in ImageSlot},
            "details": draft.details.to_dict(),
            "ai_enabled": self.ai_enabled,
            "submitting": self.submitting,
            "contribution_id": draft.contribution_id,
        }
        if previews:
            state["previews"] = {slot.value: draft.images.get_preview(slot) for slot in ImageSlot}
        return state


class DraftRegistry:
    """One live wizard per browser session, dropped once submitted.

    Wizards untouched for ``max_age`` seconds are evicted when a new one is
    added; past ``max_size`` the least recently used go first.
    """

    def __init__(self, max_age: float = 1800.0, max_size: int = 1000, clock=time.monotonic):
        self.max_age = max_age
        self.max_size = max_size
        self.clock = clock
        self._wizards: Dict[str, ContributionWizard] = {}
        self._touched: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _evict(self, now: float):
        expired = [wid for wid, at in self._touched.items() if now - at > self.max_age]
        overflow = len(self._touched) - len(expired) - self.max_size + 1
        if overflow > 0:
            live = sorted((at, wid) for wid, at in self._touched.items() if wid not in expired)
            expired.extend(wid for _, wid in live[:overflow])
        for wid in expired:
            self._wizards.pop(wid, None)
            self._touched.pop(wid, None)
        if expired:
            logger.info("Evicted %d abandoned contribution draft(s)", len(expired))

    def add(self, wizard: ContributionWizard) -> ContributionWizard:
        with self._lock:
            now = self.clock()
            self._evict(now)
            self._wizards[wizard.id] = wizard
            self._touched[wizard.id] = now
        return wizard

    def get(self, wizard_id: Optional[str]) -> Optional[ContributionWizard]:
        if not wizard_id:
            return None
        with self._lock:
            wizard = self._wizards.get(wizard_id)
            if wizard is None:
                return None
            now = self.clock()
            if now - self._touched[wizard_id] > self.max_age:
                self._wizards.pop(wizard_id)
                self._touched.pop(wizard_id)
                return None
            self._touched[wizard_id] = now
            return wizard

    def discard(self, wizard_id: Optional[str]):
        with self._lock:
            self._wizards.pop(wizard_id, None)
            self._touched.pop(wizard_id, None)

    def __len__(self):
        return len(self._wizards)
