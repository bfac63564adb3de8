"""AI-assisted brand / manufacturer / plastic type suggestions.

The model call is slow and unreliable, so every request is raced against a
timeout and callers treat the result as a best-effort hint.
"""
import asyncio
import itertools
import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

from .capture import CapturedImage, ImageCaptureStore, ImageSlot
from .errors import (
    MissingProductImage,
    SuggestionError,
    SuggestionServiceError,
    SuggestionsDisabled,
    SuggestionTimeout,
)
from .geolocation import Reading

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0

PROMPT = (
    "You are an expert in identifying brands, manufacturers, and plastic types from "
    "images of product packaging. Analyze the images above to identify the brand, "
    "manufacturer, and plastic type (resin identification code, e.g. 'PETE 1') of the "
    "product. Provide your best suggestions; leave a key null if you cannot tell. "
    "Respond ONLY with a JSON object with keys: brand, manufacturer, plasticType. "
    'Example: {"brand":"Coca-Cola","manufacturer":"The Coca-Cola Company","plasticType":"PETE 1"}'
)


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "unknown", "n/a"):
        return None
    return text


@dataclass(frozen=True)
class Suggestion:
    brand: Optional[str] = None
    manufacturer: Optional[str] = None
    plastic_type: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "Suggestion":
        return cls(
            brand=_clean(payload.get("brand")),
            manufacturer=_clean(payload.get("manufacturer")),
            plastic_type=_clean(payload.get("plasticType", payload.get("plastic_type"))),
        )

    @property
    def empty(self) -> bool:
        return not (self.brand or self.manufacturer or self.plastic_type)

    def to_dict(self) -> dict:
        return {"brand": self.brand, "manufacturer": self.manufacturer, "plastic_type": self.plastic_type}


@dataclass(frozen=True)
class TaggedSuggestion:
    request_id: int
    suggestion: Suggestion


@dataclass(frozen=True)
class SuggestionRequest:
    product_image: CapturedImage
    recycling_image: Optional[CapturedImage] = None
    manufacturer_image: Optional[CapturedImage] = None
    back_image: Optional[CapturedImage] = None
    location: Optional[Reading] = None

    def images(self):
        labelled = [
            ("Product image", self.product_image),
            ("Back of product", self.back_image),
            ("Recycling information", self.recycling_image),
            ("Manufacturer details", self.manufacturer_image),
        ]
        return [(label, image) for label, image in labelled if image is not None]

    def prompt(self) -> str:
        text = PROMPT
        if self.location is not None:
            text += (
                f" The item was found at latitude: {self.location.latitude}, longitude: "
                f"{self.location.longitude}. Consider if this geographic context helps "
                "identify regional brands or manufacturers."
            )
        return text


def parse_model_text(text: str) -> Suggestion:
    """Pull the JSON object out of a model reply."""
    json_match = re.search(r"\{.*\}", text or "", flags=re.DOTALL)
    if not json_match:
        raise SuggestionServiceError("The AI reply did not contain any suggestions.")
    try:
        parsed = json.loads(json_match.group(0))
    except json.JSONDecodeError as exc:
        raise SuggestionServiceError("The AI reply could not be understood.") from exc
    if not isinstance(parsed, dict):
        raise SuggestionServiceError("The AI reply could not be understood.")
    return Suggestion.from_payload(parsed)


class Tagger(Protocol):
    async def tag(self, request: SuggestionRequest) -> Suggestion:
        ...


class GeminiTagger:
    """Gemini (google-genai) vision tagger."""

    def __init__(self, model: str = "gemini-2.5-flash", client=None):
        self.model = model
        self._client = client

    def _get_client(self):
        if self._client is None:
            try:
                from google import genai
                self._client = genai.Client()  # picks GEMINI_API_KEY from env
            except Exception as exc:
                logger.warning("Gemini client init failed (google-genai package or env key missing): %s", exc)
                raise SuggestionServiceError("Gemini client not configured.") from exc
        return self._client

    def _generate(self, request: SuggestionRequest) -> str:
        from google.genai import types

        client = self._get_client()
        # images first, then the JSON-only instruction
        contents = []
        for label, image in request.images():
            contents.append(f"{label}:")
            contents.append(types.Part.from_bytes(data=image.data, mime_type=image.content_type))
        contents.append(request.prompt())

        response = client.models.generate_content(model=self.model, contents=contents)
        return (response.text or "").strip()

    async def tag(self, request: SuggestionRequest) -> Suggestion:
        text = await asyncio.to_thread(self._generate, request)
        return parse_model_text(text)


class OpenAITagger:
    """OpenAI vision tagger, used when SUGGESTION_PROVIDER=openai."""

    def __init__(self, model: str = "gpt-4o-mini", client=None):
        self.model = model
        self._client = client

    def _get_client(self):
        if self._client is None:
            try:
                import openai
                self._client = openai.OpenAI(api_key=os.environ.get("OPENAI_API_KEY"))
            except Exception as exc:
                logger.warning("OpenAI client init failed: %s", exc)
                raise SuggestionServiceError("OpenAI client not configured.") from exc
        return self._client

    def _generate(self, request: SuggestionRequest) -> str:
        client = self._get_client()
        content = [{"type": "text", "text": request.prompt()}]
        for label, image in request.images():
            content.append({"type": "text", "text": f"{label}:"})
            content.append({"type": "image_url", "image_url": {"url": image.data_uri}})

        response = client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": content}],
            response_format={"type": "json_object"},
        )
        return (response.choices[0].message.content or "").strip()

    async def tag(self, request: SuggestionRequest) -> Suggestion:
        text = await asyncio.to_thread(self._generate, request)
        return parse_model_text(text)


def build_tagger(config) -> Tagger:
    provider = (config.get("SUGGESTION_PROVIDER") or "gemini").lower()
    if provider == "openai":
        return OpenAITagger(model=config.get("OPENAI_MODEL", "gpt-4o-mini"))
    return GeminiTagger(model=config.get("GEMINI_MODEL", "gemini-2.5-flash"))


def _discard_late_result(task: asyncio.Task):
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.info("Late AI suggestion failed after timeout: %s", exc)
    else:
        logger.info("Discarding AI suggestion that arrived after the timeout")


class MetadataSuggestionClient:
    def __init__(
        self,
        tagger: Tagger,
        is_enabled: Callable[[], Awaitable[bool]],
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.tagger = tagger
        self.is_enabled = is_enabled
        self.timeout = timeout
        self._ids = itertools.count(1)

    def next_request_id(self) -> int:
        return next(self._ids)

    async def suggest(
        self,
        images: ImageCaptureStore,
        location: Optional[Reading] = None,
        request_id: Optional[int] = None,
    ) -> TaggedSuggestion:
        product = images.get(ImageSlot.PRODUCT)
        if product is None:
            raise MissingProductImage()

        try:
            enabled = await self.is_enabled()
        except Exception as exc:
            logger.exception("Error checking AI settings")
            raise SuggestionServiceError("Unable to check AI settings. Please try again later.") from exc
        if not enabled:
            raise SuggestionsDisabled()

        if request_id is None:
            request_id = self.next_request_id()
        request = SuggestionRequest(
            product_image=product,
            recycling_image=images.get(ImageSlot.RECYCLING),
            manufacturer_image=images.get(ImageSlot.MANUFACTURER),
            back_image=images.get(ImageSlot.BACK),
            location=location,
        )

        task = asyncio.ensure_future(self.tagger.tag(request))
        done, _ = await asyncio.wait({task}, timeout=self.timeout)
        if not done:
            # whichever settles first wins; the tagger keeps running but is ignored
            task.add_done_callback(_discard_late_result)
            logger.warning("AI suggestion request %d timed out after %.1fs", request_id, self.timeout)
            raise SuggestionTimeout(request_id=request_id)

        try:
            suggestion = task.result()
        except SuggestionError:
            raise
        except Exception as exc:
            logger.exception("AI suggestion request %d failed", request_id)
            raise SuggestionServiceError(request_id=request_id) from exc

        logger.info("AI suggestion request %d returned %s", request_id, suggestion.to_dict())
        return TaggedSuggestion(request_id, suggestion)
