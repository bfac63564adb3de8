import asyncio

import pytest

from plastic_watch.capture import ImageCaptureStore, ImageSlot
from plastic_watch.errors import (
    MissingProductImage,
    SuggestionServiceError,
    SuggestionsDisabled,
    SuggestionTimeout,
)
from plastic_watch.suggestions import (
    GeminiTagger,
    MetadataSuggestionClient,
    OpenAITagger,
    Suggestion,
    build_tagger,
    parse_model_text,
)

from .fakes import FakeTagger, enabled


@pytest.fixture
def images(png_bytes, jpeg_bytes):
    return (
        ImageCaptureStore()
        .with_image(ImageSlot.PRODUCT, png_bytes)
        .with_image(ImageSlot.RECYCLING, jpeg_bytes)
    )


@pytest.mark.asyncio
async def test_suggest_returns_tagged_suggestion(images, reading):
    tagger = FakeTagger(Suggestion(brand="Acme", manufacturer="Acme Corp"))
    client = MetadataSuggestionClient(tagger, enabled(True), timeout=1)

    tagged = await client.suggest(images, reading, request_id=7)

    assert tagged.request_id == 7
    assert tagged.suggestion.brand == "Acme"
    request = tagger.calls[0]
    assert request.product_image.slot is ImageSlot.PRODUCT
    assert request.recycling_image.content_type == "image/jpeg"
    assert request.manufacturer_image is None
    assert "latitude: 13.05" in request.prompt()


@pytest.mark.asyncio
async def test_request_ids_increase():
    client = MetadataSuggestionClient(FakeTagger(), enabled(True))
    assert [client.next_request_id() for _ in range(3)] == [1, 2, 3]


@pytest.mark.asyncio
async def test_missing_product_image():
    tagger = FakeTagger()
    client = MetadataSuggestionClient(tagger, enabled(True))

    with pytest.raises(MissingProductImage):
        await client.suggest(ImageCaptureStore())
    assert tagger.calls == []


@pytest.mark.asyncio
async def test_disabled_fails_fast_without_calling_tagger(images):
    tagger = FakeTagger()
    client = MetadataSuggestionClient(tagger, enabled(False))

    with pytest.raises(SuggestionsDisabled):
        await client.suggest(images)
    assert tagger.calls == []


@pytest.mark.asyncio
async def test_settings_lookup_failure_is_service_error(images):
    async def broken():
        raise RuntimeError("db down")

    client = MetadataSuggestionClient(FakeTagger(), broken)

    with pytest.raises(SuggestionServiceError):
        await client.suggest(images)


@pytest.mark.asyncio
async def test_timeout_wins_over_slow_tagger(images):
    tagger = FakeTagger(Suggestion(brand="Late"), delay=0.3)
    client = MetadataSuggestionClient(tagger, enabled(True), timeout=0.05)

    with pytest.raises(SuggestionTimeout) as info:
        await client.suggest(images, request_id=3)
    assert info.value.details == {"request_id": 3}

    # let the abandoned request finish; nothing is left to receive it
    await asyncio.sleep(0.35)


@pytest.mark.asyncio
async def test_tagger_failure_becomes_service_error(images):
    client = MetadataSuggestionClient(FakeTagger(error=ValueError("quota")), enabled(True), timeout=1)

    with pytest.raises(SuggestionServiceError):
        await client.suggest(images)


@pytest.mark.asyncio
async def test_tagger_suggestion_errors_pass_through(images):
    error = SuggestionServiceError("The AI reply could not be understood.")
    client = MetadataSuggestionClient(FakeTagger(error=error), enabled(True), timeout=1)

    with pytest.raises(SuggestionServiceError) as info:
        await client.suggest(images)
    assert info.value is error


def test_parse_model_text_extracts_json():
    text = 'Sure! ```json\n{"brand": "Bisleri", "manufacturer": "Bisleri International", "plasticType": "PETE 1"}\n```'

    suggestion = parse_model_text(text)

    assert suggestion == Suggestion("Bisleri", "Bisleri International", "PETE 1")


def test_parse_model_text_blank_values_become_none():
    suggestion = parse_model_text('{"brand": "  ", "manufacturer": null, "plastic_type": "Unknown"}')

    assert suggestion.empty


@pytest.mark.parametrize("text", ["", "no idea", "{not json}", "[1, 2]"])
def test_parse_model_text_rejects(text):
    with pytest.raises(SuggestionServiceError):
        parse_model_text(text)


def test_build_tagger_picks_provider():
    assert isinstance(build_tagger({"SUGGESTION_PROVIDER": "openai"}), OpenAITagger)
    tagger = build_tagger({"SUGGESTION_PROVIDER": "gemini", "GEMINI_MODEL": "gemini-test"})
    assert isinstance(tagger, GeminiTagger)
    assert tagger.model == "gemini-test"


class _Completions:
    def __init__(self, reply):
        self.reply = reply
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        message = type("Message", (), {"content": self.reply})
        choice = type("Choice", (), {"message": message})
        return type("Response", (), {"choices": [choice]})


@pytest.mark.asyncio
async def test_openai_tagger_sends_images_as_data_uris(images):
    completions = _Completions('{"brand": "Pepsi", "manufacturer": "PepsiCo", "plasticType": "HDPE 2"}')
    fake_client = type("Client", (), {"chat": type("Chat", (), {"completions": completions})})
    tagger = OpenAITagger(model="gpt-test", client=fake_client)
    client = MetadataSuggestionClient(tagger, enabled(True), timeout=2)

    tagged = await client.suggest(images)

    assert tagged.suggestion.plastic_type == "HDPE 2"
    content = completions.kwargs["messages"][0]["content"]
    urls = [part["image_url"]["url"] for part in content if part["type"] == "image_url"]
    assert urls[0].startswith("data:image/png;base64,")
    assert urls[1].startswith("data:image/jpeg;base64,")
