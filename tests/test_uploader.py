import pytest

from plastic_watch.capture import ImageCaptureStore, ImageSlot
from plastic_watch.errors import PersistFailed, UploadFailed, ValidationFailed
from plastic_watch.uploader import SubmissionUploader
from plastic_watch.wizard import Details, Draft, WizardStep

from .fakes import FakeStorage, FakeStore, make_image


def _draft(reading, details=None, **slots):
    images = ImageCaptureStore()
    for slot, data in slots.items():
        images = images.with_image(slot, data)
    return Draft(step=WizardStep.DETAILS, location=reading, images=images, details=details or Details())


@pytest.mark.asyncio
async def test_submit_uploads_then_inserts_pending(reading, png_bytes, jpeg_bytes):
    storage = FakeStorage()
    store = FakeStore(events=storage.events)
    created = []
    uploader = SubmissionUploader(storage, store, on_created=lambda cid, fields: created.append(cid))
    draft = _draft(
        reading,
        Details(brand="Acme", manufacturer="Acme Corp", beach_name="Marina Beach", notes="  "),
        product=png_bytes,
        recycling=jpeg_bytes,
    )

    contribution_id = await uploader.submit(draft, submitted_by=4)

    record = store.records[contribution_id]
    assert record["status"] == "pending"
    assert record["product_image_url"].startswith("https://storage.test/")
    assert record["recycling_image_url"].startswith("https://storage.test/")
    assert record["back_image_url"] is None
    assert record["manufacturer_image_url"] is None
    assert (record["latitude"], record["longitude"]) == (reading.latitude, reading.longitude)
    assert record["brand_suggestion"] == "Acme"
    assert record["notes"] is None
    assert record["submitted_by_id"] == 4
    # confirmed columns are left for the reviewer
    assert record["brand"] is None
    assert created == [contribution_id]
    # every upload settled before the row was written
    assert storage.events[-1] == ("insert", None)


@pytest.mark.asyncio
async def test_product_upload_failure_writes_nothing(reading, png_bytes, jpeg_bytes):
    storage = FakeStorage(fail_types={"image/png"})
    store = FakeStore()
    uploader = SubmissionUploader(storage, store)
    draft = _draft(reading, product=png_bytes, back=jpeg_bytes)

    with pytest.raises(UploadFailed) as info:
        await uploader.submit(draft)

    assert store.insert_calls == 0
    assert store.records == {}
    assert len(info.value.details["uploaded"]) == 1


@pytest.mark.asyncio
async def test_optional_upload_failure_stores_null(reading, png_bytes, jpeg_bytes):
    storage = FakeStorage(fail_types={"image/jpeg"})
    store = FakeStore()
    uploader = SubmissionUploader(storage, store)
    draft = _draft(reading, product=png_bytes, manufacturer=jpeg_bytes)

    contribution_id = await uploader.submit(draft)

    record = store.records[contribution_id]
    assert record["product_image_url"]
    assert record["manufacturer_image_url"] is None


@pytest.mark.asyncio
async def test_insert_failure_is_persist_failed(reading, png_bytes):
    storage = FakeStorage()
    uploader = SubmissionUploader(storage, FakeStore(fail_insert=True))

    with pytest.raises(PersistFailed) as info:
        await uploader.submit(_draft(reading, product=png_bytes))

    assert info.value.details["uploaded"] == [url for url, _ in storage.uploads]


@pytest.mark.asyncio
async def test_skipped_details_are_null(reading, png_bytes):
    store = FakeStore()
    uploader = SubmissionUploader(FakeStorage(), store)

    contribution_id = await uploader.submit(_draft(reading, product=png_bytes))

    record = store.records[contribution_id]
    assert record["brand_suggestion"] is None
    assert record["manufacturer_suggestion"] is None
    assert record["plastic_type_suggestion"] is None
    assert record["beach_name"] is None


@pytest.mark.asyncio
async def test_preconditions(reading, png_bytes):
    uploader = SubmissionUploader(FakeStorage(), FakeStore())

    with pytest.raises(UploadFailed):
        await uploader.submit(_draft(reading))
    with pytest.raises(ValidationFailed):
        await uploader.submit(_draft(None, product=png_bytes))


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_submit(reading, png_bytes):
    def explode(contribution_id, fields):
        raise RuntimeError("socket down")

    store = FakeStore()
    uploader = SubmissionUploader(FakeStorage(), store, on_created=explode)

    contribution_id = await uploader.submit(_draft(reading, product=png_bytes))

    assert contribution_id in store.records


@pytest.mark.asyncio
async def test_upload_images_maps_slots(png_bytes):
    uploader = SubmissionUploader(FakeStorage(fail_types={"image/gif"}), FakeStore())
    images = (
        ImageCaptureStore()
        .with_image(ImageSlot.PRODUCT, png_bytes)
        .with_image(ImageSlot.BACK, make_image("GIF"))
    )

    urls = await uploader.upload_images(images)

    assert set(urls) == {ImageSlot.PRODUCT, ImageSlot.BACK}
    assert urls[ImageSlot.BACK] is None
