"""Object storage for photos and the ``contributions`` table."""
import asyncio
import logging
import mimetypes
import os
import uuid
from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import Contribution, ContributionStatus

logger = logging.getLogger(__name__)

IMAGE_URL_COLUMNS = (
    "product_image_url",
    "back_image_url",
    "recycling_image_url",
    "manufacturer_image_url",
)

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class ObjectStorage(Protocol):
    async def upload(self, data: bytes, content_type: str) -> str:
        ...


class LocalObjectStorage:
    """Stores uploads as files under ``directory`` served from ``base_url``.

    Names are random, so two uploads never overwrite each other.
    """

    def __init__(self, directory: str, base_url: str = "/static/uploads"):
        self.directory = directory
        self.base_url = base_url.rstrip("/")
        os.makedirs(self.directory, exist_ok=True)

    def _write(self, name: str, data: bytes):
        with open(os.path.join(self.directory, name), "xb") as f:
            f.write(data)

    async def upload(self, data: bytes, content_type: str) -> str:
        ext = _EXTENSIONS.get(content_type) or mimetypes.guess_extension(content_type) or ".bin"
        name = f"{uuid.uuid4().hex}{ext}"
        await asyncio.to_thread(self._write, name, data)
        return f"{self.base_url}/{name}"

    def name_for(self, url: str) -> Optional[str]:
        prefix = self.base_url + "/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None

    def list_objects(self) -> List[Tuple[str, datetime]]:
        objects = []
        for entry in os.scandir(self.directory):
            if entry.is_file():
                objects.append((entry.name, datetime.fromtimestamp(entry.stat().st_mtime)))
        return objects

    def delete(self, name: str):
        os.remove(os.path.join(self.directory, name))


class ContributionStore:
    """Async facade over the ``contributions`` table.

    Records are handed out as plain dicts (``Contribution.to_dict``). The
    coroutines run their queries on the Flask-SQLAlchemy scoped session
    synchronously, on the calling loop; they are coroutines so the wizard
    and classifier can await any store alike. Do not share one across
    threads without an app context in each.
    """

    async def insert(self, fields: dict) -> str:
        contribution = Contribution(**fields)
        try:
            db.session.add(contribution)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return contribution.id

    async def get(self, contribution_id: str) -> Optional[dict]:
        contribution = db.session.get(Contribution, contribution_id)
        return contribution.to_dict() if contribution else None

    async def transition(self, contribution_id: str, fields: dict) -> bool:
        """Apply ``fields`` only if the record is still pending.

        One UPDATE statement, so status and confirmed fields land together.
        Returns False when no pending record matched.
        """
        stmt = (
            update(Contribution)
            .where(Contribution.id == contribution_id)
            .where(Contribution.status == ContributionStatus.PENDING.value)
            .values(**fields)
        )
        try:
            result = db.session.execute(stmt)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return result.rowcount == 1

    async def list_by_status(self, status: str, limit: Optional[int] = None) -> List[dict]:
        stmt = select(Contribution).where(Contribution.status == status)
        if status == ContributionStatus.PENDING.value:
            stmt = stmt.order_by(Contribution.created_at.asc())
        else:
            stmt = stmt.order_by(Contribution.classified_at.desc())
        if limit:
            stmt = stmt.limit(limit)
        return [c.to_dict() for c in db.session.scalars(stmt)]

    async def count_by_status(self) -> dict:
        rows = db.session.execute(
            select(Contribution.status, func.count(Contribution.id)).group_by(Contribution.status)
        ).all()
        counts = {status.value: 0 for status in ContributionStatus}
        counts.update({status: total for status, total in rows})
        return counts

    async def referenced_urls(self) -> set:
        columns = [getattr(Contribution, name) for name in IMAGE_URL_COLUMNS]
        urls = set()
        for row in db.session.execute(select(*columns)):
            urls.update(url for url in row if url)
        return urls


def find_orphans(objects: Iterable[Tuple[str, datetime]], referenced_names: set, older_than: datetime) -> List[str]:
    """Names of stored objects no contribution points at, past the grace period."""
    return sorted(
        name for name, modified in objects
        if name not in referenced_names and modified < older_than
    )
