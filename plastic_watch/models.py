import enum
import uuid
from datetime import datetime, timezone

from flask_login import UserMixin

from .extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_contribution_id() -> str:
    return uuid.uuid4().hex


class ContributionStatus(str, enum.Enum):
    PENDING = "pending"
    CLASSIFIED = "classified"
    REJECTED = "rejected"


class User(db.Model, UserMixin):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(150), unique=True, nullable=False)
    email = db.Column(db.String(150), unique=True, nullable=False)
    password = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(50), nullable=False, default="user")
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self):
        return f"<User {self.username}>"


class Contribution(db.Model):
    """A single plastic-waste report.

    The ``*_suggestion`` columns hold what the volunteer (or the AI) proposed;
    the bare ``brand`` / ``manufacturer`` / ``plastic_type`` columns are only
    written by a reviewer when the record leaves ``pending``.
    """
    __tablename__ = "contributions"

    id = db.Column(db.String(32), primary_key=True, default=new_contribution_id)

    product_image_url = db.Column(db.String(512), nullable=False)
    back_image_url = db.Column(db.String(512))
    recycling_image_url = db.Column(db.String(512))
    manufacturer_image_url = db.Column(db.String(512))

    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    beach_name = db.Column(db.String(200), index=True)

    brand_suggestion = db.Column(db.String(200))
    manufacturer_suggestion = db.Column(db.String(200))
    plastic_type_suggestion = db.Column(db.String(100))

    brand = db.Column(db.String(200), index=True)
    manufacturer = db.Column(db.String(200), index=True)
    plastic_type = db.Column(db.String(100))

    notes = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default=ContributionStatus.PENDING.value, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    classified_at = db.Column(db.DateTime)

    reviewer_id = db.Column(db.Integer, db.ForeignKey("user.id"))
    reviewer = db.relationship("User", foreign_keys=[reviewer_id])
    review_notes = db.Column(db.Text)

    submitted_by_id = db.Column(db.Integer, db.ForeignKey("user.id"))
    submitted_by = db.relationship("User", foreign_keys=[submitted_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_image_url": self.product_image_url,
            "back_image_url": self.back_image_url,
            "recycling_image_url": self.recycling_image_url,
            "manufacturer_image_url": self.manufacturer_image_url,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "beach_name": self.beach_name,
            "brand_suggestion": self.brand_suggestion,
            "manufacturer_suggestion": self.manufacturer_suggestion,
            "plastic_type_suggestion": self.plastic_type_suggestion,
            "brand": self.brand,
            "manufacturer": self.manufacturer,
            "plastic_type": self.plastic_type,
            "notes": self.notes,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "classified_at": self.classified_at.isoformat() if self.classified_at else None,
            "reviewer_id": self.reviewer_id,
            "review_notes": self.review_notes,
            "submitted_by_id": self.submitted_by_id,
        }

    def __repr__(self):
        return f"<Contribution {self.id} - {self.status}>"


class AppSetting(db.Model):
    """Admin-controlled key/value settings (currently only ``ai_enabled``)."""
    __tablename__ = "app_settings"

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.String(255), nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<AppSetting {self.key}={self.value}>"
