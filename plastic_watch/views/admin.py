"""Admin console API: review queue, classification, settings, users."""
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash

from ..errors import PlasticWatchError, ValidationFailed
from ..extensions import db, limiter
from ..forms import CreateUserForm, ReviewForm, SettingsForm
from ..models import ContributionStatus, User
from ..review import Decision, ReviewEdits
from . import admin_required, services

bp = Blueprint("admin", __name__, url_prefix="/admin")


@bp.route("/contributions")
@admin_required
async def contributions():
    status = request.args.get("status", ContributionStatus.PENDING.value)
    if status not in {s.value for s in ContributionStatus}:
        raise ValidationFailed(f"Unknown status: {status}")
    limit = request.args.get("limit", type=int)
    records = await services().store.list_by_status(status, limit=limit)
    return jsonify({"status": status, "contributions": records})


@bp.route("/stats")
@admin_required
async def stats():
    counts = await services().store.count_by_status()
    counts["total"] = sum(counts.values())
    return jsonify(counts)


@bp.route("/review/<contribution_id>")
@admin_required
async def load_review(contribution_id):
    view = await services().classifier.load(contribution_id)
    return jsonify(view.to_dict())


@bp.route("/review/<contribution_id>", methods=["POST"])
@admin_required
async def classify(contribution_id):
    form = ReviewForm()
    if not form.validate_on_submit():
        raise ValidationFailed(fields=form.errors)

    edits = ReviewEdits(
        brand=form.brand.data or "",
        manufacturer=form.manufacturer.data or "",
        plastic_type=form.plastic_type.data or "",
        beach_name=form.beach_name.data or "",
        notes=form.notes.data or "",
        review_notes=form.review_notes.data or "",
    )
    decision = Decision(form.decision.data)
    status = await services().classifier.classify(
        contribution_id, edits, decision, reviewer_id=current_user.id
    )
    view = await services().classifier.load(contribution_id)
    return jsonify({
        "message": f"Contribution {status.value}!",
        "contribution": view.to_dict(),
    })


@bp.route("/settings", methods=["GET", "POST"])
@admin_required
async def settings():
    repo = services().settings
    if request.method == "POST":
        form = SettingsForm()
        if not form.validate_on_submit():
            raise ValidationFailed(fields=form.errors)
        try:
            await repo.set_ai_enabled(form.ai_enabled.data)
        except SQLAlchemyError:
            current_app.logger.exception("Error saving AI setting")
            raise PlasticWatchError("Error saving settings. Please try again.")
        current_app.logger.info("AI suggestions %s by %s",
                                "enabled" if form.ai_enabled.data else "disabled", current_user.username)
    return jsonify({"ai_enabled": await repo.is_ai_enabled()})


@bp.route("/users", methods=["POST"])
@limiter.limit("10 per minute")
@admin_required
def create_user():
    """Admin-only: create a new user with the given role."""
    form = CreateUserForm()
    if not form.validate_on_submit():
        raise ValidationFailed(fields=form.errors)

    username = form.username.data.strip()
    email = form.email.data.strip().lower()
    existing = User.query.filter((User.email == email) | (User.username == username)).first()
    if existing:
        return jsonify({"error": "duplicate_user", "message": "Username or email already exists."}), 409

    user = User(
        username=username,
        email=email,
        password=generate_password_hash(form.password.data),
        role=form.role.data,
    )
    try:
        db.session.add(user)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Error creating user")
        raise PlasticWatchError("Error creating user. Please try again.")
    return jsonify({"message": f"{user.role.title()} '{username}' created successfully!", "id": user.id}), 201
