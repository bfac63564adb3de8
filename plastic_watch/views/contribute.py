"""Contribution wizard API.

The browser drives the wizard one step at a time; the draft lives server
side, keyed by the id stored in the Flask session.
"""
from flask import Blueprint, abort, current_app, jsonify, request, session
from flask_login import current_user
from werkzeug.utils import secure_filename

from ..capture import ImageSlot, allowed_file, decode_data_uri
from ..errors import InvalidImage, NotFound, ValidationFailed
from ..extensions import limiter
from ..forms import DetailsForm
from ..geolocation import ReportedPositionSource, manual_reading
from . import request_fields, services

bp = Blueprint("contribute", __name__, url_prefix="/contribute")

SESSION_KEY = "wizard_id"
DETAIL_FIELDS = ("brand", "manufacturer", "plastic_type", "beach_name", "notes")


def _current_wizard():
    wizard = services().drafts.get(session.get(SESSION_KEY))
    if wizard is None:
        raise NotFound("No contribution in progress. Start a new one.")
    return wizard


def _slot(name):
    try:
        return ImageSlot(name)
    except ValueError:
        abort(404)


def _state(wizard, status=200, **extra):
    payload = wizard.to_dict()
    payload["notices"] = [n.to_dict() for n in wizard.drain_notices()]
    payload.update(extra)
    return jsonify(payload), status


@bp.route("/start", methods=["POST"])
def start():
    svc = services()
    svc.drafts.discard(session.get(SESSION_KEY))
    wizard = svc.drafts.add(svc.new_wizard())
    session[SESSION_KEY] = wizard.id
    return _state(wizard, 201)


@bp.route("/state")
def state():
    wizard = _current_wizard()
    payload = wizard.to_dict(previews=request.args.get("previews") in ("1", "true"))
    return jsonify(payload)


@bp.route("/location", methods=["POST"])
async def location():
    """Either best-of-N browser readings or a manual map pick."""
    wizard = _current_wizard()
    payload = request.get_json(silent=True) or {}

    if "readings" in payload:
        source = ReportedPositionSource.from_payload(payload["readings"])
        acquirer = services().acquirer_for(source, samples=len(payload["readings"]))
        await wizard.locate(acquirer, best=True)
    elif "latitude" in payload and "longitude" in payload:
        wizard.use_location(manual_reading(payload["latitude"], payload["longitude"]))
    else:
        raise ValidationFailed("Send either readings or latitude/longitude.")
    return _state(wizard)


@bp.route("/photos/<slot>", methods=["POST"])
def add_photo(slot):
    wizard = _current_wizard()
    slot = _slot(slot)

    file = request.files.get("image")
    if file and file.filename:
        if not allowed_file(file.filename):
            raise InvalidImage("Please upload valid image files (png/jpg/jpeg/gif/webp/bmp/tiff).")
        wizard.capture(slot, file.read(), secure_filename(file.filename))
    else:
        payload = request.get_json(silent=True) or {}
        if not payload.get("data_uri"):
            raise InvalidImage("No image provided.")
        data, _ = decode_data_uri(payload["data_uri"])
        wizard.capture(slot, data)

    return _state(wizard, preview=wizard.preview(slot))


@bp.route("/photos/<slot>", methods=["DELETE"])
def remove_photo(slot):
    wizard = _current_wizard()
    wizard.remove(_slot(slot))
    return _state(wizard)


@bp.route("/next", methods=["POST"])
async def next_step():
    """Advance one step.

    Entering details runs the automatic AI suggestion before answering, which
    can take up to SUGGESTION_TIMEOUT. Send ``{"suggest": false}`` to get the
    details step back at once and call ``/suggest`` separately.
    """
    wizard = _current_wizard()
    payload = request.get_json(silent=True) or {}
    await wizard.next(auto_suggest=payload.get("suggest", True) is not False)
    return _state(wizard)


@bp.route("/back", methods=["POST"])
def back():
    wizard = _current_wizard()
    wizard.back()
    return _state(wizard)


@bp.route("/details", methods=["POST"])
def details():
    wizard = _current_wizard()
    form = DetailsForm()
    if not form.validate_on_submit():
        raise ValidationFailed(fields=form.errors)

    changes = {name: form[name].data or "" for name in request_fields(request, DETAIL_FIELDS)}
    if changes:
        wizard.edit(**changes)
    return _state(wizard)


@bp.route("/suggest", methods=["POST"])
async def suggest():
    wizard = _current_wizard()
    suggestion = await wizard.request_suggestions()
    return _state(wizard, suggestion=suggestion.to_dict() if suggestion else None)


@bp.route("/submit", methods=["POST"])
@limiter.limit("10 per minute")
async def submit():
    wizard = _current_wizard()
    payload = request.get_json(silent=True) or {}
    skip = bool(payload.get("skip", False))
    submitted_by = current_user.id if current_user.is_authenticated else None

    contribution_id = await wizard.submit(skip=skip, submitted_by=submitted_by)
    current_app.logger.info("Wizard %s submitted contribution %s (skip=%s)", wizard.id, contribution_id, skip)

    services().drafts.discard(wizard.id)
    session.pop(SESSION_KEY, None)
    return _state(wizard, 201)
