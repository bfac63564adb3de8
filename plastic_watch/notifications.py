"""Socket.IO notifications for reviewers."""
from flask_login import current_user
from flask_socketio import emit, join_room, leave_room

from .extensions import socketio

REVIEWERS_ROOM = "reviewers"


@socketio.on("join_reviewers")
def on_join_reviewers():
    if current_user.is_authenticated and current_user.is_admin:
        join_room(REVIEWERS_ROOM)
        emit("joined", {"room": REVIEWERS_ROOM})


@socketio.on("leave_reviewers")
def on_leave_reviewers():
    if current_user.is_authenticated and current_user.is_admin:
        leave_room(REVIEWERS_ROOM)
        emit("left", {"room": REVIEWERS_ROOM})


def notify_new_contribution(contribution_id: str, fields: dict):
    payload = {
        "id": contribution_id,
        "beach_name": fields.get("beach_name"),
        "brand_suggestion": fields.get("brand_suggestion"),
        "product_image_url": fields.get("product_image_url"),
        "latitude": fields.get("latitude"),
        "longitude": fields.get("longitude"),
    }
    socketio.emit("new_contribution", payload, to=REVIEWERS_ROOM)


def notify_classified(contribution_id: str, status: str):
    socketio.emit("contribution_classified", {"id": contribution_id, "status": status}, to=REVIEWERS_ROOM)
