from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash

from ..errors import ValidationFailed
from ..extensions import limiter
from ..forms import LoginForm
from ..models import User

bp = Blueprint("auth", __name__)


def _user_dict(user):
    return {"id": user.id, "username": user.username, "email": user.email, "role": user.role}


@bp.route("/session")
def session_info():
    """CSRF token for API clients plus the signed-in user, if any."""
    user = _user_dict(current_user) if current_user.is_authenticated else None
    return jsonify({"csrf_token": generate_csrf(), "user": user})


@bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    form = LoginForm()
    if not form.validate_on_submit():
        raise ValidationFailed(fields=form.errors)

    email = form.email.data.strip().lower()
    user = User.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password, form.password.data):
        current_app.logger.info("Failed login for %s", email)
        return jsonify({"error": "invalid_credentials", "message": "Invalid email or password."}), 401

    login_user(user)
    return jsonify({"message": f"Welcome {user.username}!", "user": _user_dict(user)})


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"message": "Logged out successfully."})
