from functools import wraps

from flask import abort, current_app
from flask_login import current_user, login_required


def services():
    return current_app.extensions["plastic_watch"]


def admin_required(func):
    """Admins only; everyone else gets a 403."""
    @wraps(func)
    @login_required
    def wrapper(*args, **kwargs):
        if not current_user.is_admin:
            abort(403)
        return current_app.ensure_sync(func)(*args, **kwargs)
    return wrapper


def request_fields(req, names):
    """Field names present in a JSON body or form post."""
    payload = req.get_json(silent=True) if req.is_json else req.form
    if not payload:
        return []
    return [name for name in names if name in payload]
