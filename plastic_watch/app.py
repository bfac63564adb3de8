import logging
import os
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler

from flask import Flask, jsonify
from flask_wtf.csrf import CSRFError
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import PlasticWatchError
from .extensions import csrf, db, limiter, login_manager, migrate, socketio
from .geolocation import GeolocationAcquirer
from .models import User
from .notifications import notify_classified, notify_new_contribution
from .review import ReviewClassifier
from .settings import SettingsRepository
from .storage import ContributionStore, LocalObjectStorage
from .suggestions import MetadataSuggestionClient, build_tagger
from .uploader import SubmissionUploader
from .wizard import ContributionWizard, DraftRegistry

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"


@dataclass
class Services:
    storage: LocalObjectStorage
    store: ContributionStore
    settings: SettingsRepository
    suggestions: MetadataSuggestionClient
    uploader: SubmissionUploader
    classifier: ReviewClassifier
    drafts: DraftRegistry
    geo_samples: int = 3
    geo_timeout: float = 10.0

    def new_wizard(self) -> ContributionWizard:
        return ContributionWizard(self.suggestions, self.uploader)

    def acquirer_for(self, source, samples=None) -> GeolocationAcquirer:
        return GeolocationAcquirer(source, samples=samples or self.geo_samples, per_request_timeout=self.geo_timeout)


def configure_logging(app: Flask):
    """Console logging for the app and the core modules, plus a rotating file if LOG_DIR is set."""
    level = app.config.get("LOG_LEVEL", "INFO")
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    package_logger = logging.getLogger("plastic_watch")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

        log_dir = app.config.get("LOG_DIR")
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, "plastic-watch.log"),
                maxBytes=10_000_000,  # 10MB
                backupCount=5,
            )
            file_handler.setFormatter(formatter)
            package_logger.addHandler(file_handler)

    app.logger.setLevel(level)


def build_services(app: Flask, tagger=None, storage=None) -> Services:
    config = app.config
    storage = storage or LocalObjectStorage(config["UPLOAD_DIR"], config["UPLOAD_URL_PREFIX"])
    store = ContributionStore()
    settings = SettingsRepository(ai_enabled_default=config["AI_ENABLED_DEFAULT"])
    suggestions = MetadataSuggestionClient(
        tagger or build_tagger(config),
        is_enabled=settings.is_ai_enabled,
        timeout=config["SUGGESTION_TIMEOUT"],
    )
    return Services(
        storage=storage,
        store=store,
        settings=settings,
        suggestions=suggestions,
        uploader=SubmissionUploader(storage, store, on_created=notify_new_contribution),
        classifier=ReviewClassifier(store, on_classified=notify_classified),
        drafts=DraftRegistry(
            max_age=config["PERMANENT_SESSION_LIFETIME"].total_seconds(),
            max_size=config["DRAFT_LIMIT"],
        ),
        geo_samples=config["GEO_SAMPLES"],
        geo_timeout=config["GEO_TIMEOUT"],
    )


def register_error_handlers(app: Flask):
    @app.errorhandler(PlasticWatchError)
    def handle_plastic_watch_error(exc):
        if exc.http_status >= 500:
            app.logger.error("%s: %s", exc.code, exc.message)
        else:
            app.logger.info("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.http_status

    @app.errorhandler(CSRFError)
    def handle_csrf_error(exc):
        return jsonify({"error": "csrf", "message": exc.description}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({"error": exc.name.lower().replace(" ", "_"), "message": exc.description}), exc.code


def create_app(overrides=None, tagger=None, storage=None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    configure_logging(app)

    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(os.path.dirname(uri[len("sqlite:///"):]), exist_ok=True)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)
    socketio.init_app(app)

    app.extensions["plastic_watch"] = build_services(app, tagger=tagger, storage=storage)

    @login_manager.user_loader
    def load_user(user_id: str):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "unauthorized", "message": "Please log in."}), 401

    from .views import admin, auth, contribute
    app.register_blueprint(auth.bp)
    app.register_blueprint(contribute.bp)
    app.register_blueprint(admin.bp)

    from .commands import register_commands
    register_commands(app)

    register_error_handlers(app)
    return app
