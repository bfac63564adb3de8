import pytest
from werkzeug.security import generate_password_hash

from plastic_watch import create_app
from plastic_watch.extensions import db
from plastic_watch.geolocation import Reading
from plastic_watch.models import User
from plastic_watch.suggestions import Suggestion

from .fakes import FakeTagger, make_image


def add_user(app, username, email, password, role="user"):
    with app.app_context():
        user = User(
            username=username,
            email=email,
            password=generate_password_hash(password),
            role=role,
        )
        db.session.add(user)
        db.session.commit()
        return user.id


@pytest.fixture
def png_bytes():
    return make_image("PNG")


@pytest.fixture
def jpeg_bytes():
    return make_image("JPEG")


@pytest.fixture
def reading():
    return Reading(latitude=13.0500, longitude=80.2824, accuracy=12.0)


@pytest.fixture
def tagger():
    return FakeTagger(Suggestion(brand="Coca-Cola", manufacturer="The Coca-Cola Company", plastic_type="PETE 1"))


@pytest.fixture
def app(tmp_path, tagger):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "WTF_CSRF_ENABLED": False,
            "RATELIMIT_ENABLED": False,
            "UPLOAD_DIR": str(tmp_path / "uploads"),
            "UPLOAD_URL_PREFIX": "/static/uploads",
            "SUGGESTION_TIMEOUT": 0.5,
            "AI_ENABLED_DEFAULT": True,
        },
        tagger=tagger,
    )
    with app.app_context():
        db.create_all()
    yield app


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_user(app):
    return add_user(app, "reviewer", "reviewer@example.org", "s3cret-pass", role="admin")


@pytest.fixture
def admin_client(client, admin_user):
    resp = client.post("/login", json={"email": "reviewer@example.org", "password": "s3cret-pass"})
    assert resp.status_code == 200
    return client
