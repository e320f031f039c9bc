from datetime import time

import pytest

from app import create_app
from config import Config
from models import db
from models.location import Location, LocationAvailability
from models.room import Room
from models.user import User
from security.password import hash_password
from utils.seed import seed_config

PASSWORD = "secret123"


class ConfigForTests(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    BCRYPT_ROUNDS = 4
    LOG_LEVEL = "WARNING"
    LOG_DIR = None
    SEED_CONFIG_ON_STARTUP = False
    SMTP_HOST = None
    STRIPE_SECRET_KEY = None
    STRIPE_WEBHOOK_SECRET = None


@pytest.fixture
def app(tmp_path):
    class _Config(ConfigForTests):
        UPLOAD_FOLDER = str(tmp_path / "uploads")

    app = create_app(_Config)
    with app.app_context():
        db.create_all()
        seed_config()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """Create a user and return its id."""
    counter = {"n": 0}

    def _make(username=None, role="standard", documentation_status="approved", **fields):
        counter["n"] += 1
        username = username or f"user{counter['n']:03d}"
        with app.app_context():
            user = User(
                username=username,
                password_hash=hash_password(PASSWORD),
                full_name=fields.pop("full_name", f"Therapist {username}"),
                email=fields.pop("email", f"{username}@example.com"),
                role=role,
                documentation_status=documentation_status,
                **fields,
            )
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make


@pytest.fixture
def make_room(app):
    """Create a location with one room; schedule is {iso_weekday: ("HH:MM", "HH:MM")}."""

    def _make(price=50000, schedule=None, name="Room A", location_name=None):
        with app.app_context():
            loc = Location(
                name=location_name or f"Location for {name}",
                description="Clinic",
                address="Main street 1",
                image_url="https://img.example.com/loc.png",
            )
            for day, (open_t, close_t) in (schedule or {}).items():
                h1, m1 = map(int, open_t.split(":"))
                h2, m2 = map(int, close_t.split(":"))
                loc.schedule.append(LocationAvailability(day_of_week=day, open_time=time(h1, m1), close_time=time(h2, m2)))
            db.session.add(loc)
            db.session.flush()
            room = Room(
                location_id=loc.id,
                name=name,
                description="Quiet room",
                price=price,
                image_url="https://img.example.com/room.png",
                features=["sofa"],
            )
            db.session.add(room)
            db.session.commit()
            return room.id

    return _make


def login(client, username, password=PASSWORD):
    resp = client.post("/api/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.get_json()
    # double-submit: echo the CSRF cookie in the header on every later request
    client.environ_base["HTTP_X_CSRF_TOKEN"] = client.get_cookie("csrf_token").value
    return resp


@pytest.fixture
def login_as(app, make_user):
    """Create a user, log a fresh client in as that user, return (client, user_id)."""

    def _login(role="standard", **fields):
        user_id = make_user(role=role, **fields)
        with app.app_context():
            username = db.session.get(User, user_id).username
        c = app.test_client()
        login(c, username)
        return c, user_id

    return _login
