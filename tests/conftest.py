"""
Shared fixtures.

Config is read at import time, so the environment is pinned before the
``fitnessvibe`` package is imported.
"""
import itertools
import os
from datetime import timedelta
from functools import lru_cache

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["MAIL_SERVER"] = ""

import pytest  # noqa: E402

from fitnessvibe import app as flask_app  # noqa: E402
from fitnessvibe.auth import generate_token, hash_password  # noqa: E402
from fitnessvibe.gamification import seed_badges  # noqa: E402
from fitnessvibe.models import Activity, Friendship, User, db, utcnow  # noqa: E402

PASSWORD = "Secret123"


@lru_cache(maxsize=1)
def password_hash():
    return hash_password(PASSWORD)


@pytest.fixture
def app():
    flask_app.config["TESTING"] = True
    with flask_app.app_context():
        db.create_all()
        seed_badges()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make(username=None, **fields):
        username = username or f"athlete{next(counter)}"
        fields.setdefault("first_name", "Alex")
        fields.setdefault("last_name", "Runner")
        user = User(
            username=username,
            email=fields.pop("email", f"{username}@example.com"),
            password_hash=password_hash(),
            **fields
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def user(make_user):
    return make_user("alex")


@pytest.fixture
def headers(user):
    return auth_headers(user)


def auth_headers(user):
    token, _ = generate_token(user.id, user.email)
    return {"Authorization": f"Bearer {token}"}


def befriend(a, b):
    db.session.add(Friendship(user_id=a.id, friend_id=b.id))
    db.session.add(Friendship(user_id=b.id, friend_id=a.id))
    db.session.commit()


def completed_activity(user, days_ago=0, minutes=30, activity_type="running", **fields):
    """Insert a finished activity directly, bypassing the reward pipeline."""
    ended = utcnow() - timedelta(days=days_ago)
    activity = Activity(
        user_id=user.id,
        activity_type=activity_type,
        name=fields.pop("name", f"{activity_type} {days_ago}"),
        status=fields.pop("status", "completed"),
        started_at=ended - timedelta(minutes=minutes),
        ended_at=ended,
        **fields
    )
    db.session.add(activity)
    db.session.commit()
    return activity
