import os

# must be set before the app module builds its engine
os.environ["DATABASE_URL"] = "sqlite://"

import pytest

from app import app as flask_app
from models import db


class FakeClock:
    def __init__(self, now=0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(clock):
    flask_app.config.update(TESTING=True, CLOCK=clock)
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()
