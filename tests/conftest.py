"""
Pytest configuration and fixtures for the staff agenda tests.
"""

import os

import pytest

# Set test environment before importing the app
os.environ["AGENDA_DATABASE_URI"] = "sqlite://"
os.environ["AGENDA_LOG_LEVEL"] = "WARNING"
os.environ["AGENDA_TIME_ZONE"] = "Europe/Stockholm"

from app import app as flask_app  # noqa: E402
from models import db  # noqa: E402


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True, AGENDA_COMPLETION_ITEMS_AVAILABLE=True)
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sample_templates():
    """Template rows as the agenda engine receives them."""
    return [
        {"id": "t1", "title": "Startupplägg", "schedule_days": ["MO"], "sort_order": 1,
         "input_type": "none", "estimated_minutes": 30},
        {"id": "t2", "title": "Ärenden", "schedule_days": ["MO", "TU"], "sort_order": 0,
         "input_type": "count", "estimated_minutes": 45},
        {"id": "t3", "title": "App", "schedule_days": ["WE"], "sort_order": 2,
         "input_type": "text", "estimated_minutes": None},
    ]
