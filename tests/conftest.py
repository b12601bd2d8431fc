"""
Test configuration — mock database before any app code loads.
"""

import copy
import json
import os
import sys
from unittest.mock import MagicMock, patch

import pytest

# Set dummy DATABASE_URL before any imports
os.environ["DATABASE_URL"] = "sqlite://"

_mock_engine = MagicMock()
_mock_session_local = MagicMock()


def _patched_create_engine(*args, **kwargs):
    return _mock_engine


# Patch create_engine before db.session imports it
with patch("sqlalchemy.create_engine", _patched_create_engine):
    if "db.session" in sys.modules:
        del sys.modules["db.session"]

    import db.session
    db.session.engine = _mock_engine
    db.session.SessionLocal = _mock_session_local
    db.session.check_db = lambda: None

if "app" in sys.modules:
    del sys.modules["app"]

import app as app_module  # noqa: E402
app_module.check_db = lambda: None

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")


def load_fixture(name):
    with open(os.path.join(FIXTURES_DIR, name)) as f:
        return json.load(f)


@pytest.fixture
def email_workflow():
    """Webhook → 'Send Email' HTTP node, both incomplete, no response node."""
    return copy.deepcopy(load_fixture("email_workflow.json"))


@pytest.fixture
def valid_workflow():
    """Webhook with path, a Set node and a response node: nothing to heal."""
    return copy.deepcopy(load_fixture("valid_workflow.json"))


@pytest.fixture
def schedule_workflow():
    return {
        "name": "Scheduled Data Processing",
        "nodes": [
            {
                "id": "schedule",
                "name": "Schedule",
                "type": "n8n-nodes-base.scheduleTrigger",
                "position": [250, 300],
                "parameters": {},
            },
            {
                "id": "fetch_data",
                "name": "Fetch Data",
                "type": "n8n-nodes-base.httpRequest",
                "position": [450, 300],
                "parameters": {"method": "GET", "url": "https://api.example.com/data"},
            },
        ],
        "connections": {
            "Schedule": {"main": [[{"node": "Fetch Data", "type": "main", "index": 0}]]}
        },
    }
