"""
Shared fixtures: an in-memory store seeded with the demo roster, the managers
built on top of it and a Flask test client.
"""
import io
import random

import pandas as pd
import pytest

from app import create_app
from exam_control.modules.attendance_manager import AttendanceManager
from exam_control.modules.auth_manager import AuthManager, SessionContext
from exam_control.modules.committee_manager import CommitteeManager
from exam_control.modules.database_manager import DatabaseManager
from exam_control.modules.envelope_manager import EnvelopeLifecycleManager
from exam_control.modules.schedule_manager import ScheduleManager
from exam_control.modules.state_mirror import StateMirror
from exam_control.modules.student_manager import StudentManager


@pytest.fixture
def db():
    manager = DatabaseManager(':memory:')
    manager.seed_demo_data()
    yield manager
    manager.close_all_connections()


@pytest.fixture
def mirror(db):
    state = StateMirror(db)
    assert state.refresh()
    return state


@pytest.fixture
def envelopes(db, mirror):
    return EnvelopeLifecycleManager(db, mirror)


@pytest.fixture
def auth(db, mirror, envelopes):
    return AuthManager(db, mirror, envelopes)


@pytest.fixture
def attendance(db, mirror):
    return AttendanceManager(db, mirror)


@pytest.fixture
def schedule(db, mirror):
    return ScheduleManager(db, mirror, rng=random.Random(7))


@pytest.fixture
def students(db, mirror):
    return StudentManager(db, mirror)


@pytest.fixture
def committees(db, mirror, envelopes):
    return CommitteeManager(db, mirror, envelopes)


@pytest.fixture
def admin(mirror):
    return SessionContext(mirror.get_user('u1'))


@pytest.fixture
def teacher(mirror):
    return SessionContext(mirror.get_user('u2'))


@pytest.fixture
def counselor(mirror):
    return SessionContext(mirror.get_user('u4'))


@pytest.fixture
def app(tmp_path):
    application = create_app('testing', EXPORTS_FOLDER=str(tmp_path))
    yield application
    application.extensions['exam_control']['db'].close_all_connections()


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, code):
    return client.post('/api/login', json={'code': code})


def workbook_bytes(rows):
    """xlsx file content holding ``rows`` on its first sheet."""
    buffer = io.BytesIO()
    pd.DataFrame(rows).to_excel(buffer, index=False, engine='openpyxl')
    return buffer.getvalue()
