"""
Pytest fixtures for the toolaudit backend tests.

Provides the in-memory application, a per-test clean database and small
factories for storages, tools and toolkits.
"""

import pytest

from toolaudit import create_app
from toolaudit.extensions import db
from toolaudit.models import AuditCycle, KitContent, Tool, Toolkit
from toolaudit.time_utils import utcnow


MAIN_SHELF = {
    "department": "Dept A",
    "storage_name": "Main Shelf",
    "storage_code": "MS-01",
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema (Core deletes skip the snapshot guards)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def make_tool(db_session):
    """Factory: committed Tool on Main Shelf unless overridden."""
    def _make(name="Torque Wrench", **fields):
        values = {
            **MAIN_SHELF,
            "storage_type": "Shelf",
            "qr_location": "MS-01-R1",
            **fields,
        }
        tool = Tool(name=name, **values)
        db_session.add(tool)
        db_session.commit()
        return tool
    return _make


@pytest.fixture(scope='function')
def make_toolkit(db_session):
    """Factory: committed Toolkit with contents given as dicts."""
    def _make(name="Avionics Kit", contents=(), **fields):
        values = {
            **MAIN_SHELF,
            "storage_type": "Shelf",
            "qr_location": "MS-01-R1",
            **fields,
        }
        kit = Toolkit(name=name, **values)
        for content in contents:
            kit.contents.append(KitContent(**content))
        db_session.add(kit)
        db_session.commit()
        return kit
    return _make


@pytest.fixture(scope='function')
def make_cycle(db_session):
    """Factory: committed AuditCycle for Main Shelf."""
    def _make(**fields):
        values = {
            **MAIN_SHELF,
            "frequency": "monthly",
            "max_cycles": 12,
            "cycle_number": 0,
            "next_audit_date": utcnow(),
            **fields,
        }
        cycle = AuditCycle(**values)
        db_session.add(cycle)
        db_session.commit()
        return cycle
    return _make
