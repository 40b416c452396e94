"""Pytest configuration and fixtures for drum ledger tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from drumledger.models.base import Base
import drumledger.services.database as db_module


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    engine = create_engine("sqlite:///:memory:", echo=False)

    from drumledger import models  # noqa: F401

    Base.metadata.create_all(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    yield Session

    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    db_module.get_session_factory = original_get_session


@pytest.fixture(scope="function")
def cable_item(test_db):
    """Provide the default 'Drop Wire Cable' item stocked with one 2000m drum."""
    from drumledger.services import drum_registry_service

    item, _ = drum_registry_service.find_or_create_item(
        "Drop Wire Cable",
        drum_size=2000.0,
        current_stock=2000.0,
    )
    return item


@pytest.fixture(scope="function")
def drum(test_db, cable_item):
    """Provide drum DR-001 at full 2000m capacity, attached to the cable item."""
    from drumledger.services import drum_registry_service

    created, _ = drum_registry_service.find_or_create("DR-001")
    return created


@pytest.fixture(scope="function")
def second_drum(test_db, cable_item):
    """Provide drum DR-002 at full capacity; adds 2000m to the cable item's stock."""
    from drumledger.models import InventoryItem
    from drumledger.services import drum_registry_service

    created, _ = drum_registry_service.find_or_create("DR-002")

    session = test_db()
    item = session.get(InventoryItem, cable_item.id)
    item.current_stock += 2000.0
    session.commit()
    return created


@pytest.fixture(scope="function")
def reload(test_db):
    """Return a function that fetches a fresh copy of a row from the database."""

    def _reload(model, pk):
        session = test_db()
        session.expire_all()
        return session.get(model, pk)

    return _reload
