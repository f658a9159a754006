# FILE: tests/conftest.py
"""
Pytest configuration for the Blender agent test suite.

Configures:
- pytest-asyncio for async test support
- project root on sys.path
- in-memory conversation store and breaker isolation
"""
import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest

pytest_plugins = ["pytest_asyncio"]


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    from blender_agent.db import init_db, make_engine, make_session_factory

    engine = make_engine("sqlite://")
    init_db(engine)
    factory = make_session_factory(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def reset_breakers():
    """Breakers are process-wide; every test starts with all of them CLOSED."""
    from blender_agent.integrations.circuit_breaker import reset_breakers as _reset

    _reset()
    yield
    _reset()
