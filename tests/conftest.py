import itertools
import random
from datetime import date, datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from classes.auth_service import AuthService
from classes.entities import Base
from classes.google_helpers import create_session_factory

from tests.fakes import fake_google_verifier


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def missing_tables_factory():
    # a database nobody has provisioned yet
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield create_session_factory(eng)
    eng.dispose()


@pytest.fixture
def today():
    return date(2026, 10, 19)


@pytest.fixture
def ids():
    counter = itertools.count(1)
    return lambda: f"msg-{next(counter)}"


@pytest.fixture
def rng():
    return random.Random(7)


@pytest.fixture
def now():
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def auth():
    return AuthService(verifier=fake_google_verifier, secret="test-secret-for-signing-session-tokens")
