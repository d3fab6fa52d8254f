"""
Pytest configuration and fixtures for the reference-data tests.

Every test gets its own in-memory SQLite database. The application's
``get_db`` dependency is overridden so HTTP tests and pipeline tests share the
same engine.
"""
import os

# The application lifespan must not try to reach PostgreSQL during tests.
os.environ["SKIP_DB_INIT"] = "1"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from refdata.db import models  # noqa: F401
from refdata.db.session import Base, enable_sqlite_savepoints, get_db
from refdata.main import app


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def add_stock(db_session):
    """
    Insert a parent stock and return it.

    All sessions share one SQLite connection, so seeding must leave no
    transaction open behind it.
    """

    def _add(symbol: str, name: str = None, **extra):
        stock = models.Stock(symbol=symbol, name=name or f"{symbol} Corp", **extra)
        db_session.add(stock)
        db_session.commit()
        return stock

    return _add
