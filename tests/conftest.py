import os

# Must be set before the application modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("DATABASE_READ_URL", None)
os.environ["AUTO_CREATE_SCHEMA"] = "false"
os.environ["JWT_SECRET"] = "test-secret"

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vendrefacile.main import app
from vendrefacile.core.security import create_access_token
from vendrefacile.db.database import Base, enable_sqlite_foreign_keys, get_storage
from vendrefacile.db.storage import StorageGateway
from vendrefacile.models.listing import Category, Listing
from vendrefacile.models.user import User

# Use in-memory SQLite for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    # Register before the first connection is opened
    enable_sqlite_foreign_keys(engine)

    # Create the tables
    Base.metadata.create_all(bind=engine)
    yield engine

    # Drop all tables after test
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def storage(db_session):
    return StorageGateway(db_session)


@pytest.fixture
def client(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Dependency override
    def override_get_storage():
        db = TestingSessionLocal()
        try:
            yield StorageGateway(db)
        finally:
            db.close()

    app.dependency_overrides[get_storage] = override_get_storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Factory inserting a user directly in the database."""
    def _make_user(username, city=None, role="user"):
        user = User(
            email=f"{username}@example.com",
            password_hash="not-a-real-hash",
            username=username,
            city=city,
            role=role,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_listing(db_session):
    """
    Factory inserting a listing. Listings get increasing created_at values
    unless one is given, so newest-first order is predictable.
    """
    counter = {"n": 0}

    def _make_listing(owner, title="Item", **fields):
        counter["n"] += 1
        fields.setdefault("created_at", BASE_TIME + timedelta(minutes=counter["n"]))
        listing = Listing(title=title, owner_id=owner.id, **fields)
        db_session.add(listing)
        db_session.commit()
        db_session.refresh(listing)
        return listing
    return _make_listing


@pytest.fixture
def make_category(db_session):
    def _make_category(name, parent=None):
        category = Category(name=name, parent_id=parent.id if parent else None)
        db_session.add(category)
        db_session.commit()
        db_session.refresh(category)
        return category
    return _make_category


@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
    return _auth_headers
