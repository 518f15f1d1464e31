"""
Shared test setup.

Settings are cached on first import, so the environment is fixed here before
anything from storefront is imported: an in-memory database shared by every
session, test gateway keys and carrier credentials.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_secret"
os.environ["SHIPROCKET_EMAIL"] = "ops@example.com"
os.environ["SHIPROCKET_PASSWORD"] = "carrier-pass"
os.environ["SHIPROCKET_PICKUP_NAME"] = ""
os.environ["ALLOW_UNVERIFIED_CHECKOUT"] = "false"
os.environ["DASH_USER"] = ""
os.environ["DASH_PASS"] = ""
os.environ["INITIAL_ADMIN_EMAIL"] = ""
os.environ["INITIAL_ADMIN_PASSWORD"] = ""

import pytest  # noqa: E402

from storefront.models.base import Base, SessionLocal, init_db  # noqa: E402


@pytest.fixture
def db():
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
        session.close()


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient
    from storefront.main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_staff_user(db):
    """Factory for active staff accounts with a bcrypt-hashed password."""
    from storefront.models.user import StaffUser
    from storefront.services.auth_service import pwd_context

    def _make(email, password, display_name=None):
        user = StaffUser(email=email, password_hash=pwd_context.hash(password), display_name=display_name)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def staff_client(client, db, make_staff_user):
    """Test client carrying a valid staff session."""
    from storefront.services import auth_service

    user = make_staff_user("admin@example.com", "s3cret-pass", "Admin")
    token = auth_service.create_session(db, user.id)
    client.headers.update({"Authorization": f"Bearer {token}"})
    yield client
    client.headers.pop("Authorization", None)
