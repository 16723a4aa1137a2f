"""
Shared Test Fixtures
Each test runs against its own SQLite file database
"""

import itertools

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from expense_approvals.main import app
from expense_approvals.config.database import Base, get_db
from expense_approvals.models import Company, User, UserRole
from expense_approvals.utils.security import get_password_hash

TEST_PASSWORD = "testpass123"

# bcrypt is slow on purpose; hash once for every test user
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


@pytest.fixture
def engine(tmp_path):
    """Create test database"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """Test client whose requests use the test database"""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def company(db):
    company = Company(name="Test Company", country="United States", currency="USD")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


@pytest.fixture
def make_user(db, company):
    """Factory creating users in the test company"""
    counter = itertools.count(1)

    def _make_user(role=UserRole.EMPLOYEE, reports_to=None, full_name=None, is_active=True, company_id=None):
        n = next(counter)
        user = User(
            email=f"user{n}@example.com",
            full_name=full_name or f"Test User {n}",
            hashed_password=TEST_PASSWORD_HASH,
            company_id=company_id or company.id,
            role=role,
            reports_to=reports_to,
            is_active=is_active
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers(client):
    """Log a user in and return the Authorization header"""
    def _auth_headers(user) -> dict:
        response = client.post(
            "/api/auth/login",
            data={"username": user.email, "password": TEST_PASSWORD}
        )
        assert response.status_code == 200, f"Login failed: {response.json()}"
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _auth_headers
