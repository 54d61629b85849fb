# tests/conftest.py
import os
import uuid

# до импорта приложения: отдельная in-memory база на прогон
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient

from app.db import engine, SessionLocal, init_db
from app.main import app
from app.models.base import Base
from app.models.subscription import SubscriptionPlan
from app.models.user import User
from app.models.vehicle import ListingStatus
from app.services import listings
from app.utils.documents import dump_features
from app.utils.security import token_for_user


@pytest.fixture(autouse=True)
def _schema():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    def _make(role="user", name="Test User", email=None, blocked=False):
        u = User(
            name=name,
            email=email or f"{uuid.uuid4().hex[:10]}@example.com",
            role=role,
            is_blocked=blocked,
        )
        db.add(u)
        db.commit()
        db.refresh(u)
        return u
    return _make


@pytest.fixture
def auth():
    def _headers(user):
        return {"Authorization": f"Bearer {token_for_user(user)}"}
    return _headers


@pytest.fixture
def listing_payload():
    def _payload(**overrides):
        data = {
            "title": "Toyota Aqua 2017",
            "brand": "Toyota",
            "model": "Aqua",
            "year": 2017,
            "price": 5_500_000,
            "type": "car",
            "fuel_type": "hybrid",
            "transmission": "automatic",
            "condition": "USED",
            "mileage": 64000,
            "description": "Single owner, full service history",
            "images": ["https://cdn.example.com/aqua-1.jpg"],
            "contact_info": {"phone": "+94771234567", "email": "seller@example.com", "location": "Colombo"},
        }
        data.update(overrides)
        return data
    return _payload


@pytest.fixture
def make_listing(db, listing_payload):
    def _make(owner, status=ListingStatus.PENDING, **overrides):
        v = listings.create_listing(db, owner.id, listing_payload(**overrides))
        if status != ListingStatus.PENDING:
            v = listings.admin_set_status(db, v.id, status)
        return v
    return _make


@pytest.fixture
def make_plan(db):
    def _make(name="Pro", plan_type="pro", price=1000, post_count=1, is_active=True, features=None):
        plan = SubscriptionPlan(
            name=name,
            plan_type=plan_type,
            price=price,
            post_count=post_count,
            is_active=is_active,
            features=dump_features(features or ["Premium badge"]),
        )
        db.add(plan)
        db.commit()
        db.refresh(plan)
        return plan
    return _make
