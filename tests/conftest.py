"""
Shared fixtures: in-memory SQLite, app dependency overrides and fakes for
the identity provider, the payment gateway and file storage.
"""
import itertools
import json
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.main import app
from marketplace.core.auth_dependency import get_db
from marketplace.core.identity import (
    IdentityResolver,
    VerificationFailed,
    VerificationNotApplicable,
    VerifiedIdentity,
    get_identity_resolver,
)
from marketplace.core.rate_limit import rate_limit_store
from marketplace.core.token_store import InMemoryRevocationStore, get_revocation_store
from marketplace.db.base import Base
from marketplace.db.init_db import init_db
from marketplace.db.models.enums import ListingStatus, PlanType, UserRole, UserStatus
from marketplace.db.models.business import Business
from marketplace.db.models.plan import Plan
from marketplace.db.models.professional import Professional
from marketplace.db.models.user import User
from marketplace.services.identity_provider import get_identity_provider_client
from marketplace.services.payment_gateway import CheckoutPreference, PaymentGateway, get_payment_gateway
from marketplace.services.storage_service import StorageService, get_storage


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeGateway(PaymentGateway):
    """Records checkouts; construct_event accepts the signature "valid"."""

    def __init__(self):
        self.checkouts = []
        self.error = None

    def create_checkout(self, item, external_reference, payment_method, success_url=None, failure_url=None):
        if self.error:
            raise self.error
        self.checkouts.append({
            "item": item,
            "external_reference": external_reference,
            "payment_method": payment_method,
            "success_url": success_url,
            "failure_url": failure_url,
        })
        n = len(self.checkouts)
        return CheckoutPreference(id=f"cs_test_{n}", init_point=f"https://checkout.test/pay/{n}")

    def get_checkout(self, checkout_id):
        return {"id": checkout_id, "status": "open", "payment_status": "unpaid"}

    def construct_event(self, payload, signature):
        if signature != "valid":
            raise ValueError("Invalid signature")
        return json.loads(payload)


class FakeTokenVerifier:
    """Accepts "tok_<external_id>" tokens; expired_<...> tokens fail."""

    def __init__(self):
        self.profiles = {}

    async def verify(self, token):
        if token.startswith("expired_"):
            raise VerificationFailed("expired")
        if not token.startswith("tok_"):
            raise VerificationNotApplicable()
        external_id = token[len("tok_"):]
        profile = self.profiles.get(external_id, {})
        return VerifiedIdentity(
            external_id=external_id,
            email=profile.get("email", ""),
            name=profile.get("name", ""),
        )


class FakeIdentityClient:
    configured = True

    def __init__(self):
        self.created = []
        self.error = None

    async def create_user(self, email, password, first_name, last_name=""):
        if self.error:
            raise self.error
        self.created.append(email)
        return {"id": f"user_{len(self.created)}", "email_addresses": [{"email_address": email}]}


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    init_db(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def verifier():
    return FakeTokenVerifier()


@pytest.fixture
def revocations():
    return InMemoryRevocationStore()


@pytest.fixture
def storage(tmp_path):
    return StorageService(upload_dir=str(tmp_path / "uploads"), max_bytes=1024)


@pytest.fixture
def identity_client():
    return FakeIdentityClient()


@pytest.fixture
def client(db, gateway, verifier, revocations, storage, identity_client):
    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    resolver = IdentityResolver([verifier], revocations)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_resolver] = lambda: resolver
    app.dependency_overrides[get_revocation_store] = lambda: revocations
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_identity_provider_client] = lambda: identity_client
    rate_limit_store.clear()

    yield TestClient(app)

    app.dependency_overrides.clear()
    rate_limit_store.clear()


_ids = itertools.count(1)


@pytest.fixture
def make_user(db):
    """Factory: a local user linked to a provider account; returns (user, auth headers)."""
    def factory(role=UserRole.USER, status=UserStatus.APPROVED, email=None):
        n = next(_ids)
        user = User(
            external_id=f"ext_{n}",
            email=email or f"user{n}@example.com",
            name=f"User {n}",
            role=role,
            status=status,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user, {"Authorization": f"Bearer tok_ext_{n}"}
    return factory


@pytest.fixture
def owner(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(role=UserRole.ADMIN)


@pytest.fixture
def business(db, owner):
    user, _ = owner
    business = Business(
        user_id=user.id,
        name="Padaria Central",
        description="Fresh bread every morning",
        city="Campinas",
        state="SP",
        photos=[],
        status=ListingStatus.PENDING,
        featured=False,
    )
    db.add(business)
    db.commit()
    db.refresh(business)
    return business


@pytest.fixture
def professional(db, owner):
    user, _ = owner
    professional = Professional(
        user_id=user.id,
        name="Ana Souza",
        occupation="Electrician",
        bio="Residential installations",
        state="RJ",
        portfolio=[],
        status=ListingStatus.PENDING,
        featured=False,
    )
    db.add(professional)
    db.commit()
    db.refresh(professional)
    return professional


@pytest.fixture
def business_plan(db):
    plan = Plan(
        name="Featured Business",
        description="Top placement for 30 days",
        price=Decimal("100.00"),
        duration=30,
        type=PlanType.BUSINESS,
        features=["Featured badge"],
        active=True,
    )
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return plan
