"""Pytest configuration and shared fixtures."""
import os

# Keep the app module from creating ./bizdash.db on import
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bizdash.database import Base, get_db
from bizdash.main import app
from bizdash.models.audit import AuditEntry
from bizdash.models.trail import DecisionTrail
from bizdash.models.entities import Company, Contact, Deal, Invoice, Expense, Doc, GalleryItem

ORG_ID = "org_acme"
OTHER_ORG_ID = "org_globex"
USER_ID = "user_123"


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    # In-memory SQLite for fast tests
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def sample_company(db_session):
    company = Company(org_id=ORG_ID, name="Analytical Engines Ltd", industry="Computing")
    db_session.add(company)
    db_session.commit()
    db_session.refresh(company)
    return company


@pytest.fixture
def sample_contact(db_session, sample_company):
    """A contact named Ada, linked to a company."""
    contact = Contact(
        org_id=ORG_ID,
        name="Ada",
        email="ada@example.com",
        phone="+44 20 7946 0000",
        status="customer",
        revenue=12500.0,
        last_contact=datetime(2025, 1, 10, 9, 30),
        notes="Prefers email",
        tags=["vip", "engineering"],
        custom_fields={"region": "EMEA"},
        company_id=sample_company.id,
        owner_id=USER_ID
    )
    db_session.add(contact)
    db_session.commit()
    db_session.refresh(contact)
    return contact


@pytest.fixture
def sample_invoice(db_session):
    invoice = Invoice(
        org_id=ORG_ID,
        invoice_number="INV-0042",
        client_name="Analytical Engines Ltd",
        amount=4200.0,
        status="SENT",
        issue_date=datetime(2025, 1, 15),
        due_date=datetime(2025, 2, 15)
    )
    db_session.add(invoice)
    db_session.commit()
    db_session.refresh(invoice)
    return invoice


@pytest.fixture
def client():
    """TestClient wired to its own in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
