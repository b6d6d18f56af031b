"""Business records of the dashboard modules (CRM, accounting, docs, gallery)."""
from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, DateTime, ForeignKey, JSON, Text
from bizdash.database import Base, new_id
from bizdash.models.enums import DealStage, InvoiceStatus


class Company(Base):
    __tablename__ = "companies"

    id = Column(String, primary_key=True, default=new_id)
    org_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    industry = Column(String, nullable=True)
    website = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Contact(Base):
    """A CRM contact. tags and custom_fields are free-form JSON."""
    __tablename__ = "contacts"

    id = Column(String, primary_key=True, default=new_id)
    org_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    status = Column(String, nullable=False, default="lead")
    revenue = Column(Float, nullable=True)
    last_contact = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)
    custom_fields = Column(JSON, nullable=True)
    # Companies are soft references - a rollback may point at a deleted one
    company_id = Column(String, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
    owner_id = Column(String, nullable=True)  # User id, users live outside this service

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Deal(Base):
    __tablename__ = "deals"

    id = Column(String, primary_key=True, default=new_id)
    org_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    value = Column(Float, nullable=False, default=0.0)
    stage = Column(String, nullable=False, default=DealStage.PROSPECT.value)
    expected_close = Column(DateTime, nullable=True)
    custom_fields = Column(JSON, nullable=True)
    company_id = Column(String, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
    contact_id = Column(String, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True)
    owner_id = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String, primary_key=True, default=new_id)
    org_id = Column(String, nullable=False, index=True)
    invoice_number = Column(String, nullable=False)
    client_name = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    status = Column(String, nullable=False, default=InvoiceStatus.DRAFT.value)
    issue_date = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, default=new_id)
    org_id = Column(String, nullable=False, index=True)
    description = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    category = Column(String, nullable=False, default="general")
    status = Column(String, nullable=False, default="pending")
    submitted_by = Column(String, nullable=True)
    date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Doc(Base):
    __tablename__ = "docs"

    id = Column(String, primary_key=True, default=new_id)
    org_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False, default="")
    category = Column(String, nullable=True)
    media_url = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class GalleryItem(Base):
    __tablename__ = "gallery_items"

    id = Column(String, primary_key=True, default=new_id)
    org_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    url = Column(String, nullable=False)
    media_type = Column(String, nullable=False)  # e.g., "image", "video"
    size = Column(Integer, nullable=True)  # Bytes

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
