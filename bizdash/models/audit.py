"""
Audit log model - an append-only record of who did what to which entity.

Rows are written by the audit recorder and never edited or deleted by the
application; retention is an operational concern.
"""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON
from bizdash.database import Base, new_id


class AuditEntry(Base):
    """
    Immutable audit fact.

    Invariants:
    - Once written, never edited or deleted
    - Append-only
    - Every query is scoped by org_id
    """
    __tablename__ = "audit_entries"

    id = Column(String, primary_key=True, default=new_id)
    org_id = Column(String, nullable=False, index=True)
    actor_id = Column(String, nullable=True)  # Nullable for system events
    action = Column(String, nullable=False)  # e.g., "Updated contact"
    entity_kind = Column(String, nullable=True)  # e.g., "Contact"
    entity_id = Column(String, nullable=True, index=True)
    # "metadata" is reserved on declarative classes
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
