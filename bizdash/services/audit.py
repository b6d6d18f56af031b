"""
Audit recorder - appends immutable audit entries.

Recording an audit entry is a side channel: business handlers call
record_safely so a failing audit write never undoes or blocks the mutation
it describes.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bizdash.models.audit import AuditEntry
from bizdash.services.errors import StorageUnavailable, TrailValidationError

logger = logging.getLogger(__name__)


class AuditRecorder:
    """Append-only writer and org-scoped reader for audit entries."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        org_id: str,
        action: str,
        actor_id: Optional[str] = None,
        entity_kind: Optional[str] = None,
        entity_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> AuditEntry:
        """
        Persist one audit entry and commit it.

        Raises TrailValidationError when action is blank and StorageUnavailable
        when the write fails. Business-rule conflicts never apply here.
        """
        if not org_id:
            raise TrailValidationError("org_id is required")
        if not action or not action.strip():
            raise TrailValidationError("action is required")

        entry = AuditEntry(
            org_id=org_id,
            actor_id=actor_id or None,
            action=action.strip(),
            entity_kind=entity_kind or None,
            entity_id=entity_id or None,
            metadata_json=metadata or None
        )
        try:
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable(f"Audit log create failed: {e}") from e
        return entry

    def record_safely(self, org_id: str, action: str, **kwargs) -> Optional[AuditEntry]:
        """
        Same as record, but a storage failure is logged and swallowed.

        Returns None when nothing was written.
        """
        try:
            return self.record(org_id, action, **kwargs)
        except StorageUnavailable:
            logger.exception(
                "Audit log create failed (org=%s action=%r entity=%s/%s)",
                org_id, action, kwargs.get("entity_kind"), kwargs.get("entity_id")
            )
            return None

    def list_entries(self, org_id: str, limit: int = 50) -> List[AuditEntry]:
        """Newest entries of one organization."""
        try:
            return (
                self.db.query(AuditEntry)
                .filter(AuditEntry.org_id == org_id)
                .order_by(AuditEntry.created_at.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable(f"Audit logs fetch failed: {e}") from e
