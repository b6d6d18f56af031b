"""
Decision trail store.

Holds the before/after snapshots of reversible mutations and the single
Active -> Consumed transition of each trail.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bizdash.models.trail import DecisionTrail
from bizdash.services.errors import AlreadyRolledBack, StorageUnavailable, TrailValidationError
from bizdash.services.snapshots import Snapshot

logger = logging.getLogger(__name__)


class DecisionTrailStore:
    """Persistence for decision trails, keyed by org, entity kind and entity id."""

    def __init__(self, db: Session):
        self.db = db

    def record_trail(
        self,
        org_id: str,
        action: str,
        entity_kind: str,
        entity_id: str,
        before: Optional[Snapshot] = None,
        after: Optional[Snapshot] = None,
        actor_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> DecisionTrail:
        """
        Persist a trail for a mutation that has already been committed.

        before=None records a creation; after=None records a deletion.
        """
        if not org_id:
            raise TrailValidationError("org_id is required")
        if not action:
            raise TrailValidationError("action is required")
        if not entity_kind:
            raise TrailValidationError("entity_kind is required")
        if not entity_id:
            raise TrailValidationError("entity_id is required")

        trail = DecisionTrail(
            org_id=org_id,
            actor_id=actor_id or None,
            action=action,
            entity_kind=entity_kind,
            entity_id=entity_id,
            before=before,
            after=after,
            metadata_json=metadata or None
        )
        try:
            self.db.add(trail)
            self.db.commit()
            self.db.refresh(trail)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable(f"Decision trail create failed: {e}") from e

        logger.debug("Recorded decision trail %s for %s %s", trail.id, entity_kind, entity_id)
        return trail

    def get(self, trail_id: str) -> Optional[DecisionTrail]:
        try:
            return self.db.query(DecisionTrail).filter(DecisionTrail.id == trail_id).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable(f"Decision trail fetch failed: {e}") from e

    def list_trails(self, org_id: str, limit: int = 50) -> List[DecisionTrail]:
        """Newest trails of one organization."""
        try:
            return (
                self.db.query(DecisionTrail)
                .filter(DecisionTrail.org_id == org_id)
                .order_by(DecisionTrail.created_at.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable(f"Decision trails fetch failed: {e}") from e

    def mark_rolled_back(self, trail_id: str, at: datetime) -> None:
        """
        Consume the trail with a conditional update.

        Only a row whose rolled_back_at is still NULL is touched, so of two
        concurrent callers exactly one sees a matching row. The other gets
        AlreadyRolledBack. Flushes without committing: the caller commits this
        together with the entity write it belongs to.
        """
        matched = (
            self.db.query(DecisionTrail)
            .filter(DecisionTrail.id == trail_id, DecisionTrail.rolled_back_at.is_(None))
            .update({DecisionTrail.rolled_back_at: at}, synchronize_session=False)
        )
        if matched == 0:
            raise AlreadyRolledBack(trail_id)
