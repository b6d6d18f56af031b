"""
Create/update/delete handlers for reversible entities.

Each mutation is committed first. Only then is its decision trail written,
so no trail ever describes a change that did not happen. The audit entry is
written last, on the fire-and-forget path.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from bizdash.models.trail import DecisionTrail
from bizdash.services.audit import AuditRecorder
from bizdash.services.errors import (
    EntityNotFound,
    StorageUnavailable,
    TrailError,
    TrailValidationError,
    UnsupportedEntityKind
)
from bizdash.services.gateways import SqlEntityGateway
from bizdash.services.rollback import RestoreRegistry, RestoreStrategy, default_registry
from bizdash.services.snapshots import Snapshot
from bizdash.services.trails import DecisionTrailStore

logger = logging.getLogger(__name__)


class EntityMutations:
    """Mutations of one entity kind, each followed by a trail and an audit entry."""

    def __init__(
        self,
        db: Session,
        kind: str,
        registry: Optional[RestoreRegistry] = None,
        audit: Optional[AuditRecorder] = None
    ):
        strategy = (registry or default_registry()).resolve(kind)
        if strategy is None:
            raise UnsupportedEntityKind(kind)
        self.db = db
        self.strategy: RestoreStrategy = strategy
        self.trails = DecisionTrailStore(db)
        self.audit = audit or AuditRecorder(db)

    @property
    def kind(self) -> str:
        return self.strategy.kind

    def create(self, org_id: str, actor_id: Optional[str], fields: Dict[str, Any]) -> Tuple[Any, Optional[DecisionTrail]]:
        gateway = self.strategy.gateway_factory(self.db, org_id)
        codec = self.strategy.codec
        try:
            entity = gateway.create(self._writable(gateway, fields))
            self.db.commit()
            self.db.refresh(entity)
        except IntegrityError as e:
            self.db.rollback()
            raise TrailValidationError(f"Invalid {self.strategy.label}: {e.orig}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable(f"Failed to create {self.strategy.label}: {e}") from e

        after = codec.to_snapshot(entity)
        trail = self._record(org_id, actor_id, "Created", entity.id, before=None, after=after)
        return entity, trail

    def update(
        self,
        org_id: str,
        actor_id: Optional[str],
        entity_id: str,
        fields: Dict[str, Any]
    ) -> Tuple[Any, Optional[DecisionTrail]]:
        gateway = self.strategy.gateway_factory(self.db, org_id)
        codec = self.strategy.codec
        entity = gateway.get(entity_id)
        if entity is None:
            raise EntityNotFound(self.kind, entity_id)

        before = codec.to_snapshot(entity)
        try:
            gateway.update(entity_id, self._writable(gateway, fields))
            self.db.commit()
            self.db.refresh(entity)
        except IntegrityError as e:
            self.db.rollback()
            raise TrailValidationError(f"Invalid {self.strategy.label}: {e.orig}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable(f"Failed to update {self.strategy.label}: {e}") from e

        after = codec.to_snapshot(entity)
        trail = self._record(org_id, actor_id, "Updated", entity_id, before=before, after=after)
        return entity, trail

    def delete(self, org_id: str, actor_id: Optional[str], entity_id: str) -> Optional[DecisionTrail]:
        """
        Delete the entity and record a trail whose before is its last state.

        Rolling that trail back updates a row that is gone, so it ends in
        StaleTarget. Delete trails are kept for the history they carry.
        """
        gateway = self.strategy.gateway_factory(self.db, org_id)
        entity = gateway.get(entity_id)
        if entity is None:
            raise EntityNotFound(self.kind, entity_id)

        before = self.strategy.codec.to_snapshot(entity)
        try:
            gateway.delete(entity_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable(f"Failed to delete {self.strategy.label}: {e}") from e

        return self._record(org_id, actor_id, "Deleted", entity_id, before=before, after=None)

    def _writable(self, gateway: SqlEntityGateway, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate user-supplied values and decode dates from ISO strings.

        Unlike a restore, nothing is silently dropped here: an unknown field,
        an unparseable date or a reference to a row outside the org is refused.
        """
        codec = self.strategy.codec
        label = self.strategy.label
        unknown = sorted(set(fields) - set(codec.fields))
        if unknown:
            raise TrailValidationError(f"Unknown {label} field(s): {', '.join(unknown)}")

        decoded = codec.from_snapshot(fields)
        bad_dates = sorted(
            name for name in codec.date_fields
            if fields.get(name) not in (None, "") and decoded[name] is None
        )
        if bad_dates:
            raise TrailValidationError(f"Invalid {label} date(s): {', '.join(bad_dates)}")

        # from_snapshot fills every date field; only touch the ones supplied
        values = {name: value for name, value in decoded.items() if name in fields}
        missing = gateway.missing_references(values)
        if missing:
            raise TrailValidationError(
                f"Unknown {label} reference(s): {', '.join(missing)}"
            )
        return values

    def _record(
        self,
        org_id: str,
        actor_id: Optional[str],
        verb: str,
        entity_id: str,
        before: Optional[Snapshot],
        after: Optional[Snapshot]
    ) -> Optional[DecisionTrail]:
        action = f"{verb} {self.strategy.label}"
        trail = None
        try:
            trail = self.trails.record_trail(
                org_id,
                action,
                self.kind,
                entity_id,
                before=before,
                after=after,
                actor_id=actor_id
            )
        except TrailError:
            # The mutation is already committed; it just cannot be undone later
            logger.exception("Decision trail create failed for %s %s (%s)", self.kind, entity_id, action)

        metadata = {"trail_id": trail.id} if trail is not None else None
        self.audit.record_safely(
            org_id,
            action,
            actor_id=actor_id,
            entity_kind=self.kind,
            entity_id=entity_id,
            metadata=metadata
        )
        return trail
