"""
Rollback dispatcher - reverses the mutation recorded by one decision trail.

This is the only place a trail is consumed. All rollbacks MUST go through
RollbackDispatcher.rollback so that:
- a trail is consumed at most once, even under concurrent requests
- the entity write and the consumption are committed together
- every successful rollback leaves an audit entry behind
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from bizdash.models.entities import Company, Contact, Deal, Doc, Expense, GalleryItem, Invoice
from bizdash.models.trail import DecisionTrail
from bizdash.services.audit import AuditRecorder
from bizdash.services.errors import (
    AlreadyRolledBack,
    EntityNotFound,
    MissingEntityReference,
    SnapshotRejected,
    StaleTarget,
    StorageUnavailable,
    TrailError,
    TrailNotFound,
    TrailValidationError,
    UnsupportedEntityKind
)
from bizdash.services.gateways import EntityGateway, GatewayFactory, sql_gateway
from bizdash.services.snapshots import (
    CONTACT_CODEC,
    DEAL_CODEC,
    DOC_CODEC,
    EXPENSE_CODEC,
    GALLERY_ITEM_CODEC,
    INVOICE_CODEC,
    SnapshotCodec
)
from bizdash.services.trails import DecisionTrailStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestoreStrategy:
    """Everything needed to snapshot, restore and remove one entity kind."""
    codec: SnapshotCodec
    gateway_factory: GatewayFactory
    label: str  # Lower-case noun used in audit action text, e.g. "gallery item"

    @property
    def kind(self) -> str:
        return self.codec.kind


class RestoreRegistry:
    """Capability table: entity kind -> RestoreStrategy."""

    def __init__(self, strategies: Iterable[RestoreStrategy] = ()):
        self._strategies: Dict[str, RestoreStrategy] = {}
        for strategy in strategies:
            self.register(strategy)

    def register(self, strategy: RestoreStrategy) -> RestoreStrategy:
        self._strategies[strategy.kind] = strategy
        return strategy

    def resolve(self, kind: Optional[str]) -> Optional[RestoreStrategy]:
        if kind is None:
            return None
        return self._strategies.get(kind)

    def kinds(self) -> List[str]:
        return sorted(self._strategies)

    def __contains__(self, kind: object) -> bool:
        return kind in self._strategies


def default_registry() -> RestoreRegistry:
    """The six reversible kinds of the dashboard."""
    return RestoreRegistry([
        RestoreStrategy(
            codec=CONTACT_CODEC,
            gateway_factory=sql_gateway(Contact, CONTACT_CODEC.kind, {"company_id": Company}),
            label="contact"
        ),
        RestoreStrategy(
            codec=DEAL_CODEC,
            gateway_factory=sql_gateway(
                Deal, DEAL_CODEC.kind, {"company_id": Company, "contact_id": Contact}
            ),
            label="deal"
        ),
        RestoreStrategy(
            codec=INVOICE_CODEC,
            gateway_factory=sql_gateway(Invoice, INVOICE_CODEC.kind),
            label="invoice"
        ),
        RestoreStrategy(
            codec=EXPENSE_CODEC,
            gateway_factory=sql_gateway(Expense, EXPENSE_CODEC.kind),
            label="expense"
        ),
        RestoreStrategy(
            codec=DOC_CODEC,
            gateway_factory=sql_gateway(Doc, DOC_CODEC.kind),
            label="document"
        ),
        RestoreStrategy(
            codec=GALLERY_ITEM_CODEC,
            gateway_factory=sql_gateway(GalleryItem, GALLERY_ITEM_CODEC.kind),
            label="gallery item"
        ),
    ])


# The two ways a trail can be reversed. Every trail maps to exactly one.
@dataclass(frozen=True)
class RestoreFields:
    """The entity existed before the mutation: write these values back."""
    fields: Dict[str, Any]


@dataclass(frozen=True)
class RemoveEntity:
    """The mutation created the entity: remove it."""


Reversal = Union[RestoreFields, RemoveEntity]


def plan_reversal(trail: DecisionTrail, codec: SnapshotCodec) -> Reversal:
    """Decide how to undo a trail from its before snapshot."""
    before = trail.before
    if before is None:
        return RemoveEntity()
    if not isinstance(before, dict):
        raise TrailValidationError("Decision trail has a malformed before snapshot")
    return RestoreFields(codec.from_snapshot(before))


@dataclass
class RollbackResult:
    trail_id: str
    entity_kind: str
    entity_id: str
    operation: str  # "restore" or "delete"
    rolled_back_at: datetime
    cleared_references: List[str] = field(default_factory=list)
    audit_entry_id: Optional[str] = None


class RollbackDispatcher:
    """Resolves a trail's restore strategy and applies it exactly once."""

    def __init__(
        self,
        db: Session,
        registry: Optional[RestoreRegistry] = None,
        audit: Optional[AuditRecorder] = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.db = db
        self.registry = registry or default_registry()
        self.trails = DecisionTrailStore(db)
        self.audit = audit or AuditRecorder(db)
        self.clock = clock

    def rollback(self, org_id: str, trail_id: str, actor_id: Optional[str] = None) -> RollbackResult:
        """
        Reverse the mutation recorded by trail_id.

        Raises (see bizdash.services.errors):
        - TrailValidationError: no trail id / org id, or a malformed snapshot
        - TrailNotFound: unknown id or a trail of another organization
        - AlreadyRolledBack: consumed earlier or by a concurrent request
        - MissingEntityReference: the trail has no entity_id
        - UnsupportedEntityKind: nothing registered for the kind
        - StaleTarget: the entity no longer exists
        - SnapshotRejected: the store refuses the restored values, not retryable
        - StorageUnavailable: the store failed, safe to retry
        """
        try:
            return self._rollback(org_id, trail_id, actor_id)
        except TrailError as e:
            logger.warning("Rollback of trail %s refused: %s (%s)", trail_id, e.code, e.message)
            raise

    def _rollback(self, org_id: str, trail_id: str, actor_id: Optional[str]) -> RollbackResult:
        if not trail_id:
            raise TrailValidationError("id is required")
        if not org_id:
            raise TrailValidationError("org_id is required")

        trail = self.trails.get(trail_id)
        if trail is None or trail.org_id != org_id:
            raise TrailNotFound(trail_id)
        if trail.rolled_back_at is not None:
            raise AlreadyRolledBack(trail_id)
        if not trail.entity_id:
            raise MissingEntityReference(trail_id)

        strategy = self.registry.resolve(trail.entity_kind)
        if strategy is None:
            raise UnsupportedEntityKind(trail.entity_kind)

        # Plain values: the ORM object expires if the session rolls back
        entity_kind = trail.entity_kind
        entity_id = trail.entity_id
        reversal = plan_reversal(trail, strategy.codec)
        gateway = strategy.gateway_factory(self.db, org_id)
        rolled_back_at = self.clock()

        try:
            cleared = self._apply(gateway, entity_id, reversal)
            self.trails.mark_rolled_back(trail_id, rolled_back_at)
            self.db.commit()
        except EntityNotFound:
            self.db.rollback()
            raise StaleTarget(entity_kind, entity_id)
        except AlreadyRolledBack:
            # Lost the race: undo our entity write as well
            self.db.rollback()
            raise
        except (IntegrityError, DataError) as e:
            self.db.rollback()
            raise SnapshotRejected(entity_kind, entity_id, str(e.orig)) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable(f"Failed to roll back decision: {e}") from e

        operation = "restore" if isinstance(reversal, RestoreFields) else "delete"
        metadata = {"trail_id": trail_id, "operation": operation}
        if cleared:
            metadata["cleared_references"] = cleared

        entry = self.audit.record_safely(
            org_id,
            f"Rolled back {entity_kind}",
            actor_id=actor_id,
            entity_kind=entity_kind,
            entity_id=entity_id,
            metadata=metadata
        )
        logger.info("Rolled back trail %s (%s %s, %s)", trail_id, entity_kind, entity_id, operation)

        return RollbackResult(
            trail_id=trail_id,
            entity_kind=entity_kind,
            entity_id=entity_id,
            operation=operation,
            rolled_back_at=rolled_back_at,
            cleared_references=cleared,
            audit_entry_id=entry.id if entry is not None else None
        )

    def _apply(self, gateway: EntityGateway, entity_id: str, reversal: Reversal) -> List[str]:
        if isinstance(reversal, RestoreFields):
            return list(gateway.update(entity_id, reversal.fields) or [])
        if isinstance(reversal, RemoveEntity):
            gateway.delete(entity_id)
            return []
        raise TypeError(f"Unknown reversal {reversal!r}")
