"""
Entity gateways - the persistence seam the rollback dispatcher writes through.

The dispatcher needs only get/update/delete by id. Gateways flush and leave the
commit to the caller so an entity write and the trail it consumes land in the
same transaction.
"""
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from sqlalchemy.orm import Session

from bizdash.services.errors import EntityNotFound

logger = logging.getLogger(__name__)


class EntityGateway(Protocol):
    def get(self, entity_id: str) -> Optional[Any]:
        ...

    def update(self, entity_id: str, fields: Dict[str, Any]) -> List[str]:
        ...

    def delete(self, entity_id: str) -> None:
        ...


GatewayFactory = Callable[[Session, str], EntityGateway]


class SqlEntityGateway:
    """
    SQLAlchemy gateway for one model, scoped to one organization.

    Rows of other organizations are invisible: update/delete raise
    EntityNotFound for them exactly as for ids that never existed.

    `references` maps a foreign-key field to the model it points at. When an
    update would restore a reference to a row that no longer exists in the
    org, the field is set to None instead, and its name is returned.
    """

    def __init__(
        self,
        db: Session,
        model: type,
        kind: str,
        org_id: str,
        references: Optional[Mapping[str, type]] = None
    ):
        self.db = db
        self.model = model
        self.kind = kind
        self.org_id = org_id
        self.references = dict(references or {})

    def get(self, entity_id: str) -> Optional[Any]:
        return self.db.query(self.model).filter(
            self.model.id == entity_id,
            self.model.org_id == self.org_id
        ).first()

    def create(self, fields: Dict[str, Any]) -> Any:
        entity = self.model(org_id=self.org_id, **fields)
        self.db.add(entity)
        self.db.flush()
        return entity

    def update(self, entity_id: str, fields: Dict[str, Any]) -> List[str]:
        entity = self._require(entity_id)
        fields = dict(fields)
        cleared = self._clear_dangling_references(fields)
        for name, value in fields.items():
            setattr(entity, name, value)
        self.db.flush()
        return cleared

    def delete(self, entity_id: str) -> None:
        entity = self._require(entity_id)
        self.db.delete(entity)
        self.db.flush()

    def _require(self, entity_id: str) -> Any:
        entity = self.get(entity_id)
        if entity is None:
            raise EntityNotFound(self.kind, entity_id)
        return entity

    def missing_references(self, fields: Dict[str, Any]) -> List[str]:
        """Reference fields in `fields` naming a row that is not in the org."""
        missing = []
        for name, target in self.references.items():
            ref_id = fields.get(name)
            if not ref_id:
                continue
            exists = self.db.query(target.id).filter(
                target.id == ref_id,
                target.org_id == self.org_id
            ).first()
            if exists is None:
                missing.append(name)
        return missing

    def _clear_dangling_references(self, fields: Dict[str, Any]) -> List[str]:
        cleared = self.missing_references(fields)
        for name in cleared:
            logger.warning(
                "%s %s referenced missing %s %s; clearing %s",
                self.kind, name, self.references[name].__name__, fields[name], name
            )
            fields[name] = None
        return cleared


def sql_gateway(
    model: type,
    kind: str,
    references: Optional[Mapping[str, type]] = None
) -> GatewayFactory:
    """Factory building an org-scoped SqlEntityGateway per session."""
    def factory(db: Session, org_id: str) -> SqlEntityGateway:
        return SqlEntityGateway(db, model, kind, org_id, references)
    return factory
