"""Decision trail model - a reversible record of a single entity mutation."""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON
from bizdash.database import Base, new_id
from bizdash.models.enums import TrailState


class DecisionTrail(Base):
    """
    Before/after snapshots of one mutation on one entity instance.

    Invariants:
    - before is the target state of a rollback; NULL means the mutation was a
      creation, so rolling back removes the entity
    - after is NULL for deletions
    - rolled_back_at is written at most once (Active -> Consumed)
    """
    __tablename__ = "decision_trails"

    id = Column(String, primary_key=True, default=new_id)
    org_id = Column(String, nullable=False, index=True)
    actor_id = Column(String, nullable=True)
    action = Column(String, nullable=False)
    entity_kind = Column(String, nullable=False)
    entity_id = Column(String, nullable=True, index=True)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    rolled_back_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    @property
    def state(self) -> TrailState:
        if self.rolled_back_at is None:
            return TrailState.ACTIVE
        return TrailState.CONSUMED
