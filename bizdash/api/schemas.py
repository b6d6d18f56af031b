"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field
from bizdash.models.enums import TrailState


# Audit schemas
class AuditEntryCreate(BaseModel):
    action: str = Field(..., min_length=1, max_length=200)
    entity_kind: Optional[str] = None
    entity_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    org_id: str
    actor_id: Optional[str]
    action: str
    entity_kind: Optional[str]
    entity_id: Optional[str]
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="metadata_json")
    created_at: datetime


# Decision trail schemas
class DecisionTrailResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    org_id: str
    actor_id: Optional[str]
    action: str
    entity_kind: str
    entity_id: Optional[str]
    before: Optional[Dict[str, Any]]
    after: Optional[Dict[str, Any]]
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="metadata_json")
    state: TrailState
    rolled_back_at: Optional[datetime]
    created_at: datetime


class RollbackRequest(BaseModel):
    # Optional here so a missing id is a 400 from the dispatcher, not a 422
    id: Optional[str] = None


class RollbackResponse(BaseModel):
    ok: bool = True
    trail_id: str
    entity_kind: str
    entity_id: str
    operation: str
    rolled_back_at: datetime
    cleared_references: list = []
    audit_entry_id: Optional[str] = None


# Entity schemas
class EntityResponse(BaseModel):
    """A reversible record as seen through its snapshot fields."""
    id: str
    kind: str
    fields: Dict[str, Any]
    trail_id: Optional[str] = None


# Error response
class ErrorDetail(BaseModel):
    error: str
    message: str
    retryable: bool = False
