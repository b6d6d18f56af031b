"""API routes for the audit log, decision trails and reversible records."""
import os
from dataclasses import dataclass
from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from bizdash.database import get_db
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
from bizdash.services.mutations import EntityMutations
from bizdash.services.rollback import RollbackDispatcher
from bizdash.services.trails import DecisionTrailStore
from bizdash.api.schemas import (
    AuditEntryCreate,
    AuditEntryResponse,
    DecisionTrailResponse,
    EntityResponse,
    ErrorDetail,
    RollbackRequest,
    RollbackResponse
)

router = APIRouter()

LIST_LIMIT = int(os.getenv("BIZDASH_LIST_LIMIT", "50"))

_ERROR_STATUS = {
    TrailValidationError: status.HTTP_400_BAD_REQUEST,
    MissingEntityReference: status.HTTP_400_BAD_REQUEST,
    UnsupportedEntityKind: status.HTTP_400_BAD_REQUEST,
    AlreadyRolledBack: status.HTTP_400_BAD_REQUEST,
    TrailNotFound: status.HTTP_404_NOT_FOUND,
    StaleTarget: status.HTTP_409_CONFLICT,
    SnapshotRejected: status.HTTP_409_CONFLICT,
    StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}

_ERROR_RESPONSES = {
    400: {"model": ErrorDetail, "description": "Invalid, unsupported or already rolled back"},
    404: {"model": ErrorDetail, "description": "Not found for this organization"},
    409: {"model": ErrorDetail, "description": "Target entity gone or snapshot no longer applies"},
    503: {"model": ErrorDetail, "description": "Storage unavailable, safe to retry"},
}


@dataclass
class RequestContext:
    org_id: str
    actor_id: Optional[str]


def get_request_context(
    x_org_id: str = Header(..., alias="X-Org-Id"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id")
) -> RequestContext:
    """Tenant and actor of the caller. Authentication happens upstream."""
    return RequestContext(org_id=x_org_id, actor_id=x_user_id or None)


def raise_http_error(error: TrailError) -> NoReturn:
    raise HTTPException(
        status_code=_ERROR_STATUS.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail={
            "error": error.code,
            "message": error.message,
            "retryable": error.retryable
        }
    )


# Audit endpoints
@router.get("/audit", response_model=List[AuditEntryResponse], responses=_ERROR_RESPONSES)
def list_audit_entries(ctx: RequestContext = Depends(get_request_context), db: Session = Depends(get_db)):
    """Latest audit entries of the caller's organization."""
    try:
        return AuditRecorder(db).list_entries(ctx.org_id, limit=LIST_LIMIT)
    except TrailError as e:
        raise_http_error(e)


@router.post("/audit", response_model=AuditEntryResponse, status_code=status.HTTP_201_CREATED, responses=_ERROR_RESPONSES)
def create_audit_entry(
    entry_data: AuditEntryCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Record an audit entry on behalf of the caller."""
    try:
        return AuditRecorder(db).record(
            ctx.org_id,
            entry_data.action,
            actor_id=ctx.actor_id,
            entity_kind=entry_data.entity_kind,
            entity_id=entry_data.entity_id,
            metadata=entry_data.metadata
        )
    except TrailError as e:
        raise_http_error(e)


# Decision trail endpoints
@router.get("/decision-trails", response_model=List[DecisionTrailResponse], responses=_ERROR_RESPONSES)
def list_decision_trails(ctx: RequestContext = Depends(get_request_context), db: Session = Depends(get_db)):
    """Latest decision trails of the caller's organization."""
    try:
        return DecisionTrailStore(db).list_trails(ctx.org_id, limit=LIST_LIMIT)
    except TrailError as e:
        raise_http_error(e)


@router.get("/decision-trails/{trail_id}", response_model=DecisionTrailResponse, responses=_ERROR_RESPONSES)
def get_decision_trail(trail_id: str, ctx: RequestContext = Depends(get_request_context), db: Session = Depends(get_db)):
    """Get one trail. Trails of other organizations are reported as missing."""
    try:
        trail = DecisionTrailStore(db).get(trail_id)
    except TrailError as e:
        raise_http_error(e)
    if trail is None or trail.org_id != ctx.org_id:
        raise_http_error(TrailNotFound(trail_id))
    return trail


@router.post("/decision-trails/rollback", response_model=RollbackResponse, responses=_ERROR_RESPONSES)
def rollback_decision_trail(
    rollback_data: RollbackRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """
    Undo the mutation a trail recorded.

    WILL REFUSE if:
    - The trail is unknown or belongs to another organization (404)
    - The trail was already rolled back (400)
    - Its entity kind has no restore strategy (400)
    - The entity it points at no longer exists (409)
    """
    try:
        result = RollbackDispatcher(db).rollback(ctx.org_id, rollback_data.id, actor_id=ctx.actor_id)
    except TrailError as e:
        raise_http_error(e)
    return RollbackResponse(
        trail_id=result.trail_id,
        entity_kind=result.entity_kind,
        entity_id=result.entity_id,
        operation=result.operation,
        rolled_back_at=result.rolled_back_at,
        cleared_references=result.cleared_references,
        audit_entry_id=result.audit_entry_id
    )


# Reversible record endpoints
def _entity_response(mutations: EntityMutations, entity: Any, trail) -> EntityResponse:
    return EntityResponse(
        id=entity.id,
        kind=mutations.kind,
        fields=mutations.strategy.codec.to_snapshot(entity),
        trail_id=trail.id if trail is not None else None
    )


def _mutations(kind: str, db: Session) -> EntityMutations:
    try:
        return EntityMutations(db, kind)
    except TrailError as e:
        raise_http_error(e)


@router.post("/records/{kind}", response_model=EntityResponse, status_code=status.HTTP_201_CREATED, responses=_ERROR_RESPONSES)
def create_record(
    kind: str,
    fields: Dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Create a record of a reversible kind; rolling back its trail deletes it."""
    mutations = _mutations(kind, db)
    try:
        entity, trail = mutations.create(ctx.org_id, ctx.actor_id, fields)
    except TrailError as e:
        raise_http_error(e)
    return _entity_response(mutations, entity, trail)


@router.patch("/records/{kind}/{entity_id}", response_model=EntityResponse, responses=_ERROR_RESPONSES)
def update_record(
    kind: str,
    entity_id: str,
    fields: Dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    mutations = _mutations(kind, db)
    try:
        entity, trail = mutations.update(ctx.org_id, ctx.actor_id, entity_id, fields)
    except EntityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TrailError as e:
        raise_http_error(e)
    return _entity_response(mutations, entity, trail)


@router.delete("/records/{kind}/{entity_id}", responses=_ERROR_RESPONSES)
def delete_record(
    kind: str,
    entity_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    mutations = _mutations(kind, db)
    try:
        trail = mutations.delete(ctx.org_id, ctx.actor_id, entity_id)
    except EntityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TrailError as e:
        raise_http_error(e)
    return {"ok": True, "trail_id": trail.id if trail is not None else None}
