"""
Errors raised by the audit and decision-trail services.

Routes translate these into HTTP responses. `retryable` tells an operator
whether repeating the same request can succeed.
"""
from typing import Optional


class TrailError(Exception):
    """Base class for decision-trail and audit failures."""
    code = "trail_error"
    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class TrailValidationError(TrailError):
    """A request is missing a required value. Raised before any storage access."""
    code = "validation_error"


class TrailNotFound(TrailError):
    """
    The trail does not exist for the calling organization.

    Same message whether the id is unknown or belongs to another tenant.
    """
    code = "not_found"

    def __init__(self, trail_id: str):
        self.trail_id = trail_id
        super().__init__("Decision trail not found")


class AlreadyRolledBack(TrailError):
    code = "already_rolled_back"

    def __init__(self, trail_id: str):
        self.trail_id = trail_id
        super().__init__("This decision has already been rolled back")


class MissingEntityReference(TrailError):
    code = "missing_entity_reference"

    def __init__(self, trail_id: str):
        self.trail_id = trail_id
        super().__init__("Decision trail is missing entity_id")


class UnsupportedEntityKind(TrailError):
    """No restore strategy is registered for the kind. A configuration gap."""
    code = "unsupported_entity_kind"

    def __init__(self, entity_kind: Optional[str]):
        self.entity_kind = entity_kind
        super().__init__(f"Rollback not supported for entity kind {entity_kind!r}")


class StaleTarget(TrailError):
    """The entity a trail points at is gone; the trail is left unconsumed."""
    code = "stale_target"

    def __init__(self, entity_kind: str, entity_id: str):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        super().__init__(
            f"{entity_kind} {entity_id} no longer exists; the trail was not consumed"
        )


class SnapshotRejected(TrailError):
    """
    The store refused the restored values (constraint or type violation).

    The snapshot no longer fits the table, so retrying fails the same way.
    The trail is left unconsumed.
    """
    code = "snapshot_rejected"

    def __init__(self, entity_kind: str, entity_id: str, reason: str):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        super().__init__(f"Snapshot cannot be applied to {entity_kind} {entity_id}: {reason}")


class StorageUnavailable(TrailError):
    """The backing store failed. Nothing was committed; the call can be retried."""
    code = "storage_unavailable"
    retryable = True


class EntityNotFound(Exception):
    """Raised by an entity gateway when no row matches the id in the org."""

    def __init__(self, entity_kind: str, entity_id: str):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        super().__init__(f"{entity_kind} {entity_id} not found")
