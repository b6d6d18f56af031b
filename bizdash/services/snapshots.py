"""
Snapshot codec: project an entity into a restorable field map and back.

A snapshot is a plain dict holding only the fields a rollback needs. Dates are
stored as ISO-8601 strings so the map survives a JSON column round-trip, and
are parsed back into naive UTC datetimes (the storage convention) on restore.
Everything here is pure.
"""
import copy
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, FrozenSet, Optional, Tuple

from bizdash.models.enums import EntityKind

Snapshot = Dict[str, Any]


def serialize_date(value: Optional[date]) -> Optional[str]:
    """Render a date/datetime as ISO-8601, UTC with a trailing Z."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"


def restore_date(value: Any) -> Optional[datetime]:
    """
    Parse a stored date-like value back into a naive UTC datetime.

    Absent, empty and malformed values all become None. Restoring corrupt
    data is best-effort and never raises.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        # fromisoformat only accepts "Z" from 3.11 on
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        except (OverflowError, ValueError):
            # Shifting to UTC can leave year 1..9999
            return None
    return parsed


@dataclass(frozen=True)
class SnapshotCodec:
    """
    Field list of one entity kind plus which of those fields hold dates.

    to_snapshot copies JSON values so a snapshot never aliases the live row.
    from_snapshot ignores keys it does not know, always yields every date
    field (None when absent or unparseable) and leaves other missing fields
    out of the update.
    """
    kind: str
    fields: Tuple[str, ...]
    date_fields: FrozenSet[str] = frozenset()

    def to_snapshot(self, entity: Any) -> Snapshot:
        snapshot = {}
        for name in self.fields:
            value = getattr(entity, name)
            if name in self.date_fields:
                snapshot[name] = serialize_date(value)
            else:
                snapshot[name] = copy.deepcopy(value)
        return snapshot

    def from_snapshot(self, snapshot: Snapshot) -> Dict[str, Any]:
        updates = {}
        for name in self.fields:
            if name in self.date_fields:
                updates[name] = restore_date(snapshot.get(name))
            elif name in snapshot:
                updates[name] = copy.deepcopy(snapshot[name])
        return updates


CONTACT_CODEC = SnapshotCodec(
    kind=EntityKind.CONTACT.value,
    fields=(
        "name", "email", "phone", "status", "revenue", "last_contact",
        "notes", "tags", "custom_fields", "company_id", "owner_id",
    ),
    date_fields=frozenset({"last_contact"}),
)

DEAL_CODEC = SnapshotCodec(
    kind=EntityKind.DEAL.value,
    fields=(
        "title", "value", "stage", "expected_close", "custom_fields",
        "company_id", "contact_id", "owner_id",
    ),
    date_fields=frozenset({"expected_close"}),
)

INVOICE_CODEC = SnapshotCodec(
    kind=EntityKind.INVOICE.value,
    fields=("invoice_number", "client_name", "amount", "status", "issue_date", "due_date"),
    date_fields=frozenset({"issue_date", "due_date"}),
)

EXPENSE_CODEC = SnapshotCodec(
    kind=EntityKind.EXPENSE.value,
    fields=("description", "amount", "category", "status", "submitted_by", "date"),
    date_fields=frozenset({"date"}),
)

DOC_CODEC = SnapshotCodec(
    kind=EntityKind.DOC.value,
    fields=("title", "content", "category", "media_url"),
)

GALLERY_ITEM_CODEC = SnapshotCodec(
    kind=EntityKind.GALLERY_ITEM.value,
    fields=("title", "description", "url", "media_type", "size"),
)
