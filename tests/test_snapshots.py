"""
Tests for the snapshot codec.

These tests prove:
- Snapshots survive a JSON round-trip and restore every covered field
- Date fields are serialized and parsed back, malformed dates become None
"""
import json
from datetime import date, datetime, timedelta, timezone

import pytest

from bizdash.models.entities import Contact, Deal, Doc, Expense, GalleryItem, Invoice
from bizdash.services.snapshots import (
    CONTACT_CODEC,
    DEAL_CODEC,
    DOC_CODEC,
    EXPENSE_CODEC,
    GALLERY_ITEM_CODEC,
    INVOICE_CODEC,
    restore_date,
    serialize_date
)


def _json_round_trip(snapshot):
    return json.loads(json.dumps(snapshot))


ORIGINALS = [
    (CONTACT_CODEC, Contact(
        name="Ada", email="ada@example.com", phone="555-0100", status="customer",
        revenue=1200.5, last_contact=datetime(2025, 3, 1, 14, 5, 9, 123000), notes="n",
        tags=["vip"], custom_fields={"tier": "gold"}, company_id="co_1", owner_id="user_1"
    )),
    (DEAL_CODEC, Deal(
        title="Engine order", value=90000.0, stage="PROPOSAL",
        expected_close=datetime(2025, 6, 30), custom_fields={"source": "referral"},
        company_id="co_1", contact_id="ct_1", owner_id="user_1"
    )),
    (INVOICE_CODEC, Invoice(
        invoice_number="INV-1", client_name="Babbage", amount=10.0, status="PAID",
        issue_date=datetime(2025, 1, 1), due_date=datetime(2025, 2, 15)
    )),
    (EXPENSE_CODEC, Expense(
        description="Brass gears", amount=75.25, category="materials", status="approved",
        submitted_by="user_2", date=datetime(2024, 12, 31, 23, 59)
    )),
    (DOC_CODEC, Doc(title="Notes on the engine", content="...", category="research", media_url=None)),
    (GALLERY_ITEM_CODEC, GalleryItem(
        title="Difference engine", description="Front view", url="https://cdn.example.com/de.png",
        media_type="image", size=204800
    )),
]

BLANKS = {
    "Contact": lambda: Contact(name="x", email="x@example.com", tags=["other"], last_contact=datetime(2000, 1, 1)),
    "Deal": lambda: Deal(title="x", value=1.0, stage="LOST"),
    "Invoice": lambda: Invoice(invoice_number="x", client_name="x", amount=0.0, due_date=datetime(2030, 1, 1)),
    "Expense": lambda: Expense(description="x", amount=0.0),
    "Doc": lambda: Doc(title="x", content="changed", media_url="https://example.com/x"),
    "GalleryItem": lambda: GalleryItem(title="x", url="x", media_type="video", size=1),
}


class TestRoundTrip:
    """fromSnapshot(toSnapshot(e)) applied to a fresh record reproduces e."""

    @pytest.mark.parametrize("codec,original", ORIGINALS, ids=[c.kind for c, _ in ORIGINALS])
    def test_round_trip_restores_every_field(self, codec, original):
        stored = _json_round_trip(codec.to_snapshot(original))

        fresh = BLANKS[codec.kind]()
        for name, value in codec.from_snapshot(stored).items():
            setattr(fresh, name, value)

        for name in codec.fields:
            assert getattr(fresh, name) == getattr(original, name), name

    def test_snapshot_holds_only_restorable_fields(self, sample_contact):
        snapshot = CONTACT_CODEC.to_snapshot(sample_contact)

        assert set(snapshot) == set(CONTACT_CODEC.fields)
        assert "org_id" not in snapshot
        assert "id" not in snapshot

    def test_snapshot_does_not_alias_json_fields(self, sample_contact):
        snapshot = CONTACT_CODEC.to_snapshot(sample_contact)
        snapshot["tags"].append("mutated")
        snapshot["custom_fields"]["region"] = "APAC"

        assert sample_contact.tags == ["vip", "engineering"]
        assert sample_contact.custom_fields == {"region": "EMEA"}

    def test_dates_are_stored_as_iso_strings(self, sample_invoice):
        snapshot = INVOICE_CODEC.to_snapshot(sample_invoice)

        assert snapshot["issue_date"] == "2025-01-15T00:00:00Z"
        assert snapshot["due_date"] == "2025-02-15T00:00:00Z"


class TestFromSnapshot:

    def test_invoice_due_date_string_restores_to_february_15(self):
        fields = INVOICE_CODEC.from_snapshot({"due_date": "2025-02-15T00:00:00.000Z"})

        assert fields["due_date"] == datetime(2025, 2, 15)

    def test_null_due_date_restores_to_no_due_date(self):
        fields = INVOICE_CODEC.from_snapshot({"amount": 10.0, "due_date": None})

        assert fields["due_date"] is None
        assert fields["amount"] == 10.0

    def test_absent_date_field_is_still_cleared(self):
        fields = INVOICE_CODEC.from_snapshot({"amount": 10.0})

        assert fields["issue_date"] is None
        assert fields["due_date"] is None

    def test_absent_plain_field_is_left_out(self):
        fields = CONTACT_CODEC.from_snapshot({"name": "Ada"})

        assert fields["name"] == "Ada"
        assert "email" not in fields

    def test_unknown_keys_are_ignored(self):
        fields = DOC_CODEC.from_snapshot({"title": "t", "org_id": "org_evil", "id": "x"})

        assert fields == {"title": "t"}


class TestRestoreDate:

    def test_none_and_empty(self):
        assert restore_date(None) is None
        assert restore_date("") is None

    @pytest.mark.parametrize("value", ["not a date", "2025-13-45", "15/02/2025", 12345, ["2025-02-15"]])
    def test_malformed_values_become_none(self, value):
        assert restore_date(value) is None

    def test_offsets_are_normalized_to_naive_utc(self):
        assert restore_date("2025-02-15T02:00:00+02:00") == datetime(2025, 2, 15, 0, 0)

    @pytest.mark.parametrize("value", ["0001-01-01T00:00:00+05:00", "9999-12-31T23:00:00-05:00"])
    def test_offset_pushing_past_datetime_range_becomes_none(self, value):
        assert restore_date(value) is None

    def test_date_only_string(self):
        assert restore_date("2025-02-15") == datetime(2025, 2, 15)

    def test_native_values_pass_through(self):
        aware = datetime(2025, 2, 15, 12, tzinfo=timezone(timedelta(hours=-5)))

        assert restore_date(datetime(2025, 2, 15, 8)) == datetime(2025, 2, 15, 8)
        assert restore_date(aware) == datetime(2025, 2, 15, 17)
        assert restore_date(date(2025, 2, 15)) == datetime(2025, 2, 15)

    def test_serialize_then_restore_keeps_microseconds(self):
        value = datetime(2025, 2, 15, 10, 11, 12, 345678)

        assert restore_date(serialize_date(value)) == value
