"""Enums for the dashboard records and the decision-trail lifecycle."""
from enum import Enum


class TrailState(str, Enum):
    """A decision trail is either still reversible or permanently consumed."""
    ACTIVE = "Active"
    CONSUMED = "Consumed"


class EntityKind(str, Enum):
    """Entity tags written to audit entries and decision trails."""
    CONTACT = "Contact"
    DEAL = "Deal"
    INVOICE = "Invoice"
    EXPENSE = "Expense"
    DOC = "Doc"
    GALLERY_ITEM = "GalleryItem"


class DealStage(str, Enum):
    PROSPECT = "PROSPECT"
    QUALIFIED = "QUALIFIED"
    PROPOSAL = "PROPOSAL"
    NEGOTIATION = "NEGOTIATION"
    WON = "WON"
    LOST = "LOST"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
