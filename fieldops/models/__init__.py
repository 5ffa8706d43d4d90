"""Field ops models - re-exports all models and Base.metadata."""

from .base import Base, TimestampMixin, AuditMixin, column_dict
from .contact import Contact
from .interaction import Interaction
from .custom_field import CustomField, ContactFieldValue, InteractionFieldValue, FIELD_TYPES
from .change import ChangeLedgerEntry, ACTIONS

__all__ = [
    "Base",
    "TimestampMixin",
    "AuditMixin",
    "column_dict",
    "Contact",
    "Interaction",
    "CustomField",
    "ContactFieldValue",
    "InteractionFieldValue",
    "FIELD_TYPES",
    "ChangeLedgerEntry",
    "ACTIONS",
]
