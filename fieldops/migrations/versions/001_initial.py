"""Initial Field Ops schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("created_by", sa.Integer),
        sa.Column("updated_by", sa.Integer),
    ]


def upgrade() -> None:
    # Contact
    op.create_table(
        "contacts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(100), unique=True),
        sa.Column("firstname", sa.String(100)),
        sa.Column("surname", sa.String(100)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("unit", sa.String(50)),
        sa.Column("street_name", sa.String(200)),
        sa.Column("street_number", sa.String(50)),
        sa.Column("address", sa.String(255)),
        sa.Column("city", sa.String(100)),
        sa.Column("postal", sa.String(20)),
        sa.Column("electoral_district", sa.String(100)),
        sa.Column("poll_id", sa.String(50)),
        sa.Column("voted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("ride_status", sa.String(50)),
        sa.Column("last_contacted", sa.String(50)),
        sa.Column("last_contacted_by", sa.String(100)),
        *_timestamps(),
    )
    op.create_index("ix_contacts_surname", "contacts", ["surname"])
    op.create_index("ix_contacts_electoral_district", "contacts", ["electoral_district"])
    op.create_index("ix_contacts_poll_id", "contacts", ["poll_id"])

    # Interaction
    op.create_table(
        "interactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("contact_id", sa.Integer, sa.ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("section", sa.String(50), nullable=False, server_default="canvass"),
        sa.Column("interaction_type", sa.String(50), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_interactions_contact_id", "interactions", ["contact_id"])
    op.create_index("ix_interactions_contact_created", "interactions", ["contact_id", "created_at"])

    # Custom field definitions
    op.create_table(
        "custom_fields",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("section", sa.String(50), nullable=False),
        sa.Column("field_name", sa.String(200), nullable=False),
        sa.Column("field_type", sa.String(20), nullable=False),
        sa.Column("options", sa.JSON),
        sa.Column("is_default", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("section", "field_name", name="uq_custom_fields_section_name"),
    )
    op.create_index("ix_custom_fields_section", "custom_fields", ["section"])

    # Custom field values
    op.create_table(
        "contact_field_values",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("contact_id", sa.Integer, sa.ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("field_id", sa.Integer, sa.ForeignKey("custom_fields.id", ondelete="CASCADE"), nullable=False),
        sa.Column("value", sa.Text),
        sa.UniqueConstraint("contact_id", "field_id", name="uq_contact_field_values"),
    )
    op.create_index("ix_contact_field_values_contact_id", "contact_field_values", ["contact_id"])
    op.create_index("ix_contact_field_values_field_id", "contact_field_values", ["field_id"])

    op.create_table(
        "interaction_field_values",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("interaction_id", sa.Integer, sa.ForeignKey("interactions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("field_id", sa.Integer, sa.ForeignKey("custom_fields.id", ondelete="CASCADE"), nullable=False),
        sa.Column("value", sa.Text),
        sa.UniqueConstraint("interaction_id", "field_id", name="uq_interaction_field_values"),
    )
    op.create_index("ix_interaction_field_values_interaction_id", "interaction_field_values", ["interaction_id"])
    op.create_index("ix_interaction_field_values_field_id", "interaction_field_values", ["field_id"])

    # Change ledger
    op.create_table(
        "changes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("table_name", sa.String(50), nullable=False),
        sa.Column("record_id", sa.Integer, nullable=False),
        sa.Column("action", sa.String(10), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_changes_table_id", "changes", ["table_name", "id"])


def downgrade() -> None:
    op.drop_table("changes")
    op.drop_table("interaction_field_values")
    op.drop_table("contact_field_values")
    op.drop_table("custom_fields")
    op.drop_table("interactions")
    op.drop_table("contacts")
