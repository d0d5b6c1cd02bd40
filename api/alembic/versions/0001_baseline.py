"""baseline schema for the field service backend

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19

Users, the location chain, clients and equipment, categories, services with
their steps and images, and the monthly dashboard snapshot table.
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_baseline"
down_revision = None
branch_labels = None
depends_on = None


def _status_enum(name: str) -> sa.Enum:
    return sa.Enum(
        "PENDING",
        "IN_PROGRESS",
        "CONCLUDED",
        "CANCELLED",
        name=name,
        native_enum=False,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("ADMIN", "TECHNICIAN", name="user_role", native_enum=False),
            nullable=False,
        ),
        sa.Column("active", sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    # Location chain
    op.create_table(
        "states",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(2), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )
    op.create_table(
        "cities",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("state_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["state_id"], ["states.id"]),
        sa.UniqueConstraint("name", "state_id", name="uq_city_state"),
    )
    op.create_table(
        "neighborhoods",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("city_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["city_id"], ["cities.id"]),
        sa.UniqueConstraint("name", "city_id", name="uq_neighborhood_city"),
    )
    op.create_table(
        "addresses",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("postal_code", sa.String(9), nullable=False),
        sa.Column("street", sa.String(255), nullable=False),
        sa.Column("number", sa.String(20), nullable=True),
        sa.Column("complement", sa.String(255), nullable=True),
        sa.Column("neighborhood_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["neighborhood_id"], ["neighborhoods.id"]),
    )

    # Clients and equipment
    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("cnpj", sa.String(18), nullable=True),
        sa.Column("cpf", sa.String(14), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=True),
        sa.Column("address_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["address_id"], ["addresses.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("email"),
        sa.UniqueConstraint("cnpj"),
        sa.UniqueConstraint("cpf"),
    )
    op.create_table(
        "catalog_copy_machines",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("manufacturer", sa.String(100), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "client_copy_machines",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("serial_number", sa.String(100), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("catalog_copy_machine_id", sa.Integer(), nullable=True),
        sa.Column(
            "acquisition_type",
            sa.Enum("RENT", "SOLD", "OWNED", name="acquisition_type", native_enum=False),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["catalog_copy_machine_id"],
            ["catalog_copy_machines.id"],
            ondelete="SET NULL",
        ),
    )

    # Work orders
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("client_copy_machine_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", _status_enum("service_status"), nullable=False),
        sa.Column("priority", sa.String(20), nullable=True),
        sa.Column("reason_cancellament", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.ForeignKeyConstraint(
            ["client_copy_machine_id"],
            ["client_copy_machines.id"],
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_services_created_at", "services", ["created_at"])
    op.create_index("ix_services_status", "services", ["status"])
    op.create_index("ix_services_category_id", "services", ["category_id"])

    op.create_table(
        "steps",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("observation", sa.Text(), nullable=True),
        sa.Column("responsable_client", sa.String(255), nullable=True),
        sa.Column("service_id", sa.Integer(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("responsable_id", sa.Integer(), nullable=True),
        sa.Column("status", _status_enum("step_status"), nullable=False),
        sa.Column("datetime_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("datetime_conclusion", sa.DateTime(timezone=True), nullable=True),
        sa.Column("datetime_expiration", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reason_cancellament", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["service_id"], ["services.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["category_id"], ["categories.id"], ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(["responsable_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_steps_service_updated", "steps", ["service_id", "updated_at"])
    op.create_index("ix_steps_responsable", "steps", ["responsable_id"])
    op.create_index("ix_steps_expiration", "steps", ["datetime_expiration"])

    op.create_table(
        "images",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("path", sa.String(500), nullable=False),
        sa.Column("step_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["step_id"], ["steps.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_images_step_id", "images", ["step_id"])

    # Monthly snapshot ledger
    op.create_table(
        "dashboard_stats",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("clients_total", sa.Integer(), nullable=False),
        sa.Column("clients_new_this_month", sa.Integer(), nullable=False),
        sa.Column("services_total", sa.Integer(), nullable=False),
        sa.Column("services_pending", sa.Integer(), nullable=False),
        sa.Column("services_in_progress", sa.Integer(), nullable=False),
        sa.Column("services_completed", sa.Integer(), nullable=False),
        sa.Column("services_cancelled", sa.Integer(), nullable=False),
        sa.Column("services_overdue", sa.Integer(), nullable=False),
        sa.Column("services_this_week", sa.Integer(), nullable=False),
        sa.Column("services_this_month", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("year", "month", name="uq_dashboard_year_month"),
    )


def downgrade() -> None:
    op.drop_table("dashboard_stats")
    op.drop_index("ix_images_step_id", table_name="images")
    op.drop_table("images")
    op.drop_index("ix_steps_expiration", table_name="steps")
    op.drop_index("ix_steps_responsable", table_name="steps")
    op.drop_index("ix_steps_service_updated", table_name="steps")
    op.drop_table("steps")
    op.drop_index("ix_services_category_id", table_name="services")
    op.drop_index("ix_services_status", table_name="services")
    op.drop_index("ix_services_created_at", table_name="services")
    op.drop_table("services")
    op.drop_table("categories")
    op.drop_table("client_copy_machines")
    op.drop_table("catalog_copy_machines")
    op.drop_table("clients")
    op.drop_table("addresses")
    op.drop_table("neighborhoods")
    op.drop_table("cities")
    op.drop_table("states")
    op.drop_table("users")
