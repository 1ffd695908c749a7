"""Initial schema: locations, carriers, transport plans, trips, incidents.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa

location_type = sa.Enum("SUPPLIER", "HUB", "STORE", name="locationtype")
plan_status = sa.Enum(
    "DRAFT", "PROPOSED", "ACCEPTED", "IN_TRANSIT", "DELIVERED", "CANCELLED",
    name="planstatus",
)
trip_status = sa.Enum("PROPOSED", "ACCEPTED", "CANCELLED", name="tripstatus")
incident_type = sa.Enum("REFUSAL", "DELAY", "IMBALANCE", name="incidenttype")
incident_status = sa.Enum("OPEN", "RESOLVED", name="incidentstatus")


def upgrade() -> None:
    op.create_table(
        "locations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", location_type, nullable=False),
        sa.Column("address", sa.Text()),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
        sa.Column("is_deleted", sa.Boolean(), server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_locations_type", "locations", ["type"])

    op.create_table(
        "carriers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("cost_per_unit", sa.Float(), nullable=False),
        sa.Column("transit_hours", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "transport_plans",
        sa.Column("id", sa.String(36), primary_key=True),
        # Route
        sa.Column("supplier_id", sa.String(36), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("destination_id", sa.String(36), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("hub_id", sa.String(36), sa.ForeignKey("locations.id")),
        # Shipment
        sa.Column("unit_count", sa.Integer(), nullable=False),
        # Schedule
        sa.Column("planned_loading_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("estimated_hub_time", sa.DateTime(timezone=True)),
        sa.Column("estimated_delivery_time", sa.DateTime(timezone=True)),
        # Status / concurrency
        sa.Column("status", plan_status, nullable=False, server_default="DRAFT"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        # Metadata
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(36), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_transport_plans_supplier_id", "transport_plans", ["supplier_id"])
    op.create_index("ix_transport_plans_destination_id", "transport_plans", ["destination_id"])
    op.create_index("ix_transport_plans_planned_loading_time", "transport_plans", ["planned_loading_time"])
    op.create_index("ix_transport_plans_estimated_delivery_time", "transport_plans", ["estimated_delivery_time"])
    op.create_index("ix_transport_plans_status", "transport_plans", ["status"])
    op.create_index("ix_transport_plans_created_by", "transport_plans", ["created_by"])

    op.create_table(
        "trips",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("plan_id", sa.String(36), sa.ForeignKey("transport_plans.id"), nullable=False),
        sa.Column("carrier_id", sa.String(36), sa.ForeignKey("carriers.id"), nullable=False),
        sa.Column("total_cost", sa.Float()),
        sa.Column("estimated_eta", sa.DateTime(timezone=True)),
        sa.Column("status", trip_status, nullable=False, server_default="PROPOSED"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("accepted_at", sa.DateTime(timezone=True)),
        sa.Column("refused_at", sa.DateTime(timezone=True)),
        sa.Column("refusal_reason", sa.Text()),
        sa.Column("is_deleted", sa.Boolean(), server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_trips_plan_id", "trips", ["plan_id"])
    op.create_index("ix_trips_carrier_id", "trips", ["carrier_id"])
    op.create_index("ix_trips_status", "trips", ["status"])

    op.create_table(
        "incidents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("plan_id", sa.String(36), sa.ForeignKey("transport_plans.id"), nullable=False),
        # Classification
        sa.Column("type", incident_type, nullable=False),
        sa.Column("severity", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("description", sa.Text(), nullable=False),
        # Reporter
        sa.Column("carrier_id", sa.String(36)),
        sa.Column("warehouse_id", sa.String(36)),
        # Status
        sa.Column("status", incident_status, nullable=False, server_default="OPEN"),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
        sa.Column("resolved_by", sa.String(36)),
        sa.Column("is_deleted", sa.Boolean(), server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_incidents_plan_id", "incidents", ["plan_id"])
    op.create_index("ix_incidents_type", "incidents", ["type"])
    op.create_index("ix_incidents_status", "incidents", ["status"])
    # At most one OPEN incident per (plan, type)
    op.create_index(
        "uq_incidents_open_plan_type",
        "incidents",
        ["plan_id", "type"],
        unique=True,
        postgresql_where=sa.text("status = 'OPEN' AND is_deleted = false"),
    )


def downgrade() -> None:
    op.drop_table("incidents")
    op.drop_table("trips")
    op.drop_table("transport_plans")
    op.drop_table("carriers")
    op.drop_table("locations")
    for enum in (incident_status, incident_type, trip_status, plan_status, location_type):
        enum.drop(op.get_bind(), checkfirst=True)
