"""Initial grow schema: facility tree, plants, tags, batches, harvests, audit.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-17

Run with:
    alembic upgrade head
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Facility tree ────────────────────────────────────────

    op.create_table(
        "facilities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("license_number", sa.String(100)),
        sa.Column("layout", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(30), nullable=False, server_default="grower"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.id")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_facility_id", "users", ["facility_id"])

    op.create_table(
        "rooms",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("room_type", sa.String(30)),
        sa.Column("rows", sa.Integer()),
        sa.Column("cols", sa.Integer()),
        sa.Column("floor_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("facility_id", "name", name="uq_rooms_facility_name"),
        sa.CheckConstraint("floor_count >= 1", name="ck_rooms_floor_count"),
    )
    op.create_index("ix_rooms_facility_id", "rooms", ["facility_id"])

    op.create_table(
        "racks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("room_id", sa.String(36), sa.ForeignKey("rooms.id"), nullable=False),
        sa.Column("floor", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("name", sa.String(100)),
        sa.CheckConstraint("floor >= 1", name="ck_racks_floor"),
    )
    op.create_index("ix_racks_room_id", "racks", ["room_id"])

    op.create_table(
        "trays",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("rack_id", sa.String(36), sa.ForeignKey("racks.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100)),
        sa.CheckConstraint("capacity > 0", name="ck_trays_capacity_positive"),
    )
    op.create_index("ix_trays_rack_id", "trays", ["rack_id"])

    # ── Catalog ──────────────────────────────────────────────

    op.create_table(
        "strains",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("category", sa.String(20)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Batches & harvests ───────────────────────────────────

    op.create_table(
        "plant_batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.id"), nullable=False),
        sa.Column("batch_uid", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("batch_type", sa.String(30), nullable=False),
        sa.Column("strain_id", sa.String(36), sa.ForeignKey("strains.id"), nullable=False),
        sa.Column("initial_count", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("initial_count >= 1", name="ck_plant_batches_initial_count"),
    )
    op.create_index("ix_plant_batches_facility_id", "plant_batches", ["facility_id"])
    op.create_index("ix_plant_batches_batch_uid", "plant_batches", ["batch_uid"])

    op.create_table(
        "harvests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("harvest_type", sa.String(30), nullable=False, server_default="whole_plant"),
        sa.Column("harvest_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="created"),
        sa.Column("wet_weight_grams", sa.Float()),
        sa.Column("dry_weight_grams", sa.Float()),
        sa.Column("waste_weight_grams", sa.Float()),
        sa.Column("drying_room_id", sa.String(36), sa.ForeignKey("rooms.id")),
        sa.Column("notes", sa.Text()),
        sa.Column("drying_started_at", sa.DateTime()),
        sa.Column("drying_finished_at", sa.DateTime()),
        sa.Column("trimming_started_at", sa.DateTime()),
        sa.Column("trimming_finished_at", sa.DateTime()),
        sa.Column("curing_finished_at", sa.DateTime()),
        sa.Column("admin_reviewed_at", sa.DateTime()),
        sa.Column("admin_reviewed_by", sa.String(36)),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("facility_id", "name", name="uq_harvests_facility_name"),
    )
    op.create_index("ix_harvests_facility_id", "harvests", ["facility_id"])
    op.create_index("ix_harvests_status", "harvests", ["status"])

    op.create_table(
        "harvest_weights",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("harvest_id", sa.String(36), sa.ForeignKey("harvests.id"), nullable=False),
        sa.Column("strain_id", sa.String(36), sa.ForeignKey("strains.id"), nullable=False),
        sa.Column("wet_weight_grams", sa.Float()),
        sa.Column("dry_weight_grams", sa.Float()),
        sa.Column("flower_weight_grams", sa.Float()),
        sa.Column("shake_weight_grams", sa.Float()),
        sa.Column("waste_weight_grams", sa.Float()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("harvest_id", "strain_id", name="uq_harvest_weights_harvest_strain"),
    )
    op.create_index("ix_harvest_weights_harvest_id", "harvest_weights", ["harvest_id"])
    op.create_index("ix_harvest_weights_strain_id", "harvest_weights", ["strain_id"])

    # ── Plants ───────────────────────────────────────────────

    op.create_table(
        "plants",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.id"), nullable=False),
        sa.Column("plant_uid", sa.String(50), nullable=False, unique=True),
        sa.Column("strain_id", sa.String(36), sa.ForeignKey("strains.id"), nullable=False),
        sa.Column("growth_phase", sa.String(30), nullable=False, server_default="immature"),
        sa.Column("status", sa.String(30), nullable=False, server_default="active"),
        sa.Column("tray_id", sa.String(36), sa.ForeignKey("trays.id")),
        sa.Column("plant_batch_id", sa.String(36), sa.ForeignKey("plant_batches.id")),
        sa.Column("harvest_id", sa.String(36), sa.ForeignKey("harvests.id")),
        sa.Column("metrc_label", sa.String(50), unique=True),
        sa.Column("destroyed_reason", sa.Text()),
        sa.Column("placed_by", sa.String(36)),
        sa.Column("retired_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_plants_facility_id", "plants", ["facility_id"])
    op.create_index("ix_plants_plant_uid", "plants", ["plant_uid"])
    op.create_index("ix_plants_strain_id", "plants", ["strain_id"])
    op.create_index("ix_plants_growth_phase", "plants", ["growth_phase"])
    op.create_index("ix_plants_status", "plants", ["status"])
    op.create_index("ix_plants_tray_id", "plants", ["tray_id"])
    op.create_index("ix_plants_plant_batch_id", "plants", ["plant_batch_id"])
    op.create_index("ix_plants_harvest_id", "plants", ["harvest_id"])
    # Occupancy counts: active plants per tray
    op.create_index("ix_plants_tray_status", "plants", ["tray_id", "status"])

    op.create_table(
        "plant_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.id"), nullable=False),
        sa.Column("plant_id", sa.String(36), sa.ForeignKey("plants.id"), nullable=False),
        sa.Column("event_type", sa.String(30), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("photo_urls", sa.JSON()),
        sa.Column("details", sa.JSON()),
        sa.Column("user_id", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_plant_events_facility_id", "plant_events", ["facility_id"])
    op.create_index("ix_plant_events_plant_id", "plant_events", ["plant_id"])
    op.create_index("ix_plant_events_created_at", "plant_events", ["created_at"])

    # ── METRC tags ───────────────────────────────────────────

    op.create_table(
        "metrc_tags",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.id"), nullable=False),
        sa.Column("tag", sa.String(50), nullable=False, unique=True),
        sa.Column("tag_type", sa.String(30), nullable=False, server_default="plant"),
        sa.Column("status", sa.String(30), nullable=False, server_default="available"),
        sa.Column("plant_id", sa.String(36), sa.ForeignKey("plants.id")),
        sa.Column("assigned_by", sa.String(36)),
        sa.Column("assigned_at", sa.DateTime()),
        sa.Column("used_at", sa.DateTime()),
        sa.Column("superseded", sa.Boolean(), server_default=sa.false()),
        sa.Column("voided_by", sa.String(36)),
        sa.Column("voided_at", sa.DateTime()),
        sa.Column("imported_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_metrc_tags_facility_id", "metrc_tags", ["facility_id"])
    op.create_index("ix_metrc_tags_tag", "metrc_tags", ["tag"])
    op.create_index("ix_metrc_tags_status", "metrc_tags", ["status"])
    op.create_index("ix_metrc_tags_plant_id", "metrc_tags", ["plant_id"])

    # ── Audit trail ──────────────────────────────────────────

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("facility_id", sa.String(36), nullable=False),
        sa.Column("trackable_type", sa.String(30), nullable=False),
        sa.Column("trackable_id", sa.String(36), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("metadata", sa.JSON()),
        sa.Column("notes", sa.Text()),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("user_name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_events_facility_id", "audit_events", ["facility_id"])
    op.create_index("ix_audit_events_trackable", "audit_events", ["trackable_type", "trackable_id"])
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("metrc_tags")
    op.drop_table("plant_events")
    op.drop_table("plants")
    op.drop_table("harvest_weights")
    op.drop_table("harvests")
    op.drop_table("plant_batches")
    op.drop_table("strains")
    op.drop_table("trays")
    op.drop_table("racks")
    op.drop_table("rooms")
    op.drop_table("users")
    op.drop_table("facilities")
