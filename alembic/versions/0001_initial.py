"""Initial prize draw schema.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
MONEY = sa.Numeric(14, 2)


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=20)


AWARD_KIND = ("RANDOM_DRAW", "COMMUNITY_SUPPORT")


def upgrade() -> None:
    op.create_table(
        "admins",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=100), nullable=True),
        sa.Column("name", sa.String(length=50), nullable=True),
        sa.Column("role", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_admins")),
    )
    op.create_index(op.f("ix_admins_email"), "admins", ["email"], unique=True)
    op.create_index(op.f("ix_admins_id"), "admins", ["id"], unique=False)

    op.create_table(
        "members",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("country_code", sa.String(length=2), nullable=False),
        sa.Column(
            "standing",
            _enum("member_standing", "active", "suspended", "banned"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_members")),
        sa.UniqueConstraint("email", name=op.f("uq_members_email")),
    )
    op.create_index(op.f("ix_members_country_code"), "members", ["country_code"], unique=False)

    op.create_table(
        "country_settings",
        sa.Column("country_code", sa.String(length=2), nullable=False),
        sa.Column("membership_fee_amount", MONEY, nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("prize_pool_percentage", MONEY, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("country_code", name=op.f("pk_country_settings")),
    )

    op.create_table(
        "memberships",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("member_id", ID_TYPE, nullable=False),
        sa.Column("membership_number", sa.String(length=32), nullable=True),
        sa.Column(
            "status",
            _enum("membership_status", "active", "pending", "expired", "cancelled"),
            nullable=False,
        ),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["member_id"],
            ["members.id"],
            name=op.f("fk_memberships_member_id_members"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_memberships")),
        sa.UniqueConstraint("membership_number", name=op.f("uq_memberships_membership_number")),
    )
    op.create_index(
        "ix_memberships_member_status", "memberships", ["member_id", "status"], unique=False
    )

    op.create_table(
        "draws",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("scope", sa.String(length=2), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            _enum("draw_status", "COMING_SOON", "ANNOUNCED", "COMPLETED"),
            nullable=False,
        ),
        sa.Column("forecast_member_count", sa.Integer(), nullable=True),
        sa.Column("estimated_pool_amount", MONEY, nullable=True),
        sa.Column("estimated_pool_currency", sa.String(length=3), nullable=True),
        sa.Column("pool_percentage", MONEY, nullable=True),
        sa.Column("disclaimer", sa.Text(), nullable=True),
        sa.Column("announced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("entry_cutoff_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("selection_ran_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_admin_id", ID_TYPE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["created_by_admin_id"],
            ["admins.id"],
            name=op.f("fk_draws_created_by_admin_id_admins"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draws")),
    )
    op.create_index(op.f("ix_draws_scope"), "draws", ["scope"], unique=False)
    op.create_index("ix_draws_scope_status", "draws", ["scope", "status"], unique=False)

    op.create_table(
        "prizes",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("draw_id", ID_TYPE, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("award_kind", _enum("award_kind", *AWARD_KIND), nullable=False),
        sa.Column("value_amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("slot_count", sa.Integer(), nullable=False),
        sa.Column("allocated_slots", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("forfeited_slots", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("rollover_amount", MONEY, server_default=sa.text("0"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("slot_count >= 1", name=op.f("ck_prizes_slot_count_positive")),
        sa.CheckConstraint("value_amount >= 0", name=op.f("ck_prizes_value_non_negative")),
        sa.CheckConstraint("allocated_slots >= 0", name=op.f("ck_prizes_allocated_non_negative")),
        sa.CheckConstraint("forfeited_slots >= 0", name=op.f("ck_prizes_forfeited_non_negative")),
        sa.CheckConstraint(
            "allocated_slots + forfeited_slots <= slot_count",
            name=op.f("ck_prizes_slots_within_capacity"),
        ),
        sa.ForeignKeyConstraint(
            ["draw_id"],
            ["draws.id"],
            name=op.f("fk_prizes_draw_id_draws"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_prizes")),
    )
    op.create_index(op.f("ix_prizes_draw_id"), "prizes", ["draw_id"], unique=False)

    op.create_table(
        "entries",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("draw_id", ID_TYPE, nullable=False),
        sa.Column("member_id", ID_TYPE, nullable=False),
        sa.Column("membership_id", ID_TYPE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["draw_id"], ["draws.id"], name=op.f("fk_entries_draw_id_draws"), ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["member_id"],
            ["members.id"],
            name=op.f("fk_entries_member_id_members"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["membership_id"],
            ["memberships.id"],
            name=op.f("fk_entries_membership_id_memberships"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_entries")),
        sa.UniqueConstraint("draw_id", "member_id", name="uq_entries_draw_member"),
    )
    op.create_index(op.f("ix_entries_draw_id"), "entries", ["draw_id"], unique=False)
    op.create_index(op.f("ix_entries_member_id"), "entries", ["member_id"], unique=False)

    op.create_table(
        "winners",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("draw_id", ID_TYPE, nullable=False),
        sa.Column("prize_id", ID_TYPE, nullable=False),
        sa.Column("member_id", ID_TYPE, nullable=False),
        sa.Column("award_kind", _enum("award_kind", *AWARD_KIND), nullable=False),
        sa.Column(
            "selection_method", _enum("selection_method", "random", "manual"), nullable=False
        ),
        sa.Column("selected_by_admin_id", ID_TYPE, nullable=True),
        sa.Column("selected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "claim_status",
            _enum("claim_status", "PENDING", "CLAIMED", "EXPIRED"),
            nullable=False,
        ),
        sa.Column("claim_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payout_status", _enum("payout_status", "PENDING", "PAID"), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ["draw_id"], ["draws.id"], name=op.f("fk_winners_draw_id_draws"), ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(
            ["prize_id"],
            ["prizes.id"],
            name=op.f("fk_winners_prize_id_prizes"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["member_id"],
            ["members.id"],
            name=op.f("fk_winners_member_id_members"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["selected_by_admin_id"],
            ["admins.id"],
            name=op.f("fk_winners_selected_by_admin_id_admins"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_winners")),
        sa.UniqueConstraint(
            "draw_id", "prize_id", "member_id", name="uq_winners_draw_prize_member"
        ),
    )
    op.create_index(op.f("ix_winners_draw_id"), "winners", ["draw_id"], unique=False)
    op.create_index(op.f("ix_winners_prize_id"), "winners", ["prize_id"], unique=False)
    op.create_index(op.f("ix_winners_member_id"), "winners", ["member_id"], unique=False)
    op.create_index(
        "ix_winners_status_deadline", "winners", ["claim_status", "claim_deadline"], unique=False
    )

    op.create_table(
        "rollover_entries",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("source_draw_id", ID_TYPE, nullable=False),
        sa.Column("source_prize_id", ID_TYPE, nullable=False),
        sa.Column("destination_draw_id", ID_TYPE, nullable=True),
        sa.Column("destination_prize_id", ID_TYPE, nullable=True),
        sa.Column("scope", sa.String(length=2), nullable=False),
        sa.Column("award_kind", _enum("award_kind", *AWARD_KIND), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("slots", sa.Integer(), nullable=False),
        sa.Column(
            "carried_back", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("amount > 0", name=op.f("ck_rollover_entries_amount_positive")),
        sa.ForeignKeyConstraint(
            ["source_draw_id"],
            ["draws.id"],
            name=op.f("fk_rollover_entries_source_draw_id_draws"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["source_prize_id"],
            ["prizes.id"],
            name=op.f("fk_rollover_entries_source_prize_id_prizes"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["destination_draw_id"],
            ["draws.id"],
            name=op.f("fk_rollover_entries_destination_draw_id_draws"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["destination_prize_id"],
            ["prizes.id"],
            name=op.f("fk_rollover_entries_destination_prize_id_prizes"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_rollover_entries")),
    )
    op.create_index(
        op.f("ix_rollover_entries_source_draw_id"),
        "rollover_entries",
        ["source_draw_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_rollover_entries_source_prize_id"),
        "rollover_entries",
        ["source_prize_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_rollover_entries_destination_prize_id"),
        "rollover_entries",
        ["destination_prize_id"],
        unique=False,
    )
    op.create_index(
        "ix_rollover_entries_outstanding",
        "rollover_entries",
        ["scope", "award_kind", "currency", "destination_prize_id"],
        unique=False,
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("actor_type", sa.String(length=20), nullable=False),
        sa.Column("actor_admin_id", ID_TYPE, nullable=True),
        sa.Column("actor_member_id", ID_TYPE, nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("subject_table", sa.String(length=50), nullable=False),
        sa.Column("subject_id", ID_TYPE, nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "actor_type IN ('system','admin','member')",
            name=op.f("ck_audit_logs_actor_type_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["actor_admin_id"],
            ["admins.id"],
            name=op.f("fk_audit_logs_actor_admin_id_admins"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["actor_member_id"],
            ["members.id"],
            name=op.f("fk_audit_logs_actor_member_id_members"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audit_logs")),
    )
    op.create_index(op.f("ix_audit_logs_action"), "audit_logs", ["action"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_audit_logs_action"), table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_rollover_entries_outstanding", table_name="rollover_entries")
    op.drop_index(op.f("ix_rollover_entries_destination_prize_id"), table_name="rollover_entries")
    op.drop_index(op.f("ix_rollover_entries_source_prize_id"), table_name="rollover_entries")
    op.drop_index(op.f("ix_rollover_entries_source_draw_id"), table_name="rollover_entries")
    op.drop_table("rollover_entries")
    op.drop_index("ix_winners_status_deadline", table_name="winners")
    op.drop_index(op.f("ix_winners_member_id"), table_name="winners")
    op.drop_index(op.f("ix_winners_prize_id"), table_name="winners")
    op.drop_index(op.f("ix_winners_draw_id"), table_name="winners")
    op.drop_table("winners")
    op.drop_index(op.f("ix_entries_member_id"), table_name="entries")
    op.drop_index(op.f("ix_entries_draw_id"), table_name="entries")
    op.drop_table("entries")
    op.drop_index(op.f("ix_prizes_draw_id"), table_name="prizes")
    op.drop_table("prizes")
    op.drop_index("ix_draws_scope_status", table_name="draws")
    op.drop_index(op.f("ix_draws_scope"), table_name="draws")
    op.drop_table("draws")
    op.drop_index("ix_memberships_member_status", table_name="memberships")
    op.drop_table("memberships")
    op.drop_table("country_settings")
    op.drop_index(op.f("ix_members_country_code"), table_name="members")
    op.drop_table("members")
    op.drop_index(op.f("ix_admins_id"), table_name="admins")
    op.drop_index(op.f("ix_admins_email"), table_name="admins")
    op.drop_table("admins")
