"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "people",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "teammates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("person_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["person_id"], ["people.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "person_id", name="uq_teammate_org_person"),
    )
    op.create_index("ix_teammates_organization_id", "teammates", ["organization_id"], unique=False)
    op.create_index("ix_teammates_person_id", "teammates", ["person_id"], unique=False)

    for table, label in (("positions", "title"), ("assignments", "title"), ("aspirations", "name")):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=False),
            sa.Column(label, sa.String(length=255), nullable=False),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_organization_id", table, ["organization_id"], unique=False)

    op.create_table(
        "employment_tenures",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("teammate_id", sa.Integer(), nullable=False),
        sa.Column("position_id", sa.Integer(), nullable=False),
        sa.Column("manager_id", sa.Integer(), nullable=True),
        sa.Column("started_at", sa.Date(), nullable=False),
        sa.Column("ended_at", sa.Date(), nullable=True),
        sa.Column("official_position_rating", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "official_position_rating IS NULL OR official_position_rating BETWEEN 0 AND 3",
            name="ck_tenure_rating_range",
        ),
        sa.ForeignKeyConstraint(["teammate_id"], ["teammates.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["position_id"], ["positions.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["manager_id"], ["people.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_employment_tenures_teammate_id", "employment_tenures", ["teammate_id"], unique=False
    )
    op.create_index(
        "ix_employment_tenures_manager_id", "employment_tenures", ["manager_id"], unique=False
    )

    op.create_table(
        "decision_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("teammate_id", sa.Integer(), nullable=False),
        sa.Column("finalized_by_id", sa.Integer(), nullable=False),
        sa.Column("change_type", sa.String(length=64), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("decision_data", sa.JSON(), nullable=False),
        sa.Column("request_info", sa.JSON(), nullable=True),
        sa.Column("employee_acknowledged_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["teammate_id"], ["teammates.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["finalized_by_id"], ["people.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_decision_snapshots_organization_id",
        "decision_snapshots",
        ["organization_id"],
        unique=False,
    )
    op.create_index(
        "ix_decision_snapshots_teammate_id", "decision_snapshots", ["teammate_id"], unique=False
    )

    op.create_table(
        "check_ins",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("teammate_id", sa.Integer(), nullable=False),
        sa.Column("target_kind", sa.String(length=32), nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=False),
        sa.Column("check_in_started_on", sa.Date(), nullable=False),
        sa.Column("open_slot", sa.Boolean(), nullable=True),
        sa.Column("employee_rating", sa.String(length=64), nullable=True),
        sa.Column("employee_private_notes", sa.Text(), nullable=True),
        sa.Column("actual_energy_percentage", sa.Integer(), nullable=True),
        sa.Column("employee_personal_alignment", sa.String(length=32), nullable=True),
        sa.Column("employee_completed_at", sa.DateTime(), nullable=True),
        sa.Column("manager_rating", sa.String(length=64), nullable=True),
        sa.Column("manager_private_notes", sa.Text(), nullable=True),
        sa.Column("manager_completed_at", sa.DateTime(), nullable=True),
        sa.Column("manager_completed_by_id", sa.Integer(), nullable=True),
        sa.Column("official_rating", sa.String(length=64), nullable=True),
        sa.Column("shared_notes", sa.Text(), nullable=True),
        sa.Column("official_check_in_completed_at", sa.DateTime(), nullable=True),
        sa.Column("finalized_by_id", sa.Integer(), nullable=True),
        sa.Column("snapshot_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "target_kind IN ('position', 'assignment', 'aspiration')",
            name="ck_check_in_target_kind",
        ),
        sa.CheckConstraint(
            "(open_slot IS NOT NULL AND official_check_in_completed_at IS NULL) "
            "OR (open_slot IS NULL AND official_check_in_completed_at IS NOT NULL)",
            name="ck_check_in_open_slot",
        ),
        sa.CheckConstraint(
            "employee_completed_at IS NULL OR employee_rating IS NOT NULL",
            name="ck_check_in_employee_completion",
        ),
        sa.CheckConstraint(
            "manager_completed_at IS NULL OR manager_rating IS NOT NULL",
            name="ck_check_in_manager_completion",
        ),
        sa.CheckConstraint(
            "official_check_in_completed_at IS NULL OR official_rating IS NOT NULL",
            name="ck_check_in_official_completion",
        ),
        sa.CheckConstraint(
            "actual_energy_percentage IS NULL OR actual_energy_percentage BETWEEN 0 AND 100",
            name="ck_check_in_energy_range",
        ),
        sa.ForeignKeyConstraint(["teammate_id"], ["teammates.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["manager_completed_by_id"], ["people.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["finalized_by_id"], ["people.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["snapshot_id"], ["decision_snapshots.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "teammate_id", "target_kind", "target_id", "open_slot", name="uq_check_in_single_open"
        ),
    )
    op.create_index("ix_check_ins_teammate_id", "check_ins", ["teammate_id"], unique=False)
    op.create_index("ix_check_ins_snapshot_id", "check_ins", ["snapshot_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_check_ins_snapshot_id", table_name="check_ins")
    op.drop_index("ix_check_ins_teammate_id", table_name="check_ins")
    op.drop_table("check_ins")
    op.drop_index("ix_decision_snapshots_teammate_id", table_name="decision_snapshots")
    op.drop_index("ix_decision_snapshots_organization_id", table_name="decision_snapshots")
    op.drop_table("decision_snapshots")
    op.drop_index("ix_employment_tenures_manager_id", table_name="employment_tenures")
    op.drop_index("ix_employment_tenures_teammate_id", table_name="employment_tenures")
    op.drop_table("employment_tenures")
    for table in ("aspirations", "assignments", "positions"):
        op.drop_index(f"ix_{table}_organization_id", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_teammates_person_id", table_name="teammates")
    op.drop_index("ix_teammates_organization_id", table_name="teammates")
    op.drop_table("teammates")
    op.drop_table("people")
    op.drop_table("organizations")
