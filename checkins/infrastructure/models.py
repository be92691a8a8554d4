from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .exceptions import InvalidTransition


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the ``DateTime(timezone=False)`` columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class OrganizationORM(Base):
    __tablename__ = "organizations"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )

    teammates: Mapped[list[TeammateORM]] = relationship(back_populates="organization")


class PersonORM(Base):
    __tablename__ = "people"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )


class TeammateORM(Base):
    __tablename__ = "teammates"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    person_id: Mapped[int] = mapped_column(
        ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "person_id", name="uq_teammate_org_person"),
    )

    organization: Mapped[OrganizationORM] = relationship(back_populates="teammates")
    person: Mapped[PersonORM] = relationship()
    tenures: Mapped[list[EmploymentTenureORM]] = relationship(
        back_populates="teammate", cascade="all, delete"
    )


class PositionORM(Base):
    __tablename__ = "positions"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)


class AssignmentORM(Base):
    __tablename__ = "assignments"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)


class AspirationORM(Base):
    __tablename__ = "aspirations"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class EmploymentTenureORM(Base):
    __tablename__ = "employment_tenures"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    teammate_id: Mapped[int] = mapped_column(
        ForeignKey("teammates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position_id: Mapped[int] = mapped_column(
        ForeignKey("positions.id", ondelete="RESTRICT"), nullable=False
    )
    manager_id: Mapped[int | None] = mapped_column(
        ForeignKey("people.id", ondelete="SET NULL"), nullable=True, index=True
    )
    started_at: Mapped[date] = mapped_column(Date, nullable=False)
    ended_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    official_position_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "official_position_rating IS NULL OR official_position_rating BETWEEN 0 AND 3",
            name="ck_tenure_rating_range",
        ),
    )

    teammate: Mapped[TeammateORM] = relationship(back_populates="tenures")
    position: Mapped[PositionORM] = relationship()


class DecisionSnapshotORM(Base):
    __tablename__ = "decision_snapshots"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    teammate_id: Mapped[int] = mapped_column(
        ForeignKey("teammates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    finalized_by_id: Mapped[int] = mapped_column(
        ForeignKey("people.id", ondelete="RESTRICT"), nullable=False
    )
    change_type: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decision_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    request_info: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    employee_acknowledged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )

    check_ins: Mapped[list[CheckInORM]] = relationship(back_populates="snapshot")
    teammate: Mapped[TeammateORM] = relationship()


class CheckInORM(Base):
    __tablename__ = "check_ins"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    teammate_id: Mapped[int] = mapped_column(
        ForeignKey("teammates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    target_id: Mapped[int] = mapped_column(Integer, nullable=False)
    check_in_started_on: Mapped[date] = mapped_column(Date, nullable=False)
    # True while open, NULL once finalized
    open_slot: Mapped[bool | None] = mapped_column(Boolean, default=True, nullable=True)

    employee_rating: Mapped[str | None] = mapped_column(String(64), nullable=True)
    employee_private_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    actual_energy_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    employee_personal_alignment: Mapped[str | None] = mapped_column(String(32), nullable=True)
    employee_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=False), nullable=True
    )

    manager_rating: Mapped[str | None] = mapped_column(String(64), nullable=True)
    manager_private_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    manager_completed_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("people.id", ondelete="SET NULL"), nullable=True
    )

    official_rating: Mapped[str | None] = mapped_column(String(64), nullable=True)
    shared_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    official_check_in_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    finalized_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("people.id", ondelete="SET NULL"), nullable=True
    )
    snapshot_id: Mapped[int | None] = mapped_column(
        ForeignKey("decision_snapshots.id", ondelete="SET NULL"), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "teammate_id", "target_kind", "target_id", "open_slot", name="uq_check_in_single_open"
        ),
        CheckConstraint(
            "target_kind IN ('position', 'assignment', 'aspiration')",
            name="ck_check_in_target_kind",
        ),
        CheckConstraint(
            "(open_slot IS NOT NULL AND official_check_in_completed_at IS NULL) "
            "OR (open_slot IS NULL AND official_check_in_completed_at IS NOT NULL)",
            name="ck_check_in_open_slot",
        ),
        CheckConstraint(
            "employee_completed_at IS NULL OR employee_rating IS NOT NULL",
            name="ck_check_in_employee_completion",
        ),
        CheckConstraint(
            "manager_completed_at IS NULL OR manager_rating IS NOT NULL",
            name="ck_check_in_manager_completion",
        ),
        CheckConstraint(
            "official_check_in_completed_at IS NULL OR official_rating IS NOT NULL",
            name="ck_check_in_official_completion",
        ),
        CheckConstraint(
            "actual_energy_percentage IS NULL OR actual_energy_percentage BETWEEN 0 AND 100",
            name="ck_check_in_energy_range",
        ),
    )

    teammate: Mapped[TeammateORM] = relationship()
    snapshot: Mapped[DecisionSnapshotORM | None] = relationship(back_populates="check_ins")

    @property
    def is_open(self) -> bool:
        return self.official_check_in_completed_at is None


@event.listens_for(CheckInORM, "before_update")
def _reject_changes_to_finalized(mapper, connection, target: CheckInORM) -> None:
    """Finalized check-ins are read-only apart from linking their snapshot once."""
    state = inspect(target)
    finalized_hist = state.attrs.official_check_in_completed_at.history
    previously = finalized_hist.deleted or finalized_hist.unchanged
    if not previously or previously[0] is None:
        return

    for prop in mapper.column_attrs:
        if prop.key == "updated_at":
            continue
        hist = state.attrs[prop.key].history
        if not hist.has_changes():
            continue
        if prop.key == "snapshot_id" and not [v for v in hist.deleted if v is not None]:
            continue
        raise InvalidTransition(
            f"Check-in {target.id} is finalized and cannot be modified ({prop.key})",
            check_in_id=target.id,
            state="FINALIZED",
        )
