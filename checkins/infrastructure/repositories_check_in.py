# checkins/infrastructure/repositories_check_in.py
"""
Check-in persistence and the single-open-record registry.

At most one check-in per (teammate, target kind, target) may be open. The
registry checks before inserting and the ``uq_check_in_single_open``
constraint backs it up; when a concurrent insert wins the race, the loser
rolls back to its savepoint and gets the winner's record.
"""

from __future__ import annotations

import builtins
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlalchemy.orm import Session

from ..domain.models import (
    CheckIn,
    EmployeeSide,
    ManagerSide,
    OfficialSide,
    Side,
    TargetKind,
)
from .exceptions import CheckInNotFoundError, DuplicateOpenReview
from .logging import log_database_operation as log_op
from .models import CheckInORM
from .repositories_base import BaseRepository as GenericBaseRepository


def to_check_in(record: CheckInORM) -> CheckIn:
    """Build the storage-free domain object the state machine and gate work on."""
    return CheckIn(
        id=record.id,
        teammate_id=record.teammate_id,
        target_kind=TargetKind(record.target_kind),
        target_id=record.target_id,
        started_on=record.check_in_started_on,
        employee=EmployeeSide(
            rating=record.employee_rating,
            private_notes=record.employee_private_notes,
            actual_energy_percentage=record.actual_energy_percentage,
            personal_alignment=record.employee_personal_alignment,
            completed_at=record.employee_completed_at,
        ),
        manager=ManagerSide(
            rating=record.manager_rating,
            private_notes=record.manager_private_notes,
            completed_at=record.manager_completed_at,
            completed_by_id=record.manager_completed_by_id,
        ),
        official=OfficialSide(
            rating=record.official_rating,
            shared_notes=record.shared_notes,
            completed_at=record.official_check_in_completed_at,
            finalized_by_id=record.finalized_by_id,
        ),
        snapshot_id=record.snapshot_id,
    )


def serialize_check_in(record: CheckInORM) -> dict[str, Any]:
    """JSON-ready copy of a check-in, as stored in a snapshot's ``decision_data``."""

    def _iso(value: date | datetime | None) -> str | None:
        return value.isoformat() if value is not None else None

    data: dict[str, Any] = {
        "id": record.id,
        "teammate_id": record.teammate_id,
        "target_kind": record.target_kind,
        "target_id": record.target_id,
        "check_in_started_on": _iso(record.check_in_started_on),
        "employee_rating": record.employee_rating,
        "employee_private_notes": record.employee_private_notes,
        "employee_completed_at": _iso(record.employee_completed_at),
        "manager_rating": record.manager_rating,
        "manager_private_notes": record.manager_private_notes,
        "manager_completed_at": _iso(record.manager_completed_at),
        "manager_completed_by_id": record.manager_completed_by_id,
        "official_rating": record.official_rating,
        "shared_notes": record.shared_notes,
        "official_check_in_completed_at": _iso(record.official_check_in_completed_at),
        "finalized_by_id": record.finalized_by_id,
    }
    if record.target_kind == TargetKind.ASSIGNMENT.value:
        data["actual_energy_percentage"] = record.actual_energy_percentage
        data["employee_personal_alignment"] = record.employee_personal_alignment
    return data


class CheckInRepo(GenericBaseRepository[CheckInORM]):
    model = CheckInORM
    not_found = CheckInNotFoundError

    def __init__(self, session: Session):
        super().__init__(session)

    # -------- Read --------

    @log_op("check_in.get_required")
    def get_by_id_required(self, id_: Any) -> CheckInORM:
        return super().get_by_id_required(id_)

    @log_op("check_in.get_many")
    def get_many(self, ids: builtins.list[int]) -> dict[int, CheckInORM]:
        if not ids:
            return {}
        rows = self.s.scalars(select(CheckInORM).where(CheckInORM.id.in_(ids))).all()
        return {row.id: row for row in rows}

    @log_op("check_in.get_open")
    def get_open(self, teammate_id: int, target_kind: TargetKind, target_id: int) -> CheckInORM | None:
        stmt = select(CheckInORM).where(
            CheckInORM.teammate_id == teammate_id,
            CheckInORM.target_kind == TargetKind(target_kind).value,
            CheckInORM.target_id == target_id,
            CheckInORM.official_check_in_completed_at.is_(None),
        )
        return self.s.scalars(stmt).one_or_none()

    @log_op("check_in.list_open_for")
    def list_open_for(
        self, teammate_id: int, target_kind: TargetKind | None = None
    ) -> builtins.list[CheckInORM]:
        filters = [
            CheckInORM.teammate_id == teammate_id,
            CheckInORM.official_check_in_completed_at.is_(None),
        ]
        if target_kind is not None:
            filters.append(CheckInORM.target_kind == TargetKind(target_kind).value)
        return self.list(*filters, order_by=[CheckInORM.target_kind, CheckInORM.target_id])

    @log_op("check_in.list_ready_for")
    def list_ready_for(self, teammate_id: int) -> builtins.list[CheckInORM]:
        return self.list(
            CheckInORM.teammate_id == teammate_id,
            CheckInORM.official_check_in_completed_at.is_(None),
            CheckInORM.employee_completed_at.is_not(None),
            CheckInORM.manager_completed_at.is_not(None),
            order_by=[CheckInORM.target_kind, CheckInORM.target_id],
        )

    @log_op("check_in.latest_finalized_for")
    def latest_finalized_for(
        self, teammate_id: int, target_kind: TargetKind, target_id: int
    ) -> CheckInORM | None:
        stmt = (
            select(CheckInORM)
            .where(
                CheckInORM.teammate_id == teammate_id,
                CheckInORM.target_kind == TargetKind(target_kind).value,
                CheckInORM.target_id == target_id,
                CheckInORM.official_check_in_completed_at.is_not(None),
            )
            .order_by(CheckInORM.official_check_in_completed_at.desc(), CheckInORM.id.desc())
            .limit(1)
        )
        return self.s.scalars(stmt).one_or_none()

    @log_op("check_in.list_finalized_for")
    def list_finalized_for(
        self,
        teammate_id: int,
        target_kind: TargetKind | None = None,
        since: datetime | None = None,
    ) -> builtins.list[CheckInORM]:
        filters = [
            CheckInORM.teammate_id == teammate_id,
            CheckInORM.official_check_in_completed_at.is_not(None),
        ]
        if target_kind is not None:
            filters.append(CheckInORM.target_kind == TargetKind(target_kind).value)
        if since is not None:
            filters.append(CheckInORM.official_check_in_completed_at >= since)
        return self.list(*filters, order_by=[CheckInORM.official_check_in_completed_at.desc()])

    # -------- Registry --------

    @log_op("check_in.assert_single_open")
    def assert_single_open(self, teammate_id: int, target_kind: TargetKind, target_id: int) -> None:
        existing = self.get_open(teammate_id, target_kind, target_id)
        if existing is not None:
            raise DuplicateOpenReview(
                teammate_id, TargetKind(target_kind).value, target_id, existing_id=existing.id
            )

    @log_op("check_in.create_open")
    def create_open(
        self, teammate_id: int, target_kind: TargetKind, target_id: int, started_on: date
    ) -> CheckInORM:
        """Insert a new open check-in; ``DuplicateOpenReview`` if one already exists."""
        kind = TargetKind(target_kind)
        self.assert_single_open(teammate_id, kind, target_id)
        try:
            with self.s.begin_nested():
                record = CheckInORM(
                    teammate_id=teammate_id,
                    target_kind=kind.value,
                    target_id=target_id,
                    check_in_started_on=started_on,
                    open_slot=True,
                )
                self.s.add(record)
                self.s.flush()
        except SQLIntegrityError as e:
            winner = self.get_open(teammate_id, kind, target_id)
            if winner is None:
                self._handle_error(e, "create_open_check_in")
            raise DuplicateOpenReview(teammate_id, kind.value, target_id, existing_id=winner.id) from e
        return record

    @log_op("check_in.open_or_create")
    def open_or_create(
        self, teammate_id: int, target_kind: TargetKind, target_id: int, started_on: date
    ) -> tuple[CheckInORM, bool]:
        """
        Return the open check-in for the pair, creating it if absent.

        Returns ``(record, created)``. A concurrent insert that lands first is
        returned instead of raising.
        """
        existing = self.get_open(teammate_id, target_kind, target_id)
        if existing is not None:
            return existing, False
        try:
            return self.create_open(teammate_id, target_kind, target_id, started_on), True
        except DuplicateOpenReview as dup:
            self.logger.info(
                f"Concurrent open check-in for teammate {teammate_id}; returning #{dup.existing_id}"
            )
            return self.get_by_id_required(dup.existing_id), False

    # -------- Write --------

    @log_op("check_in.write_side")
    def write_side(
        self, record: CheckInORM, side: Side, values: EmployeeSide | ManagerSide
    ) -> CheckInORM:
        prefix = Side(side).value
        fields: dict[str, Any] = {
            f"{prefix}_rating": values.rating,
            f"{prefix}_private_notes": values.private_notes,
            f"{prefix}_completed_at": values.completed_at,
        }
        if isinstance(values, EmployeeSide):
            fields["actual_energy_percentage"] = values.actual_energy_percentage
            fields["employee_personal_alignment"] = values.personal_alignment
        else:
            fields["manager_completed_by_id"] = values.completed_by_id
        try:
            return self.update(record, **fields)
        except SQLIntegrityError as e:
            self._handle_error(e, "write_check_in_side")

    @log_op("check_in.close")
    def close(
        self,
        record: CheckInORM,
        *,
        official_rating: str,
        shared_notes: str | None,
        finalized_by_id: int,
        now: datetime,
    ) -> CheckInORM:
        """Write the official side and release the open slot."""
        return self.update(
            record,
            official_rating=official_rating,
            shared_notes=shared_notes,
            official_check_in_completed_at=now,
            finalized_by_id=finalized_by_id,
            open_slot=None,
        )

    @log_op("check_in.link_snapshot")
    def link_snapshot(self, records: builtins.list[CheckInORM], snapshot_id: int) -> None:
        for record in records:
            record.snapshot_id = snapshot_id
        self.s.flush()

