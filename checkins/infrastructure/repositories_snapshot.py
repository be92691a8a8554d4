# checkins/infrastructure/repositories_snapshot.py
from __future__ import annotations

import builtins
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from .exceptions import SnapshotNotFoundError
from .logging import log_database_operation as log_op
from .models import DecisionSnapshotORM
from .repositories_base import BaseRepository as GenericBaseRepository


class SnapshotRepo(GenericBaseRepository[DecisionSnapshotORM]):
    """Decision snapshots: written once per finalization, then only acknowledged."""

    model = DecisionSnapshotORM
    not_found = SnapshotNotFoundError

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("snapshot.get_required")
    def get_by_id_required(self, id_: Any) -> DecisionSnapshotORM:
        return super().get_by_id_required(id_)

    @log_op("snapshot.create")
    def create_for_batch(
        self,
        *,
        organization_id: int,
        teammate_id: int,
        finalized_by_id: int,
        change_type: str,
        decision_data: dict[str, Any],
        reason: str | None = None,
        request_info: dict[str, Any] | None = None,
        created_at: datetime | None = None,
    ) -> DecisionSnapshotORM:
        fields: dict[str, Any] = {
            "organization_id": organization_id,
            "teammate_id": teammate_id,
            "finalized_by_id": finalized_by_id,
            "change_type": change_type,
            "decision_data": decision_data,
            "reason": reason,
            "request_info": request_info,
        }
        if created_at is not None:
            fields["created_at"] = created_at
        return self.create(**fields)

    @log_op("snapshot.list_for_teammate")
    def list_for_teammate(self, teammate_id: int) -> builtins.list[DecisionSnapshotORM]:
        """Newest first."""
        return self.list(
            DecisionSnapshotORM.teammate_id == teammate_id,
            order_by=[DecisionSnapshotORM.created_at.desc(), DecisionSnapshotORM.id.desc()],
        )

    @log_op("snapshot.pending_for_teammate")
    def pending_for_teammate(self, teammate_id: int) -> builtins.list[DecisionSnapshotORM]:
        return self.list(
            DecisionSnapshotORM.teammate_id == teammate_id,
            DecisionSnapshotORM.employee_acknowledged_at.is_(None),
            order_by=[DecisionSnapshotORM.created_at.desc(), DecisionSnapshotORM.id.desc()],
        )

    @log_op("snapshot.get_many")
    def get_many(self, ids: builtins.list[int]) -> builtins.list[DecisionSnapshotORM]:
        if not ids:
            return []
        stmt = select(DecisionSnapshotORM).where(DecisionSnapshotORM.id.in_(ids))
        return list(self.s.scalars(stmt).all())

    @log_op("snapshot.acknowledge")
    def acknowledge(self, snapshot: DecisionSnapshotORM, now: datetime) -> bool:
        """Stamp acknowledgement once; returns False when it was already set."""
        if snapshot.employee_acknowledged_at is not None:
            return False
        self.update(snapshot, employee_acknowledged_at=now)
        return True
