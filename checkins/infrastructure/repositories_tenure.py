# checkins/infrastructure/repositories_tenure.py
from __future__ import annotations

import builtins
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from .logging import log_database_operation as log_op
from .models import EmploymentTenureORM
from .repositories_base import BaseRepository as GenericBaseRepository


class TenureRepo(GenericBaseRepository[EmploymentTenureORM]):
    model = EmploymentTenureORM

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("tenure.active_for")
    def active_for(self, teammate_id: int) -> EmploymentTenureORM | None:
        stmt = (
            select(EmploymentTenureORM)
            .where(
                EmploymentTenureORM.teammate_id == teammate_id,
                EmploymentTenureORM.ended_at.is_(None),
            )
            .order_by(EmploymentTenureORM.started_at.desc(), EmploymentTenureORM.id.desc())
            .limit(1)
        )
        return self.s.scalars(stmt).one_or_none()

    @log_op("tenure.list_for")
    def list_for(self, teammate_id: int) -> builtins.list[EmploymentTenureORM]:
        return self.list(
            EmploymentTenureORM.teammate_id == teammate_id,
            order_by=[EmploymentTenureORM.started_at, EmploymentTenureORM.id],
        )

    @log_op("tenure.start")
    def start(
        self,
        teammate_id: int,
        position_id: int,
        started_at: date,
        manager_id: int | None = None,
        **fields: Any,
    ) -> EmploymentTenureORM:
        return self.create(
            teammate_id=teammate_id,
            position_id=position_id,
            manager_id=manager_id,
            started_at=started_at,
            **fields,
        )

    @log_op("tenure.end")
    def end(
        self, tenure: EmploymentTenureORM, ended_at: date, official_position_rating: int | None
    ) -> EmploymentTenureORM:
        return self.update(
            tenure, ended_at=ended_at, official_position_rating=official_position_rating
        )
