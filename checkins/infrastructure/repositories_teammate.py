# checkins/infrastructure/repositories_teammate.py
from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from ..domain.models import TargetKind
from .exceptions import TargetNotFoundError, TeammateNotFoundError
from .logging import log_database_operation as log_op
from .models import (
    AspirationORM,
    AssignmentORM,
    OrganizationORM,
    PersonORM,
    PositionORM,
    TeammateORM,
)
from .repositories_base import BaseRepository as GenericBaseRepository

TARGET_MODELS: dict[TargetKind, type[PositionORM | AssignmentORM | AspirationORM]] = {
    TargetKind.POSITION: PositionORM,
    TargetKind.ASSIGNMENT: AssignmentORM,
    TargetKind.ASPIRATION: AspirationORM,
}


class TeammateRepo(GenericBaseRepository[TeammateORM]):
    model = TeammateORM
    not_found = TeammateNotFoundError

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("teammate.get_required")
    def get_by_id_required(self, id_: Any) -> TeammateORM:
        return super().get_by_id_required(id_)

    @log_op("teammate.enroll")
    def enroll(self, organization: OrganizationORM, person: PersonORM) -> TeammateORM:
        return self.create(organization_id=organization.id, person_id=person.id)


class PersonRepo(GenericBaseRepository[PersonORM]):
    model = PersonORM

    @log_op("person.create")
    def create(self, **fields: Any) -> PersonORM:
        return super().create(**fields)


class OrganizationRepo(GenericBaseRepository[OrganizationORM]):
    model = OrganizationORM

    @log_op("organization.create")
    def create(self, **fields: Any) -> OrganizationORM:
        return super().create(**fields)


class TargetRepo:
    """Lookup across the three target tables."""

    def __init__(self, session: Session):
        self.s = session

    @log_op("target.get_required")
    def get_required(
        self, kind: TargetKind, target_id: int, organization_id: int | None = None
    ) -> PositionORM | AssignmentORM | AspirationORM:
        target = self.s.get(TARGET_MODELS[TargetKind(kind)], target_id)
        if target is None or (
            organization_id is not None and target.organization_id != organization_id
        ):
            raise TargetNotFoundError(f"{TargetKind(kind).value}:{target_id}")
        return target

    def label(self, kind: TargetKind, target_id: int) -> str:
        target = self.s.get(TARGET_MODELS[TargetKind(kind)], target_id)
        if target is None:
            return f"{TargetKind(kind).value} #{target_id}"
        return getattr(target, "title", None) or getattr(target, "name")

    @log_op("target.create")
    def create(self, kind: TargetKind, organization_id: int, title: str):
        model = TARGET_MODELS[TargetKind(kind)]
        field = "name" if model is AspirationORM else "title"
        obj = model(organization_id=organization_id, **{field: title})
        self.s.add(obj)
        self.s.flush()
        return obj
