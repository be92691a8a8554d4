from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "test")

from dataclasses import dataclass
from datetime import date

import pytest
from sqlalchemy.orm import Session

from checkins.application.collaborators import (
    Collaborators,
    EmploymentTenureSuccession,
    LoggingNotificationDispatcher,
    TenureManagerAuthorization,
)
from checkins.application.api import complete_side, open_check_in
from checkins.domain.models import Side, TargetKind
from checkins.infrastructure.config import CheckInConfig, reset_settings
from checkins.infrastructure.db import create_memory_engine, create_session_factory
from checkins.infrastructure.models import (
    AspirationORM,
    AssignmentORM,
    CheckInORM,
    EmploymentTenureORM,
    PersonORM,
    PositionORM,
    TeammateORM,
    Base,
)
from checkins.infrastructure.repositories import (
    OrganizationRepo,
    PersonRepo,
    TargetRepo,
    TeammateRepo,
    TenureRepo,
)


@dataclass
class World:
    """A small organization: one employee reporting to one manager, plus an admin and an outsider."""

    employee: PersonORM
    manager: PersonORM
    admin: PersonORM
    outsider: PersonORM
    teammate: TeammateORM
    position: PositionORM
    assignments: list[AssignmentORM]
    aspiration: AspirationORM
    tenure: EmploymentTenureORM
    collaborators: Collaborators


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def engine():
    engine = create_memory_engine()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory) -> Session:
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def world(session: Session) -> World:
    org = OrganizationRepo(session).create(name="Acme")
    people = PersonRepo(session)
    employee = people.create(full_name="Ana Employee", email="ana@example.com")
    manager = people.create(full_name="Max Manager", email="max@example.com")
    admin = people.create(full_name="Ada Admin", email="ada@example.com")
    outsider = people.create(full_name="Oli Outsider", email="oli@example.com")

    teammates = TeammateRepo(session)
    teammate = teammates.enroll(org, employee)
    teammates.enroll(org, manager)

    targets = TargetRepo(session)
    position = targets.create(TargetKind.POSITION, org.id, "Engineer II")
    assignments = [
        targets.create(TargetKind.ASSIGNMENT, org.id, "On-call rotation"),
        targets.create(TargetKind.ASSIGNMENT, org.id, "Release management"),
    ]
    aspiration = targets.create(TargetKind.ASPIRATION, org.id, "Mentorship")

    tenure = TenureRepo(session).start(
        teammate_id=teammate.id,
        position_id=position.id,
        manager_id=manager.id,
        started_at=date(2025, 1, 6),
    )
    session.commit()

    collaborators = Collaborators(
        succession=EmploymentTenureSuccession(),
        authorization=TenureManagerAuthorization(
            config=CheckInConfig(admin_person_ids=[admin.id])
        ),
        notifier=LoggingNotificationDispatcher(enabled=True),
    )
    return World(
        employee=employee,
        manager=manager,
        admin=admin,
        outsider=outsider,
        teammate=teammate,
        position=position,
        assignments=assignments,
        aspiration=aspiration,
        tenure=tenure,
        collaborators=collaborators,
    )


@pytest.fixture
def open_for(session: Session, world: World):
    """Open (or fetch) a check-in for the world's teammate as the employee."""

    def _open(kind: TargetKind, target_id: int) -> CheckInORM:
        return open_check_in(
            session,
            world.employee.id,
            world.teammate.id,
            kind,
            target_id,
            collaborators=world.collaborators,
        )

    return _open


@pytest.fixture
def make_ready(session: Session, world: World, open_for):
    """Open a check-in and complete both sides."""

    def _ready(kind: TargetKind, target_id: int, employee_rating, manager_rating) -> CheckInORM:
        record = open_for(kind, target_id)
        complete_side(
            session,
            world.employee.id,
            record.id,
            Side.EMPLOYEE,
            rating=employee_rating,
            collaborators=world.collaborators,
        )
        complete_side(
            session,
            world.manager.id,
            record.id,
            Side.MANAGER,
            rating=manager_rating,
            collaborators=world.collaborators,
        )
        return record

    return _ready
