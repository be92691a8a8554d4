from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from checkins.domain.models import TargetKind
from checkins.infrastructure.models import Base, OrganizationORM
from checkins.infrastructure.repositories import (
    OrganizationRepo,
    PersonRepo,
    TargetRepo,
    TeammateRepo,
    TenureRepo,
)


def initialise_database(engine: Engine) -> bool:
    """
    Ensure all ORM tables exist.

    Returns:
        True if every table already existed before this call, False if at least one table
        needed to be created.
    """

    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())
    expected_tables = [table.name for table in Base.metadata.sorted_tables]
    already_exists = all(table in existing_tables for table in expected_tables)
    Base.metadata.create_all(engine)
    return already_exists


DEMO_ASSIGNMENTS = ["Incident response rotation", "Quarterly planning", "Hiring loop"]
DEMO_ASPIRATIONS = ["Customer focus", "Clear communication"]


def seed_demo(
    session: Session, organization_name: str = "Demo Co", started_at: date | None = None
) -> dict[str, Any]:
    """
    Create a small organization: one manager, one employee on a position
    tenure under that manager, a few assignments and aspirations.

    Idempotent on the organization name; returns the ids it created or found.
    """
    existing = session.scalars(
        select(OrganizationORM).where(OrganizationORM.name == organization_name)
    ).one_or_none()
    if existing is not None:
        return {"organization_id": existing.id, "created": False}

    org = OrganizationRepo(session).create(name=organization_name)
    people = PersonRepo(session)
    manager = people.create(full_name="Morgan Manager")
    employee = people.create(full_name="Emery Employee")

    teammates = TeammateRepo(session)
    teammates.enroll(org, manager)
    teammate = teammates.enroll(org, employee)

    targets = TargetRepo(session)
    position = targets.create(TargetKind.POSITION, org.id, "Software Engineer II")
    assignments = [targets.create(TargetKind.ASSIGNMENT, org.id, t) for t in DEMO_ASSIGNMENTS]
    aspirations = [targets.create(TargetKind.ASPIRATION, org.id, n) for n in DEMO_ASPIRATIONS]

    TenureRepo(session).start(
        teammate_id=teammate.id,
        position_id=position.id,
        manager_id=manager.id,
        started_at=started_at or date.today(),
    )

    return {
        "organization_id": org.id,
        "manager_person_id": manager.id,
        "employee_person_id": employee.id,
        "teammate_id": teammate.id,
        "position_id": position.id,
        "assignment_ids": [a.id for a in assignments],
        "aspiration_ids": [a.id for a in aspirations],
        "created": True,
    }
