from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from checkins.application.api import open_check_in
from checkins.domain.models import TargetKind
from checkins.infrastructure.exceptions import (
    DuplicateOpenReview,
    Forbidden,
    InvalidTransition,
    TargetNotFoundError,
    TeammateNotFoundError,
    ValidationError,
)
from checkins.infrastructure.models import CheckInORM, utcnow
from checkins.infrastructure.repositories import CheckInRepo


def _open_count(session, teammate_id: int) -> int:
    return session.scalar(
        select(func.count())
        .select_from(CheckInORM)
        .where(CheckInORM.teammate_id == teammate_id, CheckInORM.open_slot.is_(True))
    )


def test_open_check_in_is_idempotent(session, world, open_for):
    first = open_for(TargetKind.POSITION, world.position.id)
    second = open_check_in(
        session,
        world.manager.id,
        world.teammate.id,
        "position",
        world.position.id,
        collaborators=world.collaborators,
    )
    assert first.id == second.id
    assert _open_count(session, world.teammate.id) == 1


def test_create_open_rejects_second_open_record(session, world, open_for):
    existing = open_for(TargetKind.ASSIGNMENT, world.assignments[0].id)
    repo = CheckInRepo(session)

    with pytest.raises(DuplicateOpenReview) as exc_info:
        repo.create_open(world.teammate.id, TargetKind.ASSIGNMENT, world.assignments[0].id, date.today())
    assert exc_info.value.existing_id == existing.id


def test_unique_constraint_backs_the_registry(session, world, open_for):
    open_for(TargetKind.ASPIRATION, world.aspiration.id)
    session.add(
        CheckInORM(
            teammate_id=world.teammate.id,
            target_kind="aspiration",
            target_id=world.aspiration.id,
            check_in_started_on=date.today(),
            open_slot=True,
        )
    )
    with pytest.raises(IntegrityError):
        session.flush()
    session.rollback()
    assert _open_count(session, world.teammate.id) == 1


def test_same_target_different_kind_is_independent(session, world, open_for):
    position = open_for(TargetKind.POSITION, world.position.id)
    assignment = open_for(TargetKind.ASSIGNMENT, world.assignments[0].id)
    assert position.id != assignment.id


def test_new_record_after_finalization(session, world, open_for):
    record = open_for(TargetKind.ASPIRATION, world.aspiration.id)
    CheckInRepo(session).close(
        record,
        official_rating="meeting",
        shared_notes=None,
        finalized_by_id=world.manager.id,
        now=utcnow(),
    )
    session.commit()

    fresh = open_for(TargetKind.ASPIRATION, world.aspiration.id)
    assert fresh.id != record.id
    assert fresh.is_open


def test_finalized_record_is_read_only(session, world, open_for):
    record = open_for(TargetKind.ASPIRATION, world.aspiration.id)
    CheckInRepo(session).close(
        record,
        official_rating="meeting",
        shared_notes=None,
        finalized_by_id=world.manager.id,
        now=utcnow(),
    )
    session.commit()

    record.employee_private_notes = "rewrite history"
    with pytest.raises(InvalidTransition):
        session.flush()
    session.rollback()


def test_open_validates_references(session, world):
    with pytest.raises(ValidationError):
        open_check_in(session, world.employee.id, world.teammate.id, "goal", 1, collaborators=world.collaborators)
    with pytest.raises(TeammateNotFoundError):
        open_check_in(session, world.employee.id, 999, "position", world.position.id, collaborators=world.collaborators)
    with pytest.raises(TargetNotFoundError):
        open_check_in(session, world.employee.id, world.teammate.id, "assignment", 999, collaborators=world.collaborators)


def test_outsider_cannot_open(session, world):
    with pytest.raises(Forbidden):
        open_check_in(
            session,
            world.outsider.id,
            world.teammate.id,
            "position",
            world.position.id,
            collaborators=world.collaborators,
        )
