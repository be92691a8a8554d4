from __future__ import annotations

from datetime import date, datetime

import pytest

from checkins.application.api import complete_side, reopen_side, save_side, view_check_in
from checkins.domain.models import (
    ChangeType,
    CheckIn,
    CompositeState,
    EmployeeSide,
    ManagerSide,
    OfficialSide,
    Side,
    SideState,
    TargetKind,
)
from checkins.domain.services import (
    allowed_ratings,
    change_type_for,
    composite_state,
    ineligibility_reason,
    parse_rating,
    plan_side_update,
    side_state,
)
from checkins.infrastructure.exceptions import (
    Forbidden,
    InvalidRating,
    InvalidTransition,
    ValidationError,
)

NOW = datetime(2026, 3, 2, 9, 30)


def _check_in(kind=TargetKind.ASSIGNMENT, employee=None, manager=None, official=None) -> CheckIn:
    return CheckIn(
        id=1,
        teammate_id=10,
        target_kind=kind,
        target_id=5,
        started_on=date(2026, 3, 1),
        employee=employee or EmployeeSide(),
        manager=manager or ManagerSide(),
        official=official or OfficialSide(),
    )


class TestRatingVocabulary:
    def test_position_accepts_int_string_and_name(self):
        assert parse_rating(TargetKind.POSITION, 3) == "3"
        assert parse_rating(TargetKind.POSITION, "0") == "0"
        assert parse_rating("position", "looking_to_reward") == "3"

    def test_position_rejects_out_of_range_and_bool(self):
        with pytest.raises(InvalidRating):
            parse_rating(TargetKind.POSITION, 4)
        with pytest.raises(InvalidRating):
            parse_rating(TargetKind.POSITION, True)

    def test_categorical_rejects_position_values(self):
        with pytest.raises(InvalidRating):
            parse_rating(TargetKind.ASSIGNMENT, 2)
        with pytest.raises(InvalidRating):
            parse_rating(TargetKind.ASPIRATION, "looking_to_reward")

    def test_position_rejects_categorical_values(self):
        with pytest.raises(InvalidRating) as exc_info:
            parse_rating(TargetKind.POSITION, "meeting")
        assert exc_info.value.field == "rating"

    def test_allowed_ratings(self):
        assert allowed_ratings(TargetKind.POSITION) == ["0", "1", "2", "3"]
        assert allowed_ratings(TargetKind.ASPIRATION) == ["working_to_meet", "meeting", "exceeding"]


class TestDerivedState:
    def test_fresh_record_is_both_pending(self):
        check_in = _check_in()
        assert side_state(check_in, Side.EMPLOYEE) is SideState.NOT_STARTED
        assert composite_state(check_in) is CompositeState.BOTH_PENDING

    def test_notes_only_counts_as_drafted(self):
        check_in = _check_in(employee=EmployeeSide(private_notes="thinking"))
        assert side_state(check_in, Side.EMPLOYEE) is SideState.DRAFTED

    def test_one_and_both_sides(self):
        one = _check_in(manager=ManagerSide(rating="meeting", completed_at=NOW))
        assert composite_state(one) is CompositeState.ONE_SIDE_READY
        assert ineligibility_reason(one) == "waiting on employee completion"

        both = _check_in(
            employee=EmployeeSide(rating="meeting", completed_at=NOW),
            manager=ManagerSide(rating="meeting", completed_at=NOW),
        )
        assert composite_state(both) is CompositeState.READY_FOR_FINALIZATION
        assert ineligibility_reason(both) is None

    def test_official_completion_wins(self):
        check_in = _check_in(official=OfficialSide(rating="meeting", completed_at=NOW))
        assert composite_state(check_in) is CompositeState.FINALIZED
        assert ineligibility_reason(check_in) == "already finalized"


class TestPlanSideUpdate:
    def test_none_leaves_fields_unchanged(self):
        check_in = _check_in(employee=EmployeeSide(rating="meeting", private_notes="keep"))
        updated = plan_side_update(check_in, Side.EMPLOYEE, actor_id=1, now=NOW)
        assert updated.rating == "meeting"
        assert updated.private_notes == "keep"

    def test_empty_notes_clear(self):
        check_in = _check_in(employee=EmployeeSide(private_notes="old"))
        updated = plan_side_update(check_in, Side.EMPLOYEE, actor_id=1, now=NOW, private_notes="")
        assert updated.private_notes is None

    def test_complete_requires_rating(self):
        with pytest.raises(InvalidTransition):
            plan_side_update(_check_in(), Side.MANAGER, actor_id=2, now=NOW, status="complete")

    def test_complete_stamps_manager(self):
        updated = plan_side_update(
            _check_in(), Side.MANAGER, actor_id=2, now=NOW, status="complete", rating="exceeding"
        )
        assert updated.completed_at == NOW
        assert updated.completed_by_id == 2

    def test_recomplete_keeps_original_timestamp(self):
        earlier = datetime(2026, 2, 1)
        check_in = _check_in(employee=EmployeeSide(rating="meeting", completed_at=earlier))
        updated = plan_side_update(
            check_in, Side.EMPLOYEE, actor_id=1, now=NOW, status="complete", rating="exceeding"
        )
        assert updated.completed_at == earlier
        assert updated.rating == "exceeding"

    def test_finalized_is_immutable(self):
        check_in = _check_in(official=OfficialSide(rating="meeting", completed_at=NOW))
        with pytest.raises(InvalidTransition):
            plan_side_update(check_in, Side.EMPLOYEE, actor_id=1, now=NOW, rating="meeting")

    def test_energy_only_on_employee_assignment(self):
        updated = plan_side_update(
            _check_in(),
            Side.EMPLOYEE,
            actor_id=1,
            now=NOW,
            actual_energy_percentage=40,
            personal_alignment="like",
        )
        assert updated.actual_energy_percentage == 40
        assert updated.personal_alignment == "like"

        with pytest.raises(ValidationError):
            plan_side_update(
                _check_in(kind=TargetKind.ASPIRATION),
                Side.EMPLOYEE,
                actor_id=1,
                now=NOW,
                actual_energy_percentage=40,
            )
        with pytest.raises(ValidationError):
            plan_side_update(
                _check_in(), Side.MANAGER, actor_id=2, now=NOW, personal_alignment="love"
            )


def test_change_type_for():
    assert change_type_for({TargetKind.POSITION}) is ChangeType.POSITION_TENURE
    assert change_type_for({TargetKind.ASSIGNMENT}) is ChangeType.ASSIGNMENT_MANAGEMENT
    assert change_type_for({TargetKind.ASPIRATION}) is ChangeType.ASPIRATION_MANAGEMENT
    assert (
        change_type_for({TargetKind.POSITION, TargetKind.ASSIGNMENT})
        is ChangeType.BULK_CHECK_IN_FINALIZATION
    )


class TestSideWorkflow:
    def test_draft_then_complete(self, session, world, open_for):
        record = open_for(TargetKind.ASSIGNMENT, world.assignments[0].id)
        employee = world.employee.id

        view = save_side(
            session,
            employee,
            record.id,
            "employee",
            rating="working_to_meet",
            collaborators=world.collaborators,
        )
        assert view.own_side_state is SideState.DRAFTED

        view = complete_side(
            session,
            employee,
            record.id,
            "employee",
            rating="meeting",
            collaborators=world.collaborators,
        )
        assert view.own_side["rating"] == "meeting"
        assert view.own_side["completed_at"] is not None
        assert view.state is CompositeState.ONE_SIDE_READY

    def test_complete_make_changes_complete(self, session, world, open_for):
        record = open_for(TargetKind.ASPIRATION, world.aspiration.id)
        manager = world.manager.id

        complete_side(
            session, manager, record.id, "manager", rating="meeting", collaborators=world.collaborators
        )
        view = reopen_side(session, manager, record.id, "manager", collaborators=world.collaborators)
        assert view.own_side_state is SideState.DRAFTED
        assert view.own_side["rating"] == "meeting"
        assert view.own_side["completed_at"] is None
        assert view.own_side["completed_by_id"] is None

        view = complete_side(
            session, manager, record.id, "manager", collaborators=world.collaborators
        )
        assert view.own_side_state is SideState.COMPLETED
        assert view.own_side["completed_by_id"] == manager

    def test_invalid_rating_leaves_record_unchanged(self, session, world, open_for):
        record = open_for(TargetKind.POSITION, world.position.id)
        with pytest.raises(InvalidRating):
            save_side(
                session,
                world.employee.id,
                record.id,
                "employee",
                rating="meeting",
                collaborators=world.collaborators,
            )
        view = view_check_in(session, world.employee.id, record.id, world.collaborators)
        assert view.own_side["rating"] is None

    def test_wrong_participant_for_side(self, session, world, open_for):
        record = open_for(TargetKind.POSITION, world.position.id)
        with pytest.raises(Forbidden):
            save_side(
                session, world.employee.id, record.id, "manager", rating=2,
                collaborators=world.collaborators,
            )
        with pytest.raises(Forbidden):
            save_side(
                session, world.manager.id, record.id, "employee", rating=2,
                collaborators=world.collaborators,
            )

    def test_energy_out_of_range_rejected(self, session, world, open_for):
        record = open_for(TargetKind.ASSIGNMENT, world.assignments[0].id)
        with pytest.raises(ValidationError):
            save_side(
                session,
                world.employee.id,
                record.id,
                "employee",
                actual_energy_percentage=150,
                collaborators=world.collaborators,
            )
