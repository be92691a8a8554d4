from __future__ import annotations

from datetime import date, datetime
from unittest.mock import MagicMock

import pytest

from checkins.application.api import finalize_check_ins, save_side, view_check_in
from checkins.application.collaborators import Collaborators
from checkins.application.finalization import FinalizationCoordinator
from checkins.domain.models import (
    ChangeType,
    CompositeState,
    FinalizationSelection,
    NotificationEvent,
    TargetKind,
)
from checkins.infrastructure.exceptions import (
    BusinessLogicError,
    Forbidden,
    InvalidTransition,
    SnapshotConsistencyFailure,
    ValidationError,
)
from checkins.infrastructure.models import CheckInORM, DecisionSnapshotORM, utcnow
from checkins.infrastructure.repositories import SnapshotRepo, TenureRepo


def _snapshot_count(session) -> int:
    return session.query(DecisionSnapshotORM).count()


def _with(world, **overrides) -> Collaborators:
    base = world.collaborators
    return Collaborators(
        succession=overrides.get("succession", base.succession),
        authorization=overrides.get("authorization", base.authorization),
        notifier=overrides.get("notifier", base.notifier),
    )


def test_position_rating_three_rolls_tenure_forward(session, world, make_ready):
    record = make_ready(TargetKind.POSITION, world.position.id, 2, 3)

    result = finalize_check_ins(
        session,
        world.manager.id,
        world.teammate.id,
        [FinalizationSelection(check_in_id=record.id, official_rating=3, shared_notes="Promotion track")],
        collaborators=world.collaborators,
    )

    assert result.success is True
    assert [o.check_in_id for o in result.finalized] == [record.id]
    assert result.finalized[0].official_rating == "3"

    tenures = TenureRepo(session).list_for(world.teammate.id)
    assert len(tenures) == 2
    ended, successor = tenures
    today = utcnow().date()
    assert ended.official_position_rating == 3
    assert ended.ended_at == today
    assert successor.started_at == today
    assert successor.ended_at is None
    assert successor.official_position_rating is None
    assert successor.manager_id == world.manager.id

    snapshot = session.get(DecisionSnapshotORM, result.snapshot_id)
    assert snapshot.change_type == ChangeType.POSITION_TENURE.value
    assert snapshot.decision_data["employment_tenure"]["successor_tenure_id"] == successor.id
    assert [c["id"] for c in snapshot.decision_data["check_ins"]] == [record.id]

    refreshed = session.get(CheckInORM, record.id)
    assert refreshed.snapshot_id == snapshot.id
    assert refreshed.open_slot is None
    assert refreshed.official_rating == "3"


def test_only_selected_assignment_is_finalized(session, world, make_ready):
    first = make_ready(TargetKind.ASSIGNMENT, world.assignments[0].id, "meeting", "meeting")
    second = make_ready(TargetKind.ASSIGNMENT, world.assignments[1].id, "exceeding", "meeting")

    result = finalize_check_ins(
        session,
        world.manager.id,
        world.teammate.id,
        [{"check_in_id": first.id, "official_rating": "meeting"}],
        collaborators=world.collaborators,
    )

    assert result.success is True
    assert _snapshot_count(session) == 1
    snapshot = session.get(DecisionSnapshotORM, result.snapshot_id)
    assert snapshot.change_type == ChangeType.ASSIGNMENT_MANAGEMENT.value
    assert len(snapshot.decision_data["check_ins"]) == 1
    assert "employment_tenure" not in snapshot.decision_data

    untouched = view_check_in(session, world.manager.id, second.id, world.collaborators)
    assert untouched.state is CompositeState.READY_FOR_FINALIZATION
    assert len(TenureRepo(session).list_for(world.teammate.id)) == 1


def test_mixed_selection_reports_not_ready_records(session, world, make_ready, open_for):
    ready = make_ready(TargetKind.ASSIGNMENT, world.assignments[0].id, "meeting", "exceeding")
    pending = open_for(TargetKind.ASPIRATION, world.aspiration.id)
    save_side(
        session, world.employee.id, pending.id, "employee", rating="meeting",
        status="complete", collaborators=world.collaborators,
    )

    result = finalize_check_ins(
        session,
        world.manager.id,
        world.teammate.id,
        [
            FinalizationSelection(check_in_id=ready.id, official_rating="exceeding"),
            FinalizationSelection(check_in_id=pending.id, official_rating="meeting"),
        ],
        collaborators=world.collaborators,
    )

    assert result.success is True
    assert [o.check_in_id for o in result.finalized] == [ready.id]
    assert len(result.skipped) == 1
    skipped = result.skipped[0]
    assert skipped.check_in_id == pending.id
    assert skipped.error == "NotEligibleForFinalization"
    assert skipped.reason == "waiting on manager completion"
    assert "Skipped check-in" in result.summary()

    assert session.get(CheckInORM, pending.id).is_open


def test_rating_from_wrong_vocabulary_is_skipped(session, world, make_ready):
    record = make_ready(TargetKind.ASPIRATION, world.aspiration.id, "meeting", "meeting")

    result = finalize_check_ins(
        session,
        world.manager.id,
        world.teammate.id,
        [FinalizationSelection(check_in_id=record.id, official_rating=3)],
        collaborators=world.collaborators,
    )

    assert result.success is False
    assert result.snapshot_id is None
    assert result.skipped[0].error == "InvalidRating"
    assert _snapshot_count(session) == 0
    assert session.get(CheckInORM, record.id).is_open


def test_mixed_kinds_make_a_bulk_snapshot(session, world, make_ready):
    position = make_ready(TargetKind.POSITION, world.position.id, 2, 2)
    assignment = make_ready(TargetKind.ASSIGNMENT, world.assignments[0].id, "meeting", "meeting")

    result = finalize_check_ins(
        session,
        world.manager.id,
        world.teammate.id,
        [
            FinalizationSelection(check_in_id=position.id, official_rating=2),
            FinalizationSelection(check_in_id=assignment.id, official_rating="meeting"),
        ],
        collaborators=world.collaborators,
    )

    snapshot = session.get(DecisionSnapshotORM, result.snapshot_id)
    assert snapshot.change_type == ChangeType.BULK_CHECK_IN_FINALIZATION.value
    assert {c["target_kind"] for c in snapshot.decision_data["check_ins"]} == {
        "position",
        "assignment",
    }


def test_succession_failure_rolls_everything_back(session, world, make_ready):
    first = make_ready(TargetKind.POSITION, world.position.id, 1, 1)
    second = make_ready(TargetKind.ASSIGNMENT, world.assignments[0].id, "meeting", "meeting")

    succession = MagicMock()
    succession.end_and_succeed.side_effect = RuntimeError("tenure service down")

    with pytest.raises(SnapshotConsistencyFailure) as exc_info:
        finalize_check_ins(
            session,
            world.manager.id,
            world.teammate.id,
            [
                FinalizationSelection(check_in_id=first.id, official_rating=1),
                FinalizationSelection(check_in_id=second.id, official_rating="meeting"),
            ],
            collaborators=_with(world, succession=succession),
        )

    assert exc_info.value.check_in_ids == [first.id, second.id]
    assert _snapshot_count(session) == 0
    for record_id in (first.id, second.id):
        record = session.get(CheckInORM, record_id)
        assert record.is_open
        assert record.open_slot is True
        assert record.official_rating is None
    assert len(TenureRepo(session).list_for(world.teammate.id)) == 1


def test_succession_dates_follow_the_finalization_clock(session, world, make_ready):
    record = make_ready(TargetKind.POSITION, world.position.id, 3, 3)
    coordinator = FinalizationCoordinator(
        succession=world.collaborators.succession,
        authorization=world.collaborators.authorization,
        notifier=world.collaborators.notifier,
        clock=lambda: datetime(2025, 6, 30, 16, 45),
    )

    result = coordinator.finalize(
        session,
        world.manager.id,
        world.teammate.id,
        [FinalizationSelection(check_in_id=record.id, official_rating=3)],
    )

    ended, successor = TenureRepo(session).list_for(world.teammate.id)
    assert ended.ended_at == date(2025, 6, 30)
    assert successor.started_at == date(2025, 6, 30)
    snapshot = session.get(DecisionSnapshotORM, result.snapshot_id)
    assert snapshot.decision_data["employment_tenure"]["started_at"] == "2025-06-30"
    assert session.get(CheckInORM, record.id).official_check_in_completed_at == datetime(2025, 6, 30, 16, 45)


def test_snapshot_write_failure_rolls_everything_back(session, world, make_ready, monkeypatch):
    position = make_ready(TargetKind.POSITION, world.position.id, 2, 3)
    assignment = make_ready(TargetKind.ASSIGNMENT, world.assignments[0].id, "meeting", "meeting")

    def fail_to_write(self, **fields):
        raise RuntimeError("snapshot table unavailable")

    monkeypatch.setattr(SnapshotRepo, "create_for_batch", fail_to_write)

    with pytest.raises(SnapshotConsistencyFailure) as exc_info:
        finalize_check_ins(
            session,
            world.manager.id,
            world.teammate.id,
            [
                FinalizationSelection(check_in_id=position.id, official_rating=3),
                FinalizationSelection(check_in_id=assignment.id, official_rating="meeting"),
            ],
            collaborators=world.collaborators,
        )

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert _snapshot_count(session) == 0
    for record_id in (position.id, assignment.id):
        record = session.get(CheckInORM, record_id)
        assert record.is_open
        assert record.official_rating is None
        assert record.snapshot_id is None
    tenures = TenureRepo(session).list_for(world.teammate.id)
    assert len(tenures) == 1
    assert tenures[0].ended_at is None
    assert tenures[0].official_position_rating is None


def test_missing_tenure_is_a_consistency_failure(session, world, make_ready):
    record = make_ready(TargetKind.POSITION, world.position.id, 2, 2)
    TenureRepo(session).end(world.tenure, ended_at=world.tenure.started_at, official_position_rating=None)
    session.commit()

    with pytest.raises(SnapshotConsistencyFailure) as exc_info:
        finalize_check_ins(
            session,
            world.manager.id,
            world.teammate.id,
            [FinalizationSelection(check_in_id=record.id, official_rating=2)],
            collaborators=_with(world, authorization=MagicMock(can_manage=MagicMock(return_value=True))),
        )
    assert isinstance(exc_info.value.__cause__, BusinessLogicError)
    assert session.get(CheckInORM, record.id).is_open


def test_employee_cannot_finalize(session, world, make_ready):
    record = make_ready(TargetKind.ASSIGNMENT, world.assignments[0].id, "meeting", "meeting")

    with pytest.raises(Forbidden):
        finalize_check_ins(
            session,
            world.employee.id,
            world.teammate.id,
            [FinalizationSelection(check_in_id=record.id, official_rating="meeting")],
            collaborators=world.collaborators,
        )
    assert session.get(CheckInORM, record.id).is_open
    assert _snapshot_count(session) == 0


def test_notifier_failure_does_not_undo_finalization(session, world, make_ready):
    record = make_ready(TargetKind.ASSIGNMENT, world.assignments[0].id, "meeting", "meeting")
    notifier = MagicMock()
    notifier.notify.side_effect = RuntimeError("smtp unavailable")

    result = finalize_check_ins(
        session,
        world.manager.id,
        world.teammate.id,
        [FinalizationSelection(check_in_id=record.id, official_rating="meeting")],
        collaborators=_with(world, notifier=notifier),
    )

    assert result.success is True
    notifier.notify.assert_called_once()
    teammate_id, event, payload = notifier.notify.call_args.args
    assert teammate_id == world.teammate.id
    assert event is NotificationEvent.FINALIZED
    assert payload["snapshot_id"] == result.snapshot_id
    assert not session.get(CheckInORM, record.id).is_open


def test_finalized_record_rejects_edits(session, world, make_ready):
    record = make_ready(TargetKind.ASSIGNMENT, world.assignments[0].id, "meeting", "meeting")
    finalize_check_ins(
        session,
        world.manager.id,
        world.teammate.id,
        [FinalizationSelection(check_in_id=record.id, official_rating="meeting")],
        collaborators=world.collaborators,
    )

    with pytest.raises(InvalidTransition):
        save_side(
            session, world.employee.id, record.id, "employee", rating="exceeding",
            collaborators=world.collaborators,
        )


def test_selecting_twice_or_foreign_ids(session, world, make_ready):
    record = make_ready(TargetKind.ASSIGNMENT, world.assignments[0].id, "meeting", "meeting")

    result = finalize_check_ins(
        session,
        world.manager.id,
        world.teammate.id,
        [
            FinalizationSelection(check_in_id=record.id, official_rating="meeting"),
            FinalizationSelection(check_in_id=record.id, official_rating="exceeding"),
            FinalizationSelection(check_in_id=9999, official_rating="meeting"),
        ],
        collaborators=world.collaborators,
    )

    assert [o.check_in_id for o in result.finalized] == [record.id]
    assert [o.reason for o in result.skipped] == [
        "selected more than once",
        "check-in not found for this teammate",
    ]


def test_empty_selection_is_invalid(session, world):
    with pytest.raises(ValidationError):
        finalize_check_ins(
            session, world.manager.id, world.teammate.id, [], collaborators=world.collaborators
        )
