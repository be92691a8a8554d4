from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from checkins.application.api import (
    acknowledge,
    acknowledge_many,
    export_snapshot_history,
    finalize_check_ins,
    pending_acknowledgements,
    snapshot_history,
)
from checkins.application.collaborators import Collaborators
from checkins.domain.models import FinalizationSelection, NotificationEvent, TargetKind
from checkins.infrastructure.exceptions import Forbidden, SnapshotNotFoundError
from checkins.utils.exports import make_json_export_payload, make_xlsx_export_bytes


@pytest.fixture
def finalized(session, world, make_ready):
    """Two snapshots for the teammate: one assignment batch, one aspiration batch."""
    snapshot_ids = []
    for kind, target_id in (
        (TargetKind.ASSIGNMENT, world.assignments[0].id),
        (TargetKind.ASPIRATION, world.aspiration.id),
    ):
        record = make_ready(kind, target_id, "meeting", "exceeding")
        result = finalize_check_ins(
            session,
            world.manager.id,
            world.teammate.id,
            [FinalizationSelection(check_in_id=record.id, official_rating="exceeding", shared_notes="Great quarter")],
            collaborators=world.collaborators,
        )
        snapshot_ids.append(result.snapshot_id)
    return snapshot_ids


def test_acknowledge_is_idempotent(session, world, finalized):
    notifier = MagicMock()
    collaborators = Collaborators(
        succession=world.collaborators.succession,
        authorization=world.collaborators.authorization,
        notifier=notifier,
    )

    first = acknowledge(session, world.employee.id, finalized[0], collaborators)
    stamped = first.employee_acknowledged_at
    assert stamped is not None

    second = acknowledge(session, world.employee.id, finalized[0], collaborators)
    assert second.employee_acknowledged_at == stamped
    notifier.notify.assert_called_once_with(
        world.teammate.id, NotificationEvent.ACKNOWLEDGED, {"snapshot_ids": [finalized[0]]}
    )


def test_only_the_subject_acknowledges(session, world, finalized):
    with pytest.raises(Forbidden):
        acknowledge(session, world.manager.id, finalized[0], world.collaborators)
    assert all(s.employee_acknowledged_at is None for s in snapshot_history(
        session, world.manager.id, world.teammate.id, world.collaborators
    ))


def test_unknown_snapshot(session, world):
    with pytest.raises(SnapshotNotFoundError):
        acknowledge(session, world.employee.id, 12345, world.collaborators)


def test_acknowledge_many_counts_new_acknowledgements(session, world, finalized):
    acknowledge(session, world.employee.id, finalized[0], world.collaborators)

    count = acknowledge_many(
        session, world.employee.id, finalized + [finalized[1]], world.collaborators
    )
    assert count == 1
    assert pending_acknowledgements(session, world.employee.id, world.teammate.id, world.collaborators) == []


def test_history_is_newest_first(session, world, finalized):
    history = snapshot_history(session, world.employee.id, world.teammate.id, world.collaborators)
    assert [s.id for s in history] == list(reversed(finalized))


def test_export_excludes_private_notes(session, world, finalized):
    df = export_snapshot_history(session, world.manager.id, world.teammate.id, world.collaborators)

    assert len(df) == 2
    assert set(df["OfficialRating"]) == {"exceeding"}
    assert set(df["SharedNotes"]) == {"Great quarter"}
    assert not any("Private" in column for column in df.columns)
    assert set(df["Target"]) == {"On-call rotation", "Mentorship"}

    payload = make_json_export_payload(world.teammate.id, df)
    assert '"teammate_id": %d' % world.teammate.id in payload
    assert make_xlsx_export_bytes(df)[:2] == b"PK"


def test_outsider_cannot_read_history(session, world, finalized):
    with pytest.raises(Forbidden):
        snapshot_history(session, world.outsider.id, world.teammate.id, world.collaborators)
