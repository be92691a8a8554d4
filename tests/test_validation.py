from checkins.domain.models import PersonalAlignment, SideStatus
from checkins.domain.schemas import (
    AcknowledgeManyInput,
    FinalizationInput,
    OpenCheckInInput,
    SideUpdateInput,
    validate_input,
)


def test_side_update_defaults_to_draft():
    result = validate_input(SideUpdateInput, {"rating": "meeting"})
    assert result.success is True
    assert result.data == {"rating": "meeting"}
    assert SideUpdateInput(rating="meeting").status is SideStatus.DRAFT


def test_side_update_strips_markup():
    result = validate_input(
        SideUpdateInput,
        {"private_notes": "<b>Solid</b> quarter<script>alert(1)</script>"},
    )
    assert result.success is True
    assert result.data["private_notes"] == "Solid quarter"


def test_side_update_rejects_bad_values():
    result = validate_input(
        SideUpdateInput,
        {"rating": "", "actual_energy_percentage": 101, "personal_alignment": "hate"},
    )
    assert result.success is False
    fields = {e.field for e in result.errors}
    assert fields == {"rating", "actual_energy_percentage", "personal_alignment"}


def test_side_update_parses_alignment():
    result = validate_input(SideUpdateInput, {"personal_alignment": "prefer_not"})
    assert result.data["personal_alignment"] is PersonalAlignment.PREFER_NOT


def test_open_check_in_input():
    assert validate_input(OpenCheckInInput, {"target_kind": "aspiration", "target_id": 4}).success
    assert not validate_input(OpenCheckInInput, {"target_kind": "goal", "target_id": 4}).success
    assert not validate_input(OpenCheckInInput, {"target_kind": "position", "target_id": 0}).success


def test_finalization_input():
    ok = validate_input(
        FinalizationInput,
        {"selections": [{"check_in_id": 1, "official_rating": 3}], "reason": "Q1"},
    )
    assert ok.success is True

    empty = validate_input(FinalizationInput, {"selections": []})
    assert empty.success is False
    assert empty.errors[0].field == "selections"


def test_acknowledge_many_dedupes():
    result = validate_input(AcknowledgeManyInput, {"snapshot_ids": [3, 1, 3]})
    assert result.data["snapshot_ids"] == [3, 1]
    assert not validate_input(AcknowledgeManyInput, {"snapshot_ids": [0]}).success
