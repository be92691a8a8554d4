from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from checkins.domain.gate import OtherParticipantDisplayMode, Transition, ViewerDisplayMode
from checkins.domain.models import CompositeState, Side, SideState, SideStatus, TargetKind


# Present only once both sides are complete (other_side) or the record is finalized (official)
WITHHELD_FIELDS = frozenset({"other_side", "official"})


class CheckInView(BaseModel):
    check_in_id: int
    teammate_id: int
    target_kind: TargetKind
    target_id: int
    viewer: Side
    state: CompositeState
    own_side: dict[str, Any]
    own_side_state: SideState
    other_side_completed: bool
    viewer_display_mode: ViewerDisplayMode
    other_participant_display_mode: OtherParticipantDisplayMode
    allowed_transitions: list[Transition] = Field(default_factory=list)
    other_side: Optional[dict[str, Any]] = None
    official: Optional[dict[str, Any]] = None
    snapshot_id: Optional[int] = None


class OpenCheckInRequest(BaseModel):
    target_kind: TargetKind
    target_id: int
    started_on: Optional[date] = None


class SideUpdateRequest(BaseModel):
    status: SideStatus = SideStatus.DRAFT
    rating: Optional[str | int] = None
    private_notes: Optional[str] = None
    actual_energy_percentage: Optional[int] = None
    personal_alignment: Optional[str] = None


class FinalizationSelectionRequest(BaseModel):
    check_in_id: int
    official_rating: Optional[str | int] = None
    shared_notes: Optional[str] = None


class FinalizationRequest(BaseModel):
    selections: list[FinalizationSelectionRequest]
    reason: Optional[str] = None


class SelectionOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    check_in_id: int
    target_kind: Optional[TargetKind] = None
    target_id: Optional[int] = None
    official_rating: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None


class FinalizationResponse(BaseModel):
    success: bool
    snapshot_id: Optional[int] = None
    finalized: list[SelectionOutcomeResponse] = Field(default_factory=list)
    skipped: list[SelectionOutcomeResponse] = Field(default_factory=list)
    summary: str


class SnapshotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    teammate_id: int
    finalized_by_id: int
    change_type: str
    reason: Optional[str] = None
    decision_data: dict[str, Any]
    employee_acknowledged_at: Optional[datetime] = None
    created_at: datetime


class AcknowledgeManyRequest(BaseModel):
    snapshot_ids: list[int] = Field(min_length=1)


class AcknowledgeManyResponse(BaseModel):
    acknowledged: int
