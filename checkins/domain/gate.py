"""
Blind-review projection of a check-in.

Each participant sees their own side, whether the other side is complete,
and the other side's content only once both sides are complete. Official
fields appear for both participants after finalization.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from .models import CheckIn, CompositeState, EmployeeSide, ManagerSide, Side, SideState
from .services import composite_state, side_state


class ViewerDisplayMode(str, Enum):
    SHOW_OPEN_FIELDS = "show_open_fields"
    SHOW_COMPLETE_SUMMARY = "show_complete_summary"


class OtherParticipantDisplayMode(str, Enum):
    SHOW_OTHER_PARTICIPANT_IS_COMPLETE = "show_other_participant_is_complete"
    SHOW_OTHER_PARTICIPANT_IS_INCOMPLETE = "show_other_participant_is_incomplete"


class Transition(str, Enum):
    SAVE_DRAFT = "save_draft"
    COMPLETE = "complete"
    MAKE_CHANGES = "make_changes"
    FINALIZE = "finalize"


@dataclass(slots=True)
class PerspectiveView:
    check_in_id: int
    teammate_id: int
    target_kind: str
    target_id: int
    viewer: Side
    state: CompositeState
    own_side: dict[str, Any]
    own_side_state: SideState
    other_side_completed: bool
    viewer_display_mode: ViewerDisplayMode
    other_participant_display_mode: OtherParticipantDisplayMode
    allowed_transitions: list[Transition] = field(default_factory=list)
    other_side: dict[str, Any] | None = None
    official: dict[str, Any] | None = None
    snapshot_id: int | None = None


def _side_content(values: EmployeeSide | ManagerSide, kind: str) -> dict[str, Any]:
    content = asdict(values)
    if kind != "assignment":
        content.pop("actual_energy_percentage", None)
        content.pop("personal_alignment", None)
    return content


class BlindPerspectiveGate:
    """Pure read-time projection; holds no state."""

    def viewer_display_mode(self, check_in: CheckIn, viewer: Side) -> ViewerDisplayMode:
        if side_state(check_in, viewer) is SideState.COMPLETED:
            return ViewerDisplayMode.SHOW_COMPLETE_SUMMARY
        return ViewerDisplayMode.SHOW_OPEN_FIELDS

    def other_participant_display_mode(
        self, check_in: CheckIn, viewer: Side
    ) -> OtherParticipantDisplayMode:
        if side_state(check_in, viewer.other) is SideState.COMPLETED:
            return OtherParticipantDisplayMode.SHOW_OTHER_PARTICIPANT_IS_COMPLETE
        return OtherParticipantDisplayMode.SHOW_OTHER_PARTICIPANT_IS_INCOMPLETE

    def allowed_transitions(self, check_in: CheckIn, viewer: Side) -> list[Transition]:
        state = composite_state(check_in)
        if state is CompositeState.FINALIZED:
            return []

        transitions = [Transition.SAVE_DRAFT]
        if side_state(check_in, viewer) is SideState.COMPLETED:
            transitions.append(Transition.MAKE_CHANGES)
        else:
            transitions.append(Transition.COMPLETE)
        if viewer is Side.MANAGER and state is CompositeState.READY_FOR_FINALIZATION:
            transitions.append(Transition.FINALIZE)
        return transitions

    def project(self, check_in: CheckIn, viewer: Side) -> PerspectiveView:
        viewer = Side(viewer)
        kind = check_in.target_kind.value
        state = composite_state(check_in)
        both_complete = state in (
            CompositeState.READY_FOR_FINALIZATION,
            CompositeState.FINALIZED,
        )

        official: dict[str, Any] | None = None
        if state is CompositeState.FINALIZED:
            official = asdict(check_in.official)

        return PerspectiveView(
            check_in_id=check_in.id,
            teammate_id=check_in.teammate_id,
            target_kind=kind,
            target_id=check_in.target_id,
            viewer=viewer,
            state=state,
            own_side=_side_content(check_in.side(viewer), kind),
            own_side_state=side_state(check_in, viewer),
            other_side_completed=side_state(check_in, viewer.other) is SideState.COMPLETED,
            viewer_display_mode=self.viewer_display_mode(check_in, viewer),
            other_participant_display_mode=self.other_participant_display_mode(check_in, viewer),
            allowed_transitions=self.allowed_transitions(check_in, viewer),
            other_side=_side_content(check_in.side(viewer.other), kind) if both_complete else None,
            official=official,
            snapshot_id=check_in.snapshot_id,
        )

