from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum, IntEnum


class TargetKind(str, Enum):
    POSITION = "position"
    ASSIGNMENT = "assignment"
    ASPIRATION = "aspiration"


class Side(str, Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"

    @property
    def other(self) -> Side:
        return Side.MANAGER if self is Side.EMPLOYEE else Side.EMPLOYEE


class SideState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    DRAFTED = "DRAFTED"
    COMPLETED = "COMPLETED"


class CompositeState(str, Enum):
    BOTH_PENDING = "BOTH_PENDING"
    ONE_SIDE_READY = "ONE_SIDE_READY"
    READY_FOR_FINALIZATION = "READY_FOR_FINALIZATION"
    FINALIZED = "FINALIZED"


class PositionRating(IntEnum):
    SPECIFIC_CONCERNS = 0
    ACTIVELY_COACHING = 1
    PRAISING_TRUSTING = 2
    LOOKING_TO_REWARD = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class CategoricalRating(str, Enum):
    WORKING_TO_MEET = "working_to_meet"
    MEETING = "meeting"
    EXCEEDING = "exceeding"


class PersonalAlignment(str, Enum):
    LOVE = "love"
    LIKE = "like"
    NEUTRAL = "neutral"
    PREFER_NOT = "prefer_not"
    ONLY_IF_NECESSARY = "only_if_necessary"


class SideStatus(str, Enum):
    DRAFT = "draft"
    COMPLETE = "complete"


class ChangeType(str, Enum):
    POSITION_TENURE = "position_tenure"
    ASSIGNMENT_MANAGEMENT = "assignment_management"
    ASPIRATION_MANAGEMENT = "aspiration_management"
    BULK_CHECK_IN_FINALIZATION = "bulk_check_in_finalization"


class NotificationEvent(str, Enum):
    FINALIZED = "check_ins.finalized"
    ACKNOWLEDGED = "check_ins.acknowledged"


@dataclass(slots=True)
class EmployeeSide:
    rating: str | None = None
    private_notes: str | None = None
    actual_energy_percentage: int | None = None
    personal_alignment: str | None = None
    completed_at: datetime | None = None


@dataclass(slots=True)
class ManagerSide:
    rating: str | None = None
    private_notes: str | None = None
    completed_at: datetime | None = None
    completed_by_id: int | None = None


@dataclass(slots=True)
class OfficialSide:
    rating: str | None = None
    shared_notes: str | None = None
    completed_at: datetime | None = None
    finalized_by_id: int | None = None


@dataclass(slots=True)
class CheckIn:
    """Storage-free view of one review record."""

    id: int
    teammate_id: int
    target_kind: TargetKind
    target_id: int
    started_on: date
    employee: EmployeeSide = field(default_factory=EmployeeSide)
    manager: ManagerSide = field(default_factory=ManagerSide)
    official: OfficialSide = field(default_factory=OfficialSide)
    snapshot_id: int | None = None

    def side(self, side: Side) -> EmployeeSide | ManagerSide:
        return self.employee if side is Side.EMPLOYEE else self.manager


@dataclass(slots=True)
class FinalizationSelection:
    check_in_id: int
    official_rating: str | int | None
    shared_notes: str | None = None


@dataclass(slots=True)
class SelectionOutcome:
    check_in_id: int
    target_kind: TargetKind | None = None
    target_id: int | None = None
    official_rating: str | None = None
    reason: str | None = None
    error: str | None = None


@dataclass(slots=True)
class FinalizationResult:
    success: bool
    snapshot_id: int | None = None
    finalized: list[SelectionOutcome] = field(default_factory=list)
    skipped: list[SelectionOutcome] = field(default_factory=list)

    def summary(self) -> str:
        parts: list[str] = []
        if self.finalized:
            names = ", ".join(
                f"{o.target_kind.value if o.target_kind else 'check-in'} #{o.check_in_id}"
                for o in self.finalized
            )
            parts.append(f"Finalized {len(self.finalized)} check-in(s): {names}.")
        else:
            parts.append("No check-ins were finalized.")
        for o in self.skipped:
            parts.append(f"Skipped check-in #{o.check_in_id}: {o.reason}.")
        if self.snapshot_id is not None:
            parts.append(f"Snapshot #{self.snapshot_id} created.")
        return " ".join(parts)
