"""
Review-record state machine and rating vocabularies.

Everything here is storage-free: functions take the ``CheckIn`` domain object
and return new values or raise ``InvalidTransition`` / ``InvalidRating``.
Persisting the result is the caller's job.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Any

from ..infrastructure.exceptions import InvalidRating, InvalidTransition, ValidationError
from .models import (
    CategoricalRating,
    ChangeType,
    CheckIn,
    CompositeState,
    EmployeeSide,
    ManagerSide,
    PersonalAlignment,
    PositionRating,
    Side,
    SideState,
    SideStatus,
    TargetKind,
)


def rating_vocabulary(kind: TargetKind) -> type[Enum]:
    if kind is TargetKind.POSITION:
        return PositionRating
    return CategoricalRating


def allowed_ratings(kind: TargetKind) -> list[str]:
    return [str(member.value) for member in rating_vocabulary(kind)]


def parse_rating(kind: TargetKind | str, value: Any) -> str:
    """
    Normalise a raw rating into its stored string form.

    Position ratings accept the integer, its string form, or the member
    name (``"looking_to_reward"``); categorical ratings accept the value only.
    Values from another kind's vocabulary are rejected.

    Example:
        >>> parse_rating(TargetKind.POSITION, 3)
        '3'
        >>> parse_rating("assignment", "meeting")
        'meeting'
    """
    kind = TargetKind(kind)
    if isinstance(value, Enum) and not isinstance(value, rating_vocabulary(kind)):
        raise InvalidRating(kind.value, value, allowed_ratings(kind))

    if kind is TargetKind.POSITION:
        if isinstance(value, bool):
            raise InvalidRating(kind.value, value, allowed_ratings(kind))
        if isinstance(value, int):
            try:
                return str(PositionRating(value).value)
            except ValueError:
                raise InvalidRating(kind.value, value, allowed_ratings(kind)) from None
        if isinstance(value, str):
            text = value.strip()
            if text.lstrip("-").isdigit():
                return parse_rating(kind, int(text))
            try:
                return str(PositionRating[text.upper()].value)
            except KeyError:
                raise InvalidRating(kind.value, value, allowed_ratings(kind)) from None
        raise InvalidRating(kind.value, value, allowed_ratings(kind))

    if isinstance(value, CategoricalRating):
        return value.value
    if isinstance(value, str):
        try:
            return CategoricalRating(value.strip().lower()).value
        except ValueError:
            raise InvalidRating(kind.value, value, allowed_ratings(kind)) from None
    raise InvalidRating(kind.value, value, allowed_ratings(kind))


def position_rating_value(rating: str) -> int:
    return int(parse_rating(TargetKind.POSITION, rating))


# ---------- State derivation ----------


def side_state(check_in: CheckIn, side: Side) -> SideState:
    values = check_in.side(side)
    if values.completed_at is not None:
        return SideState.COMPLETED

    present = [values.rating, values.private_notes]
    if isinstance(values, EmployeeSide):
        present += [values.actual_energy_percentage, values.personal_alignment]
    if any(v is not None for v in present):
        return SideState.DRAFTED
    return SideState.NOT_STARTED


def composite_state(check_in: CheckIn) -> CompositeState:
    if check_in.official.completed_at is not None:
        return CompositeState.FINALIZED

    completed = sum(side_state(check_in, side) is SideState.COMPLETED for side in Side)
    if completed == 2:
        return CompositeState.READY_FOR_FINALIZATION
    if completed == 1:
        return CompositeState.ONE_SIDE_READY
    return CompositeState.BOTH_PENDING


def ineligibility_reason(check_in: CheckIn) -> str | None:
    """Why a check-in can't be finalized right now, or None when it can."""
    state = composite_state(check_in)
    if state is CompositeState.READY_FOR_FINALIZATION:
        return None
    if state is CompositeState.FINALIZED:
        return "already finalized"

    pending = [
        side.value
        for side in Side
        if side_state(check_in, side) is not SideState.COMPLETED
    ]
    return f"waiting on {' and '.join(pending)} completion"


# ---------- Side updates ----------


def plan_side_update(
    check_in: CheckIn,
    side: Side,
    *,
    actor_id: int,
    now: datetime,
    status: SideStatus = SideStatus.DRAFT,
    rating: Any = None,
    private_notes: str | None = None,
    actual_energy_percentage: int | None = None,
    personal_alignment: PersonalAlignment | str | None = None,
) -> EmployeeSide | ManagerSide:
    """
    Compute the new values for one side of a check-in.

    ``None`` leaves a field unchanged; an empty ``private_notes`` string
    clears the notes. ``status=draft`` on a completed side is the
    "make changes" transition: completion is cleared, values are kept.
    ``status=complete`` requires a rating once the update is applied.
    """
    if composite_state(check_in) is CompositeState.FINALIZED:
        raise InvalidTransition(
            f"Check-in {check_in.id} is finalized and can no longer be edited",
            check_in_id=check_in.id,
            state=CompositeState.FINALIZED.value,
        )

    status = SideStatus(status)
    current = check_in.side(side)
    updated = replace(current)

    if rating is not None:
        updated.rating = parse_rating(check_in.target_kind, rating)
    if private_notes is not None:
        updated.private_notes = private_notes or None

    extras_given = actual_energy_percentage is not None or personal_alignment is not None
    if extras_given:
        if side is not Side.EMPLOYEE or check_in.target_kind is not TargetKind.ASSIGNMENT:
            raise ValidationError(
                "actual_energy_percentage",
                "energy and personal alignment apply to the employee side of assignment check-ins only",
            )
        if actual_energy_percentage is not None:
            if isinstance(actual_energy_percentage, bool) or not isinstance(
                actual_energy_percentage, int
            ):
                raise ValidationError(
                    "actual_energy_percentage", "must be an integer", actual_energy_percentage
                )
            if not 0 <= actual_energy_percentage <= 100:
                raise ValidationError(
                    "actual_energy_percentage",
                    "must be between 0 and 100",
                    actual_energy_percentage,
                )
            updated.actual_energy_percentage = actual_energy_percentage
        if personal_alignment is not None:
            try:
                updated.personal_alignment = PersonalAlignment(personal_alignment).value
            except ValueError:
                raise ValidationError(
                    "personal_alignment",
                    f"must be one of {', '.join(a.value for a in PersonalAlignment)}",
                    personal_alignment,
                ) from None

    if status is SideStatus.COMPLETE:
        if updated.rating is None:
            raise InvalidTransition(
                f"The {side.value} side of check-in {check_in.id} needs a rating before it can be completed",
                check_in_id=check_in.id,
                state=side_state(check_in, side).value,
            )
        if current.completed_at is None:
            updated.completed_at = now
            if isinstance(updated, ManagerSide):
                updated.completed_by_id = actor_id
    else:
        updated.completed_at = None
        if isinstance(updated, ManagerSide):
            updated.completed_by_id = None

    return updated


def change_type_for(kinds: set[TargetKind]) -> ChangeType:
    """Classify a finalization batch by the kinds of records it closes."""
    if len(kinds) != 1:
        return ChangeType.BULK_CHECK_IN_FINALIZATION
    (kind,) = kinds
    return {
        TargetKind.POSITION: ChangeType.POSITION_TENURE,
        TargetKind.ASSIGNMENT: ChangeType.ASSIGNMENT_MANAGEMENT,
        TargetKind.ASPIRATION: ChangeType.ASPIRATION_MANAGEMENT,
    }[kind]
