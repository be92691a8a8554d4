"""
Application API for check-ins.

High-level operations used by the web layer and scripts. Every function
takes the SQLAlchemy session first and the acting person explicitly;
mutating operations commit on success and roll back on failure.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Any

import pandas as pd
from sqlalchemy.orm import Session

from ..domain.gate import BlindPerspectiveGate, PerspectiveView
from ..domain.models import (
    FinalizationResult,
    FinalizationSelection,
    NotificationEvent,
    Side,
    SideStatus,
    TargetKind,
)
from ..domain.schemas import (
    AcknowledgeManyInput,
    FinalizationInput,
    OpenCheckInInput,
    SideUpdateInput,
    validate_input,
)
from ..domain.services import plan_side_update
from ..infrastructure.exceptions import (
    CheckInError,
    Forbidden,
    ValidationError,
    create_user_friendly_error_message,
    log_error_details,
)
from ..infrastructure.config import get_settings
from ..infrastructure.logging import get_logger, log_operation, set_context
from ..infrastructure.models import CheckInORM, DecisionSnapshotORM, TeammateORM, utcnow
from ..infrastructure.repositories import (
    CheckInRepo,
    SnapshotRepo,
    TargetRepo,
    TeammateRepo,
    to_check_in,
)
from ..infrastructure.uow import UnitOfWork
from .collaborators import Collaborators
from .finalization import FinalizationCoordinator
from .health import CheckInHealth, check_in_health

logger = get_logger(__name__)

gate = BlindPerspectiveGate()


def _collaborators(collaborators: Collaborators | None) -> Collaborators:
    return collaborators or Collaborators.default()


def _raise_validation(validation_result, what: str) -> None:
    error_msg = "; ".join(f"{e.field}: {e.message}" for e in validation_result.errors)
    logger.warning(f"{what} validation failed: {error_msg}")
    raise ValidationError(what, error_msg)


def resolve_viewer(
    session: Session,
    actor: int,
    teammate: TeammateORM,
    collaborators: Collaborators | None = None,
) -> Side:
    """
    Which side of the teammate's check-ins the actor participates in.

    Raises:
        Forbidden: The actor is neither the teammate nor one of their managers
    """
    if teammate.person_id == actor:
        return Side.EMPLOYEE
    if _collaborators(collaborators).authorization.can_manage(session, actor, teammate.id):
        return Side.MANAGER
    raise Forbidden(actor, f"view check-ins of teammate {teammate.id}")


def _require_side(
    session: Session,
    actor: int,
    teammate: TeammateORM,
    side: Side,
    collaborators: Collaborators | None,
) -> None:
    if side is Side.EMPLOYEE:
        if teammate.person_id != actor:
            raise Forbidden(actor, f"write the employee side for teammate {teammate.id}")
    elif not _collaborators(collaborators).authorization.can_manage(session, actor, teammate.id):
        raise Forbidden(actor, f"write the manager side for teammate {teammate.id}")


@log_operation("open_check_in")
def open_check_in(
    session: Session,
    actor: int,
    teammate_id: int,
    target_kind: TargetKind | str,
    target_id: int,
    today: date | None = None,
    collaborators: Collaborators | None = None,
) -> CheckInORM:
    """
    Return the teammate's open check-in for a target, creating it if needed.

    Either participant may open a check-in. The target must belong to the
    teammate's organization.

    Raises:
        ValidationError: Unknown target kind or non-positive target id
        TeammateNotFoundError / TargetNotFoundError: Missing references
        Forbidden: The actor is not a participant

    Example:
        >>> record = open_check_in(session, actor=ana.id, teammate_id=7,
        ...                        target_kind="assignment", target_id=12)
        >>> record.is_open
        True
    """
    validation_result = validate_input(
        OpenCheckInInput, {"target_kind": target_kind, "target_id": target_id}
    )
    if not validation_result.success:
        _raise_validation(validation_result, "check_in_target")

    kind = TargetKind(target_kind)
    set_context(teammate_id=teammate_id)
    teammate = TeammateRepo(session).get_by_id_required(teammate_id)
    resolve_viewer(session, actor, teammate, collaborators)
    TargetRepo(session).get_required(kind, target_id, organization_id=teammate.organization_id)

    with UnitOfWork.atomic(session):
        record, created = CheckInRepo(session).open_or_create(
            teammate_id, kind, target_id, today or utcnow().date()
        )
    if created:
        logger.info(f"Opened {kind.value} check-in {record.id} for teammate {teammate_id}")
    return record


@log_operation("view_check_in")
def view_check_in(
    session: Session,
    actor: int,
    check_in_id: int,
    collaborators: Collaborators | None = None,
) -> PerspectiveView:
    """Gated view of one check-in from the actor's side."""
    record = CheckInRepo(session).get_by_id_required(check_in_id)
    teammate = TeammateRepo(session).get_by_id_required(record.teammate_id)
    viewer = resolve_viewer(session, actor, teammate, collaborators)
    return gate.project(to_check_in(record), viewer)


@log_operation("list_check_ins")
def list_check_ins(
    session: Session,
    actor: int,
    teammate_id: int,
    target_kind: TargetKind | str | None = None,
    collaborators: Collaborators | None = None,
) -> list[PerspectiveView]:
    """Gated views of the teammate's open check-ins."""
    teammate = TeammateRepo(session).get_by_id_required(teammate_id)
    viewer = resolve_viewer(session, actor, teammate, collaborators)
    kind = TargetKind(target_kind) if target_kind is not None else None
    records = CheckInRepo(session).list_open_for(teammate_id, kind)
    return [gate.project(to_check_in(record), viewer) for record in records]


@log_operation("save_check_in_side")
def save_side(
    session: Session,
    actor: int,
    check_in_id: int,
    side: Side | str,
    *,
    rating: Any = None,
    private_notes: str | None = None,
    actual_energy_percentage: int | None = None,
    personal_alignment: str | None = None,
    status: SideStatus | str = SideStatus.DRAFT,
    collaborators: Collaborators | None = None,
) -> PerspectiveView:
    """
    Save a draft of, complete, or reopen one side of a check-in.

    ``None`` leaves a field as it is. ``status="complete"`` needs a rating
    once the update is applied; ``status="draft"`` on a completed side clears
    the completion and keeps the values ("make changes").

    Returns:
        The actor's gated view after the write

    Raises:
        ValidationError / InvalidRating: Bad values for the record's target kind
        InvalidTransition: Finalized record, or completing without a rating
        Forbidden: Wrong participant for the side

    Example:
        >>> save_side(session, actor=ana.id, check_in_id=4, side="employee",
        ...           rating="working_to_meet")
        >>> view = save_side(session, actor=ana.id, check_in_id=4, side="employee",
        ...                  rating="meeting", status="complete")
        >>> view.own_side["rating"]
        'meeting'
    """
    side = Side(side)
    validation_result = validate_input(
        SideUpdateInput,
        {
            "status": status,
            "rating": rating,
            "private_notes": private_notes,
            "actual_energy_percentage": actual_energy_percentage,
            "personal_alignment": personal_alignment,
        },
    )
    if not validation_result.success:
        _raise_validation(validation_result, "check_in_side")
    validated = validation_result.data or {}

    set_context(check_in_id=check_in_id)
    repo = CheckInRepo(session)
    try:
        with UnitOfWork.atomic(session):
            record = repo.get_by_id_required(check_in_id)
            teammate = TeammateRepo(session).get_by_id_required(record.teammate_id)
            _require_side(session, actor, teammate, side, collaborators)

            alignment = validated.get("personal_alignment")
            values = plan_side_update(
                to_check_in(record),
                side,
                actor_id=actor,
                now=utcnow(),
                status=validated.get("status", SideStatus.DRAFT),
                rating=validated.get("rating"),
                private_notes=validated.get("private_notes"),
                actual_energy_percentage=validated.get("actual_energy_percentage"),
                personal_alignment=alignment.value if alignment is not None else None,
            )
            repo.write_side(record, side, values)
    except CheckInError:
        raise
    except Exception as e:
        error_details = log_error_details(e, {"check_in_id": check_in_id, "side": side.value})
        logger.error("Failed to save check-in side", extra=error_details)
        raise CheckInError(
            f"Failed to save the {side.value} side of check-in {check_in_id}: {str(e)}",
            details=error_details,
            user_message=create_user_friendly_error_message(e),
        ) from e

    return gate.project(to_check_in(record), side)


def complete_side(
    session: Session,
    actor: int,
    check_in_id: int,
    side: Side | str,
    rating: Any = None,
    private_notes: str | None = None,
    **extras: Any,
) -> PerspectiveView:
    return save_side(
        session,
        actor,
        check_in_id,
        side,
        rating=rating,
        private_notes=private_notes,
        status=SideStatus.COMPLETE,
        **extras,
    )


def reopen_side(
    session: Session,
    actor: int,
    check_in_id: int,
    side: Side | str,
    collaborators: Collaborators | None = None,
) -> PerspectiveView:
    """The "make changes" transition: clear completion, keep values."""
    return save_side(
        session, actor, check_in_id, side, status=SideStatus.DRAFT, collaborators=collaborators
    )


@log_operation("finalize_check_ins")
def finalize_check_ins(
    session: Session,
    actor: int,
    teammate_id: int,
    selections: Sequence[FinalizationSelection | dict[str, Any]],
    reason: str | None = None,
    request_info: dict[str, Any] | None = None,
    collaborators: Collaborators | None = None,
) -> FinalizationResult:
    """
    Finalize a manager-selected subset of the teammate's check-ins.

    Selections that are not ready, or carry a rating outside the target
    kind's vocabulary, come back in ``result.skipped``; the rest are closed
    together under one decision snapshot.

    Raises:
        ValidationError: Empty or oversized batch
        Forbidden: The actor may not manage the teammate
        SnapshotConsistencyFailure: The batch could not be written; nothing was changed
    """
    normalized = [
        s if isinstance(s, FinalizationSelection) else FinalizationSelection(**s)
        for s in selections
    ]
    validation_result = validate_input(
        FinalizationInput,
        {
            "selections": [
                {
                    "check_in_id": s.check_in_id,
                    "official_rating": s.official_rating,
                    "shared_notes": s.shared_notes,
                }
                for s in normalized
            ],
            "reason": reason,
        },
    )
    if not validation_result.success:
        _raise_validation(validation_result, "finalization")
    limit = get_settings().check_ins.max_selections_per_finalization
    if len(normalized) > limit:
        raise ValidationError(
            "selections", f"At most {limit} check-ins can be finalized at once", len(normalized)
        )

    collab = _collaborators(collaborators)
    coordinator = FinalizationCoordinator(
        succession=collab.succession,
        authorization=collab.authorization,
        notifier=collab.notifier,
    )
    set_context(teammate_id=teammate_id)
    return coordinator.finalize(
        session,
        actor,
        teammate_id,
        normalized,
        reason=reason,
        request_info=request_info,
    )


# ---------- Snapshots & acknowledgment ----------


def _require_subject(actor: int, teammate: TeammateORM, operation: str) -> None:
    if teammate.person_id != actor:
        raise Forbidden(actor, operation, details={"teammate_id": teammate.id})


@log_operation("acknowledge_snapshot")
def acknowledge(
    session: Session,
    actor: int,
    snapshot_id: int,
    collaborators: Collaborators | None = None,
) -> DecisionSnapshotORM:
    """
    Record that the teammate has seen a decision snapshot.

    Only the snapshot's subject may acknowledge. Calling again is a no-op
    and the original acknowledgment time is kept.
    """
    snapshots = SnapshotRepo(session)
    snapshot = snapshots.get_by_id_required(snapshot_id)
    teammate = TeammateRepo(session).get_by_id_required(snapshot.teammate_id)
    _require_subject(actor, teammate, f"acknowledge snapshot {snapshot_id}")

    with UnitOfWork.atomic(session):
        newly = snapshots.acknowledge(snapshot, utcnow())

    if newly:
        logger.info(f"Snapshot {snapshot_id} acknowledged by teammate {teammate.id}")
        _notify_acknowledged(collaborators, teammate.id, [snapshot_id])
    return snapshot


@log_operation("acknowledge_snapshots")
def acknowledge_many(
    session: Session,
    actor: int,
    snapshot_ids: Sequence[int],
    collaborators: Collaborators | None = None,
) -> int:
    """
    Acknowledge several snapshots at once; returns how many were newly acknowledged.

    Every snapshot must belong to the actor, otherwise nothing is written.
    """
    validation_result = validate_input(AcknowledgeManyInput, {"snapshot_ids": list(snapshot_ids)})
    if not validation_result.success:
        _raise_validation(validation_result, "snapshot_ids")
    ids = validation_result.data["snapshot_ids"]

    snapshots = SnapshotRepo(session)
    found = {s.id: s for s in snapshots.get_many(ids)}
    missing = [sid for sid in ids if sid not in found]
    if missing:
        raise snapshots.not_found(missing[0])

    teammates = TeammateRepo(session)
    for snapshot in found.values():
        _require_subject(
            actor,
            teammates.get_by_id_required(snapshot.teammate_id),
            f"acknowledge snapshot {snapshot.id}",
        )

    now = utcnow()
    acknowledged: list[DecisionSnapshotORM] = []
    with UnitOfWork.atomic(session):
        for sid in ids:
            if snapshots.acknowledge(found[sid], now):
                acknowledged.append(found[sid])

    by_teammate: dict[int, list[int]] = {}
    for snapshot in acknowledged:
        by_teammate.setdefault(snapshot.teammate_id, []).append(snapshot.id)
    for teammate_id, acknowledged_ids in by_teammate.items():
        _notify_acknowledged(collaborators, teammate_id, acknowledged_ids)
    return len(acknowledged)


def _notify_acknowledged(
    collaborators: Collaborators | None, teammate_id: int, snapshot_ids: list[int]
) -> None:
    try:
        _collaborators(collaborators).notifier.notify(
            teammate_id, NotificationEvent.ACKNOWLEDGED, {"snapshot_ids": snapshot_ids}
        )
    except Exception as e:
        logger.warning(f"Acknowledgment notification failed: {e}", exc_info=True)


@log_operation("snapshot_history")
def snapshot_history(
    session: Session,
    actor: int,
    teammate_id: int,
    collaborators: Collaborators | None = None,
) -> list[DecisionSnapshotORM]:
    """The teammate's decision snapshots, newest first."""
    teammate = TeammateRepo(session).get_by_id_required(teammate_id)
    resolve_viewer(session, actor, teammate, collaborators)
    return SnapshotRepo(session).list_for_teammate(teammate_id)


@log_operation("pending_acknowledgements")
def pending_acknowledgements(
    session: Session,
    actor: int,
    teammate_id: int,
    collaborators: Collaborators | None = None,
) -> list[DecisionSnapshotORM]:
    """Snapshots the teammate has not acknowledged yet."""
    teammate = TeammateRepo(session).get_by_id_required(teammate_id)
    resolve_viewer(session, actor, teammate, collaborators)
    return SnapshotRepo(session).pending_for_teammate(teammate_id)


@log_operation("teammate_health")
def teammate_health(
    session: Session,
    actor: int,
    teammate_id: int,
    today: date | None = None,
    collaborators: Collaborators | None = None,
) -> CheckInHealth:
    """Check-in health for a teammate, visible to the teammate and their managers."""
    teammate = TeammateRepo(session).get_by_id_required(teammate_id)
    resolve_viewer(session, actor, teammate, collaborators)
    return check_in_health(session, teammate_id, today=today)


SNAPSHOT_EXPORT_COLUMNS = [
    "SnapshotID",
    "ChangeType",
    "CreatedAt",
    "FinalizedBy",
    "AcknowledgedAt",
    "CheckInID",
    "TargetKind",
    "TargetID",
    "Target",
    "EmployeeRating",
    "ManagerRating",
    "OfficialRating",
    "SharedNotes",
]


@log_operation("export_snapshot_history")
def export_snapshot_history(
    session: Session,
    actor: int,
    teammate_id: int,
    collaborators: Collaborators | None = None,
) -> pd.DataFrame:
    """
    One row per finalized check-in across the teammate's snapshots.

    Private notes are never exported; shared notes are.

    Example:
        >>> df = export_snapshot_history(session, actor=manager.id, teammate_id=7)
        >>> df[["SnapshotID", "OfficialRating"]].head()
    """
    snapshots = snapshot_history(session, actor, teammate_id, collaborators)
    targets = TargetRepo(session)

    rows = []
    for snapshot in snapshots:
        for item in snapshot.decision_data.get("check_ins", []):
            rows.append(
                {
                    "SnapshotID": snapshot.id,
                    "ChangeType": snapshot.change_type,
                    "CreatedAt": snapshot.created_at,
                    "FinalizedBy": snapshot.finalized_by_id,
                    "AcknowledgedAt": snapshot.employee_acknowledged_at,
                    "CheckInID": item.get("id"),
                    "TargetKind": item.get("target_kind"),
                    "TargetID": item.get("target_id"),
                    "Target": targets.label(item["target_kind"], item["target_id"]),
                    "EmployeeRating": item.get("employee_rating"),
                    "ManagerRating": item.get("manager_rating"),
                    "OfficialRating": item.get("official_rating"),
                    "SharedNotes": item.get("shared_notes"),
                }
            )

    df = pd.DataFrame(rows, columns=SNAPSHOT_EXPORT_COLUMNS)
    logger.info(f"Exported {len(df)} finalized check-ins for teammate {teammate_id}")
    return df
