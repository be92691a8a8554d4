"""
Batch finalization of check-ins.

A manager picks any subset of a teammate's check-ins and gives each an
official rating. The accepted ones are closed together in one transaction,
employment tenure is rolled forward when a position is among them, and one
decision snapshot records the batch. Selections that aren't ready are
reported back individually and never block the rest.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from ..domain.models import (
    FinalizationResult,
    FinalizationSelection,
    NotificationEvent,
    SelectionOutcome,
    TargetKind,
)
from ..domain.services import change_type_for, ineligibility_reason, parse_rating, position_rating_value
from ..infrastructure.exceptions import (
    CheckInError,
    Forbidden,
    InvalidRating,
    NotEligibleForFinalization,
    SnapshotConsistencyFailure,
    log_error_details,
)
from ..infrastructure.logging import LogContext, get_logger
from ..infrastructure.models import CheckInORM, utcnow
from ..infrastructure.repositories import (
    CheckInRepo,
    SnapshotRepo,
    TeammateRepo,
    serialize_check_in,
    to_check_in,
)
from ..infrastructure.uow import UnitOfWork
from .collaborators import (
    AuthorizationOracle,
    EmploymentTenureSuccession,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    TenureManagerAuthorization,
    TenureSuccession,
)

logger = get_logger(__name__)


class FinalizationCoordinator:
    """
    Close a manager-selected batch of check-ins into one decision snapshot.

    Example:
        >>> coordinator = FinalizationCoordinator()
        >>> result = coordinator.finalize(
        ...     session,
        ...     actor=manager_id,
        ...     teammate_id=teammate.id,
        ...     selections=[FinalizationSelection(check_in_id=7, official_rating=3)],
        ... )
        >>> result.summary()
        'Finalized 1 check-in(s): position #7. Snapshot #1 created.'
    """

    def __init__(
        self,
        succession: TenureSuccession | None = None,
        authorization: AuthorizationOracle | None = None,
        notifier: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.succession = succession or EmploymentTenureSuccession()
        self.authorization = authorization or TenureManagerAuthorization()
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.clock = clock

    def finalize(
        self,
        session: Session,
        actor: int,
        teammate_id: int,
        selections: Sequence[FinalizationSelection],
        reason: str | None = None,
        request_info: dict[str, Any] | None = None,
    ) -> FinalizationResult:
        with LogContext(actor_id=actor, teammate_id=teammate_id, operation="finalize_check_ins"):
            teammate = TeammateRepo(session).get_by_id_required(teammate_id)
            if not self.authorization.can_manage(session, actor, teammate_id):
                raise Forbidden(
                    actor,
                    f"finalize check-ins for teammate {teammate_id}",
                    details={"actor_id": actor, "teammate_id": teammate_id},
                )

            accepted, skipped = self._screen(session, teammate_id, selections)
            if not accepted:
                logger.info(
                    f"No finalizable selections for teammate {teammate_id}; "
                    f"{len(skipped)} skipped"
                )
                return FinalizationResult(success=False, skipped=skipped)

            now = self.clock()
            check_in_ids = [record.id for record, _rating, _sel in accepted]
            try:
                with UnitOfWork.atomic(session):
                    snapshot_id = self._apply(
                        session,
                        actor=actor,
                        organization_id=teammate.organization_id,
                        teammate_id=teammate_id,
                        accepted=accepted,
                        now=now,
                        reason=reason,
                        request_info=request_info,
                    )
            except Exception as e:
                error_details = log_error_details(
                    e, {"teammate_id": teammate_id, "check_in_ids": check_in_ids}
                )
                logger.error("Finalization rolled back", extra=error_details)
                raise SnapshotConsistencyFailure(
                    f"Finalization of check-ins {check_in_ids} failed and was rolled back: {e}",
                    check_in_ids=check_in_ids,
                    details=error_details,
                ) from e

            finalized = [
                SelectionOutcome(
                    check_in_id=record.id,
                    target_kind=TargetKind(record.target_kind),
                    target_id=record.target_id,
                    official_rating=rating,
                )
                for record, rating, _sel in accepted
            ]
            result = FinalizationResult(
                success=True, snapshot_id=snapshot_id, finalized=finalized, skipped=skipped
            )
            logger.info(result.summary())

            self._notify(
                teammate_id,
                {"snapshot_id": snapshot_id, "check_in_ids": [o.check_in_id for o in finalized]},
            )
            return result

    def _screen(
        self,
        session: Session,
        teammate_id: int,
        selections: Sequence[FinalizationSelection],
    ) -> tuple[list[tuple[CheckInORM, str, FinalizationSelection]], list[SelectionOutcome]]:
        """Split selections into finalizable ones and skipped ones with reasons."""
        repo = CheckInRepo(session)
        records = repo.get_many([s.check_in_id for s in selections])

        accepted: list[tuple[CheckInORM, str, FinalizationSelection]] = []
        skipped: list[SelectionOutcome] = []
        seen: set[int] = set()

        for selection in selections:
            record = records.get(selection.check_in_id)
            if selection.check_in_id in seen:
                skipped.append(
                    self._skip(selection, record, "selected more than once", NotEligibleForFinalization)
                )
                continue
            seen.add(selection.check_in_id)

            if record is None or record.teammate_id != teammate_id:
                skipped.append(
                    self._skip(selection, None, "check-in not found for this teammate", NotEligibleForFinalization)
                )
                continue

            reason = ineligibility_reason(to_check_in(record))
            if reason is not None:
                skipped.append(self._skip(selection, record, reason, NotEligibleForFinalization))
                continue

            try:
                rating = parse_rating(record.target_kind, selection.official_rating)
            except InvalidRating as e:
                skipped.append(self._skip(selection, record, e.message, InvalidRating))
                continue

            accepted.append((record, rating, selection))

        return accepted, skipped

    @staticmethod
    def _skip(
        selection: FinalizationSelection,
        record: CheckInORM | None,
        reason: str,
        error: type[CheckInError],
    ) -> SelectionOutcome:
        logger.info(f"Skipping check-in {selection.check_in_id}: {reason}")
        return SelectionOutcome(
            check_in_id=selection.check_in_id,
            target_kind=TargetKind(record.target_kind) if record is not None else None,
            target_id=record.target_id if record is not None else None,
            reason=reason,
            error=error.__name__,
        )

    def _apply(
        self,
        session: Session,
        *,
        actor: int,
        organization_id: int,
        teammate_id: int,
        accepted: list[tuple[CheckInORM, str, FinalizationSelection]],
        now: datetime,
        reason: str | None,
        request_info: dict[str, Any] | None,
    ) -> int:
        repo = CheckInRepo(session)
        for record, rating, selection in accepted:
            repo.close(
                record,
                official_rating=rating,
                shared_notes=selection.shared_notes,
                finalized_by_id=actor,
                now=now,
            )

        tenure_data: dict[str, Any] | None = None
        positions = [
            (record, rating)
            for record, rating, _sel in accepted
            if record.target_kind == TargetKind.POSITION.value
        ]
        if positions:
            _record, rating = positions[0]
            successor = self.succession.end_and_succeed(
                session, teammate_id, now.date(), position_rating_value(rating)
            )
            tenure_data = {
                "successor_tenure_id": successor.id,
                "position_id": successor.position_id,
                "official_position_rating": position_rating_value(rating),
                "started_at": successor.started_at.isoformat(),
            }

        kinds = {TargetKind(record.target_kind) for record, _rating, _sel in accepted}
        decision_data: dict[str, Any] = {
            "finalized_at": now.isoformat(),
            "finalized_by_id": actor,
            "check_ins": [serialize_check_in(record) for record, _rating, _sel in accepted],
        }
        if tenure_data is not None:
            decision_data["employment_tenure"] = tenure_data

        snapshot = SnapshotRepo(session).create_for_batch(
            organization_id=organization_id,
            teammate_id=teammate_id,
            finalized_by_id=actor,
            change_type=change_type_for(kinds).value,
            decision_data=decision_data,
            reason=reason,
            request_info=request_info,
            created_at=now,
        )
        repo.link_snapshot([record for record, _rating, _sel in accepted], snapshot.id)
        return snapshot.id

    def _notify(self, teammate_id: int, payload: dict[str, Any]) -> None:
        try:
            self.notifier.notify(teammate_id, NotificationEvent.FINALIZED, payload)
        except Exception as e:
            logger.warning(
                f"Notification for teammate {teammate_id} failed: {e}",
                exc_info=True,
            )
