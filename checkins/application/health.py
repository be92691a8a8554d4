"""
Check-in health per teammate.

Summarises, for each target kind, whether the teammate has a recent
official rating, has check-ins in flight, or has fallen behind.

Statuses:
    alarm        nothing rated and nothing in progress
    warning      some targets have no recent rating and nothing open for them
    in_progress  check-ins are open
    success      everything has a rating within the threshold
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from ..domain.models import TargetKind
from ..infrastructure.config import get_settings
from ..infrastructure.logging import get_logger, log_operation
from ..infrastructure.models import utcnow
from ..infrastructure.repositories import CheckInRepo, TeammateRepo

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    ALARM = "alarm"
    WARNING = "warning"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"


@dataclass(slots=True)
class PositionHealth:
    status: HealthStatus
    last_rating_date: date | None
    days_since_rating: int | None
    open_check_in_id: int | None
    open_check_in_started_on: date | None
    open_unacknowledged: bool


@dataclass(slots=True)
class TargetHealth:
    status: HealthStatus
    total_count: int
    completed_count: int
    open_count: int
    unacknowledged_count: int


@dataclass(slots=True)
class CheckInHealth:
    teammate_id: int
    as_of: date
    days_threshold: int
    position: PositionHealth
    assignments: TargetHealth
    aspirations: TargetHealth

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _position_health(repo: CheckInRepo, teammate_id: int, today: date, threshold: int) -> PositionHealth:
    finalized = repo.list_finalized_for(teammate_id, TargetKind.POSITION)
    latest = finalized[0] if finalized else None
    open_records = repo.list_open_for(teammate_id, TargetKind.POSITION)
    open_record = open_records[0] if open_records else None

    if latest is None:
        status = HealthStatus.ALARM
        last_rating_date = None
        days_since = None
    else:
        last_rating_date = latest.official_check_in_completed_at.date()
        days_since = (today - last_rating_date).days
        status = HealthStatus.WARNING if days_since > threshold else HealthStatus.SUCCESS

    if open_record is not None and status in (HealthStatus.ALARM, HealthStatus.WARNING):
        status = HealthStatus.IN_PROGRESS

    return PositionHealth(
        status=status,
        last_rating_date=last_rating_date,
        days_since_rating=days_since,
        open_check_in_id=open_record.id if open_record is not None else None,
        open_check_in_started_on=open_record.check_in_started_on if open_record is not None else None,
        open_unacknowledged=open_record is not None and open_record.employee_completed_at is None,
    )


def _target_health(
    repo: CheckInRepo,
    teammate_id: int,
    kind: TargetKind,
    since: datetime,
    status_when_empty: HealthStatus,
) -> TargetHealth:
    open_records = repo.list_open_for(teammate_id, kind)
    finalized = repo.list_finalized_for(teammate_id, kind)

    tracked = {r.target_id for r in open_records} | {r.target_id for r in finalized}
    recent = {r.target_id for r in finalized if r.official_check_in_completed_at >= since}
    open_targets = {r.target_id for r in open_records}

    total = len(tracked)
    completed = len(recent)
    open_count = len(open_records)
    unacknowledged = sum(1 for r in open_records if r.employee_completed_at is None)
    uncovered = tracked - recent - open_targets

    if total == 0:
        status = status_when_empty
    elif completed == 0 and open_count == 0:
        status = HealthStatus.ALARM
    elif uncovered:
        status = HealthStatus.WARNING
    elif open_count > 0:
        status = HealthStatus.IN_PROGRESS
    else:
        status = HealthStatus.SUCCESS

    return TargetHealth(
        status=status,
        total_count=total,
        completed_count=completed,
        open_count=open_count,
        unacknowledged_count=unacknowledged,
    )


@log_operation("check_in_health")
def check_in_health(
    session: Session,
    teammate_id: int,
    today: date | None = None,
    days_threshold: int | None = None,
) -> CheckInHealth:
    """
    Health of a teammate's check-ins as of ``today``.

    Example:
        >>> health = check_in_health(session, teammate_id=7)
        >>> health.position.status
        <HealthStatus.ALARM: 'alarm'>
    """
    TeammateRepo(session).get_by_id_required(teammate_id)
    today = today or utcnow().date()
    threshold = days_threshold or get_settings().check_ins.health_days_threshold
    since = datetime.combine(today - timedelta(days=threshold), datetime.min.time())

    repo = CheckInRepo(session)
    health = CheckInHealth(
        teammate_id=teammate_id,
        as_of=today,
        days_threshold=threshold,
        position=_position_health(repo, teammate_id, today, threshold),
        assignments=_target_health(
            repo, teammate_id, TargetKind.ASSIGNMENT, since, HealthStatus.ALARM
        ),
        aspirations=_target_health(
            repo, teammate_id, TargetKind.ASPIRATION, since, HealthStatus.SUCCESS
        ),
    )
    logger.debug(
        f"Health for teammate {teammate_id}: position={health.position.status.value} "
        f"assignments={health.assignments.status.value} aspirations={health.aspirations.status.value}"
    )
    return health
