"""
Seams to the rest of the organization system.

The engine depends on three collaborators: something that rolls employment
tenure forward when a position check-in is finalized, something that decides
who may manage a teammate, and something that delivers notifications. Each is
a Protocol with a default backed by this package's own tables.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol

from sqlalchemy.orm import Session

from ..domain.models import NotificationEvent
from ..infrastructure.config import CheckInConfig, get_settings
from ..infrastructure.exceptions import BusinessLogicError
from ..infrastructure.logging import get_logger
from ..infrastructure.models import EmploymentTenureORM
from ..infrastructure.repositories import TeammateRepo, TenureRepo


class TenureSuccession(Protocol):
    def end_and_succeed(
        self, session: Session, teammate_id: int, as_of: date, official_rating: int
    ) -> EmploymentTenureORM: ...


class AuthorizationOracle(Protocol):
    def can_manage(self, session: Session, actor_id: int, teammate_id: int) -> bool: ...


class NotificationDispatcher(Protocol):
    def notify(
        self, teammate_id: int, event: NotificationEvent, payload: dict[str, Any] | None = None
    ) -> None: ...


class EmploymentTenureSuccession:
    """End the active tenure with the official rating and open its successor."""

    def end_and_succeed(
        self, session: Session, teammate_id: int, as_of: date, official_rating: int
    ) -> EmploymentTenureORM:
        tenures = TenureRepo(session)
        current = tenures.active_for(teammate_id)
        if current is None:
            raise BusinessLogicError(
                f"Teammate {teammate_id} has no active employment tenure to roll forward",
                rule="active_tenure_required",
                details={"teammate_id": teammate_id},
            )

        tenures.end(current, ended_at=as_of, official_position_rating=official_rating)
        return tenures.start(
            teammate_id=teammate_id,
            position_id=current.position_id,
            manager_id=current.manager_id,
            started_at=as_of,
        )


class TenureManagerAuthorization:
    """
    An actor manages a teammate when they are the manager on the teammate's
    active tenure, or when they are listed as an organization admin.
    Nobody manages themselves.
    """

    def __init__(self, config: CheckInConfig | None = None):
        self.config = config

    def can_manage(self, session: Session, actor_id: int, teammate_id: int) -> bool:
        teammate = TeammateRepo(session).get_by_id_required(teammate_id)
        if teammate.person_id == actor_id:
            return False

        config = self.config or get_settings().check_ins
        if config.is_admin(actor_id):
            return True

        tenure = TenureRepo(session).active_for(teammate_id)
        return tenure is not None and tenure.manager_id == actor_id


class LoggingNotificationDispatcher:
    """Emit one structured log line per lifecycle event."""

    def __init__(self, logger: logging.Logger | None = None, enabled: bool | None = None):
        self.logger = logger or get_logger("notifications")
        self.enabled = enabled

    def notify(
        self, teammate_id: int, event: NotificationEvent, payload: dict[str, Any] | None = None
    ) -> None:
        enabled = self.enabled
        if enabled is None:
            enabled = get_settings().check_ins.notifications_enabled
        if not enabled:
            return
        self.logger.info(
            f"{NotificationEvent(event).value} for teammate {teammate_id}",
            extra={"event": NotificationEvent(event).value, "teammate_id": teammate_id, **(payload or {})},
        )


@dataclass
class Collaborators:
    succession: TenureSuccession
    authorization: AuthorizationOracle
    notifier: NotificationDispatcher

    @classmethod
    def default(cls) -> Collaborators:
        return cls(
            succession=EmploymentTenureSuccession(),
            authorization=TenureManagerAuthorization(),
            notifier=LoggingNotificationDispatcher(),
        )
