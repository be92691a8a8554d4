from __future__ import annotations

import io
import json
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from checkins.application import api as app_api
from checkins.application.collaborators import Collaborators
from checkins.domain.gate import PerspectiveView
from checkins.domain.models import FinalizationResult, FinalizationSelection, Side, TargetKind
from checkins.infrastructure.config import get_settings
from checkins.infrastructure.exceptions import (
    BusinessLogicError,
    CheckInError,
    DuplicateOpenReview,
    Forbidden,
    InvalidTransition,
    MultipleValidationError,
    NotFoundError,
    ValidationError,
)
from checkins.utils.exports import make_json_export_payload, make_xlsx_export_bytes
from checkins.web.dependencies import get_actor, get_collaborators, get_db_session
from checkins.web.schemas import (
    WITHHELD_FIELDS,
    AcknowledgeManyRequest,
    AcknowledgeManyResponse,
    CheckInView,
    FinalizationRequest,
    FinalizationResponse,
    OpenCheckInRequest,
    SelectionOutcomeResponse,
    SideUpdateRequest,
    SnapshotResponse,
)

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[CheckInError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MultipleValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (DuplicateOpenReview, status.HTTP_409_CONFLICT),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (BusinessLogicError, status.HTTP_400_BAD_REQUEST),
]


def _http_error(exc: CheckInError) -> HTTPException:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=code, detail=exc.user_message)
    logger.error("Check-in operation failed: %s", exc.message, extra={"details": exc.details})
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.user_message)


def _to_view(view: PerspectiveView) -> CheckInView:
    # Withheld sections stay unset so the response leaves them out
    fields = {k: v for k, v in asdict(view).items() if k not in WITHHELD_FIELDS or v is not None}
    return CheckInView(**fields)


def _to_finalization_response(result: FinalizationResult) -> FinalizationResponse:
    return FinalizationResponse(
        success=result.success,
        snapshot_id=result.snapshot_id,
        finalized=[SelectionOutcomeResponse.model_validate(o) for o in result.finalized],
        skipped=[SelectionOutcomeResponse.model_validate(o) for o in result.skipped],
        summary=result.summary(),
    )


def _require_exports_enabled() -> None:
    if not get_settings().app.enable_data_export:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Exports are disabled")


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/check-ins/{check_in_id}", response_model=CheckInView, response_model_exclude_unset=True
)
def get_check_in(
    check_in_id: int,
    db: Session = Depends(get_db_session),
    actor: int = Depends(get_actor),
    collaborators: Collaborators = Depends(get_collaborators),
) -> CheckInView:
    try:
        view = app_api.view_check_in(db, actor, check_in_id, collaborators=collaborators)
    except CheckInError as exc:
        raise _http_error(exc) from exc
    return _to_view(view)


@router.put(
    "/check-ins/{check_in_id}/{side}", response_model=CheckInView, response_model_exclude_unset=True
)
def update_check_in_side(
    check_in_id: int,
    side: Side,
    payload: SideUpdateRequest,
    db: Session = Depends(get_db_session),
    actor: int = Depends(get_actor),
    collaborators: Collaborators = Depends(get_collaborators),
) -> CheckInView:
    try:
        view = app_api.save_side(
            db,
            actor,
            check_in_id,
            side,
            rating=payload.rating,
            private_notes=payload.private_notes,
            actual_energy_percentage=payload.actual_energy_percentage,
            personal_alignment=payload.personal_alignment,
            status=payload.status,
            collaborators=collaborators,
        )
    except CheckInError as exc:
        raise _http_error(exc) from exc
    return _to_view(view)


@router.post(
    "/teammates/{teammate_id}/check-ins",
    response_model=CheckInView,
    response_model_exclude_unset=True,
    status_code=status.HTTP_201_CREATED,
)
def open_check_in(
    teammate_id: int,
    payload: OpenCheckInRequest,
    db: Session = Depends(get_db_session),
    actor: int = Depends(get_actor),
    collaborators: Collaborators = Depends(get_collaborators),
) -> CheckInView:
    try:
        record = app_api.open_check_in(
            db,
            actor,
            teammate_id,
            payload.target_kind,
            payload.target_id,
            today=payload.started_on,
            collaborators=collaborators,
        )
        view = app_api.view_check_in(db, actor, record.id, collaborators=collaborators)
    except CheckInError as exc:
        raise _http_error(exc) from exc
    return _to_view(view)


@router.get(
    "/teammates/{teammate_id}/check-ins",
    response_model=list[CheckInView],
    response_model_exclude_unset=True,
)
def list_check_ins(
    teammate_id: int,
    target_kind: TargetKind | None = None,
    db: Session = Depends(get_db_session),
    actor: int = Depends(get_actor),
    collaborators: Collaborators = Depends(get_collaborators),
) -> list[CheckInView]:
    try:
        views = app_api.list_check_ins(
            db, actor, teammate_id, target_kind=target_kind, collaborators=collaborators
        )
    except CheckInError as exc:
        raise _http_error(exc) from exc
    return [_to_view(view) for view in views]


@router.post("/teammates/{teammate_id}/finalizations", response_model=FinalizationResponse)
def finalize_check_ins(
    teammate_id: int,
    payload: FinalizationRequest,
    db: Session = Depends(get_db_session),
    actor: int = Depends(get_actor),
    collaborators: Collaborators = Depends(get_collaborators),
) -> FinalizationResponse:
    selections = [
        FinalizationSelection(
            check_in_id=s.check_in_id,
            official_rating=s.official_rating,
            shared_notes=s.shared_notes,
        )
        for s in payload.selections
    ]
    try:
        result = app_api.finalize_check_ins(
            db,
            actor,
            teammate_id,
            selections,
            reason=payload.reason,
            request_info={"source": "api"},
            collaborators=collaborators,
        )
    except CheckInError as exc:
        raise _http_error(exc) from exc
    return _to_finalization_response(result)


@router.get("/teammates/{teammate_id}/snapshots", response_model=list[SnapshotResponse])
def list_snapshots(
    teammate_id: int,
    pending: bool = False,
    db: Session = Depends(get_db_session),
    actor: int = Depends(get_actor),
    collaborators: Collaborators = Depends(get_collaborators),
) -> list[SnapshotResponse]:
    lookup = app_api.pending_acknowledgements if pending else app_api.snapshot_history
    try:
        snapshots = lookup(db, actor, teammate_id, collaborators=collaborators)
    except CheckInError as exc:
        raise _http_error(exc) from exc
    return [SnapshotResponse.model_validate(s) for s in snapshots]


@router.post("/snapshots/{snapshot_id}/acknowledge", response_model=SnapshotResponse)
def acknowledge_snapshot(
    snapshot_id: int,
    db: Session = Depends(get_db_session),
    actor: int = Depends(get_actor),
    collaborators: Collaborators = Depends(get_collaborators),
) -> SnapshotResponse:
    try:
        snapshot = app_api.acknowledge(db, actor, snapshot_id, collaborators=collaborators)
    except CheckInError as exc:
        raise _http_error(exc) from exc
    return SnapshotResponse.model_validate(snapshot)


@router.post("/snapshots/acknowledge", response_model=AcknowledgeManyResponse)
def acknowledge_snapshots(
    payload: AcknowledgeManyRequest,
    db: Session = Depends(get_db_session),
    actor: int = Depends(get_actor),
    collaborators: Collaborators = Depends(get_collaborators),
) -> AcknowledgeManyResponse:
    try:
        count = app_api.acknowledge_many(
            db, actor, payload.snapshot_ids, collaborators=collaborators
        )
    except CheckInError as exc:
        raise _http_error(exc) from exc
    return AcknowledgeManyResponse(acknowledged=count)


@router.get("/teammates/{teammate_id}/health")
def get_check_in_health(
    teammate_id: int,
    db: Session = Depends(get_db_session),
    actor: int = Depends(get_actor),
    collaborators: Collaborators = Depends(get_collaborators),
) -> JSONResponse:
    try:
        health = app_api.teammate_health(db, actor, teammate_id, collaborators=collaborators)
    except CheckInError as exc:
        raise _http_error(exc) from exc
    return JSONResponse(content=jsonable_encoder(health.to_dict()))


@router.get("/teammates/{teammate_id}/exports/json")
def export_history_json(
    teammate_id: int,
    db: Session = Depends(get_db_session),
    actor: int = Depends(get_actor),
    collaborators: Collaborators = Depends(get_collaborators),
) -> JSONResponse:
    _require_exports_enabled()
    try:
        history_df = app_api.export_snapshot_history(
            db, actor, teammate_id, collaborators=collaborators
        )
    except CheckInError as exc:
        raise _http_error(exc) from exc
    payload = json.loads(make_json_export_payload(teammate_id, history_df))
    return JSONResponse(content=payload)


@router.get("/teammates/{teammate_id}/exports/xlsx")
def export_history_xlsx(
    teammate_id: int,
    db: Session = Depends(get_db_session),
    actor: int = Depends(get_actor),
    collaborators: Collaborators = Depends(get_collaborators),
) -> StreamingResponse:
    _require_exports_enabled()
    try:
        history_df = app_api.export_snapshot_history(
            db, actor, teammate_id, collaborators=collaborators
        )
    except CheckInError as exc:
        raise _http_error(exc) from exc
    stream = io.BytesIO(make_xlsx_export_bytes(history_df))
    stream.seek(0)
    headers = {"Content-Disposition": f"attachment; filename=check_ins_{teammate_id}.xlsx"}
    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers=headers,
    )
