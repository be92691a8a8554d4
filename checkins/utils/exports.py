from __future__ import annotations

import io
import json
from typing import Any

import pandas as pd

from ..application.api import SNAPSHOT_EXPORT_COLUMNS


def _to_iso(val):
    if hasattr(val, "isoformat"):
        try:
            return val.isoformat()
        except (TypeError, ValueError):
            return str(val)
    if val is pd.NaT:
        return None
    return val


def make_json_export_payload(teammate_id: int, history_df: pd.DataFrame) -> str:
    payload: dict[str, Any] = {
        "teammate_id": teammate_id,
        "check_ins": history_df.map(_to_iso).to_dict(orient="records"),
    }
    return json.dumps(payload, indent=2, default=str)


def make_xlsx_export_bytes(history_df: pd.DataFrame | None) -> bytes:
    """Single-sheet Excel workbook of finalized check-ins, one row per check-in."""

    if history_df is None:
        history_df = pd.DataFrame(columns=SNAPSHOT_EXPORT_COLUMNS)

    sheet = history_df.copy()
    for column in SNAPSHOT_EXPORT_COLUMNS:
        if column not in sheet.columns:
            sheet[column] = pd.NA
    sheet = sheet[SNAPSHOT_EXPORT_COLUMNS]

    bio = io.BytesIO()
    with pd.ExcelWriter(bio, engine="xlsxwriter") as writer:
        sheet.to_excel(writer, index=False, sheet_name="Check-ins")
    return bio.getvalue()
