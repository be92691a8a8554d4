"""
Pydantic schemas for validating check-in input.

Inputs arrive from the web layer or from scripts; these schemas strip
markup from free text and enforce the structural rules. Rating membership
is checked later against the record's target kind.
"""

from __future__ import annotations

import re
from html import unescape
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import PersonalAlignment, SideStatus, TargetKind


class BaseValidationSchema(BaseModel):
    """Base schema with common validation utilities."""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    @field_validator("*", mode="before")
    def sanitize_strings(cls, v):
        """Remove markup and control characters from free-text input."""
        if isinstance(v, str):
            cleaned = unescape(v.strip())
            cleaned = re.sub(
                r"<\s*script[^>]*>.*?<\s*/\s*script\s*>",
                "",
                cleaned,
                flags=re.IGNORECASE | re.DOTALL,
            )
            cleaned = re.sub(r"<[^>]+>", "", cleaned)
            cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]", "", cleaned)
            return cleaned
        return v


RatingValue = str | int


class SideUpdateInput(BaseValidationSchema):
    """
    A partial update to one side of a check-in.

    Omitted or null fields are left unchanged; an empty ``private_notes``
    string clears the notes.
    """

    status: SideStatus = Field(default=SideStatus.DRAFT)
    rating: RatingValue | None = Field(default=None)
    private_notes: str | None = Field(default=None, max_length=10000)
    actual_energy_percentage: int | None = Field(default=None, ge=0, le=100)
    personal_alignment: PersonalAlignment | None = Field(default=None)

    @field_validator("rating")
    def validate_rating_not_blank(cls, v):
        if isinstance(v, str) and not v:
            raise ValueError("Rating cannot be blank")
        return v


class OpenCheckInInput(BaseValidationSchema):
    target_kind: TargetKind
    target_id: int = Field(..., gt=0)


class FinalizationSelectionInput(BaseValidationSchema):
    check_in_id: int = Field(..., gt=0)
    official_rating: RatingValue | None = None
    shared_notes: str | None = Field(default=None, max_length=10000)


class FinalizationInput(BaseValidationSchema):
    """Validation schema for a batch finalization request."""

    selections: list[FinalizationSelectionInput] = Field(..., min_length=1)
    reason: str | None = Field(default=None, max_length=2000)


class AcknowledgeManyInput(BaseValidationSchema):
    snapshot_ids: list[int] = Field(..., min_length=1, max_length=200)

    @field_validator("snapshot_ids")
    def validate_snapshot_ids(cls, v):
        if any(sid <= 0 for sid in v):
            raise ValueError("All snapshot IDs must be positive integers")
        return list(dict.fromkeys(v))


class ValidationErrorDetail(BaseModel):
    field: str
    message: str
    value: Any = None


class ValidationResponse(BaseModel):
    success: bool
    errors: list[ValidationErrorDetail] = []
    data: dict[str, Any] | None = None


def validate_input(schema_class: type[BaseModel], data: dict[str, Any]) -> ValidationResponse:
    """
    Validate ``data`` against ``schema_class`` and collect errors instead of raising.

    Example:
        >>> result = validate_input(OpenCheckInInput, {"target_kind": "position", "target_id": 3})
        >>> result.success
        True
    """
    try:
        validated = schema_class(**data)
        return ValidationResponse(success=True, data=validated.model_dump(exclude_unset=True))
    except Exception as e:
        errors = []
        if hasattr(e, "errors"):
            for error in e.errors():
                errors.append(
                    ValidationErrorDetail(
                        field=".".join(str(x) for x in error["loc"]),
                        message=error["msg"],
                        value=error.get("input"),
                    )
                )
        else:
            errors.append(ValidationErrorDetail(field="general", message=str(e)))

        return ValidationResponse(success=False, errors=errors)
