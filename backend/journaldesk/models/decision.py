from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

RevisionType = Literal["minor", "major"]


class ApproveRequest(BaseModel):
    rationale: Optional[str] = Field(None, max_length=20000)


class RejectRequest(BaseModel):
    """拒稿 / desk reject 必须写明理由"""

    rationale: str = Field(..., min_length=1, max_length=20000)

    @field_validator("rationale")
    @classmethod
    def _required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("A rationale is required")
        return v


class RevisionRequestCreate(BaseModel):
    revision_type: RevisionType
    request_details: str = Field(..., min_length=1, max_length=20000)
    deadline_date: date

    @field_validator("request_details")
    @classmethod
    def _details_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Revision details are required")
        return v

    @field_validator("deadline_date")
    @classmethod
    def _future_deadline(cls, v: date) -> date:
        if v <= date.today():
            raise ValueError("deadline_date must be in the future")
        return v


class RevisionSubmitRequest(BaseModel):
    response_notes: str = Field(..., min_length=1, max_length=20000)

    @field_validator("response_notes")
    @classmethod
    def _notes_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Response notes are required")
        return v
