"""
Schemas for the realtime correction API.

Request: a small batch of recent segments plus language and optional phrase hints.
Response: only the segments that needed a fix, as {id, original, corrected}.
Segment ids are strings on the wire.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class CorrectionSegment(BaseModel):
    id: str
    text: str


class CorrectionRequest(BaseModel):
    """Request body for POST CORRECTION_URL."""

    segments: list[CorrectionSegment] = Field(..., description="Segments to check, in transcript order")
    language: str = Field(..., description="Recognition language (e.g. ja-JP)")
    phrase_list: list[str] | None = Field(
        None,
        alias="phraseList",
        description="Proper nouns / jargon likely to appear; hint for fixing misrecognitions",
    )

    class Config:
        populate_by_name = True


class CorrectionItem(BaseModel):
    id: str
    original: str = ""
    corrected: str

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_string(cls, value: Any) -> Any:
        # LLM backends sometimes echo numeric ids as JSON numbers
        if isinstance(value, int):
            return str(value)
        return value


class CorrectionResponse(BaseModel):
    corrections: list[CorrectionItem] = Field(default_factory=list)
