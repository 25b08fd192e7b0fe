"""
Schemas for the session WebSocket.

Client → server text frames are SessionCommands (binary frames carry audio).
Server → client messages are plain JSON objects with a "type" field:
session | state | transcript | error | stopped.
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class SessionCommand(BaseModel):
    """One control message from the client. Fields not used by a command type are ignored."""

    type: Literal["start", "pause", "resume", "stop", "rename", "translate", "correct"]
    language: str | None = Field(None, description="start: recognition language (e.g. ja-JP)")
    sample_rate: int | None = Field(None, gt=0, description="start: rate of the float32 audio the client sends")
    phrase_list: list[str] | None = Field(None, description="start: phrases biasing recognition and correction")
    target_languages: list[str] | None = Field(
        None, description="start: translate every new segment into these languages"
    )
    speaker: str | None = Field(None, description="rename: raw speaker tag")
    label: str | None = Field(None, description="rename: new label (empty = back to raw tag)")
    segment_id: int | None = Field(None, description="translate: segment id")
    target_language: str | None = Field(None, description="translate: target language")


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    kind: str = Field(..., description="configuration | connection | recognition | audio | storage | state | request")
    detail: str
