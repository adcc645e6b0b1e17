"""
Schemas for the transcription API.

- TranscribeResponse: batch upload result (POST /transcribe).
- ControlMessage: JSON text frames on /ws/transcribe
  (startTranscription | audioChunk | stopTranscription).
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Session ids name transcript files: letters, digits, "_" and "-" only
SESSION_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


class TranscribeResponse(BaseModel):
    """Response body for POST /transcribe."""

    text: str = Field("", description="Full transcript of the uploaded audio; empty when nothing was recognized")


class HealthResponse(BaseModel):
    status: str = "ok"
    sessions: int = Field(0, description="Active live caption sessions")


class ControlMessage(BaseModel):
    """One client control message on the caption WebSocket."""

    model_config = ConfigDict(populate_by_name=True)

    event: Literal["startTranscription", "audioChunk", "stopTranscription"]
    session_id: str = Field(..., alias="sessionId", pattern=SESSION_ID_PATTERN)
    chunk: list[int] | None = Field(
        None,
        description="audioChunk only: PCM 16-bit mono 16kHz bytes as a list of ints (0-255)",
    )

    def chunk_bytes(self) -> bytes:
        return bytes(b & 0xFF for b in (self.chunk or []))
