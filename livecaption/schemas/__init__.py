"""Pydantic schemas for API request/response."""
from livecaption.schemas.transcribe import ControlMessage, HealthResponse, TranscribeResponse

__all__ = [
    "ControlMessage",
    "HealthResponse",
    "TranscribeResponse",
]
