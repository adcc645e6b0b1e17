"""
Turn segmentation data types.

- Snapshot: one recognizer-delivered state of the current utterance (partial or final).
- TurnEvent: one emitted caption event; exactly one TurnKind applies.
- Session: per-stream utterance state, owned by TurnSegmenter only.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable


class TurnKind(str, Enum):
    FINAL_TURN = "final_turn"
    PARTIAL_UPDATE = "partial_update"
    NEW_BLOCK = "new_block"
    FORCED_CLOSE = "forced_close"
    CORRECTION = "correction"

    @property
    def closes_turn(self) -> bool:
        """True for kinds that finalize an utterance (reported to clients as isNewTurn)."""
        return self in (TurnKind.FINAL_TURN, TurnKind.FORCED_CLOSE)


@dataclass(frozen=True)
class Snapshot:
    """One transcript state from the recognizer. text is the full utterance so far."""

    text: str
    is_final: bool = False
    language_hint: str | None = None
    confidence: float | None = None  # confidence of language_hint, 0.0–1.0

    @classmethod
    def from_engine_payload(cls, payload: dict[str, Any]) -> "Snapshot":
        """Build from the engine notification shape {transcript, is_final, language_code?, language_confidence?}."""
        confidence = payload.get("language_confidence")
        return cls(
            text=payload.get("transcript") or "",
            is_final=bool(payload.get("is_final", False)),
            language_hint=payload.get("language_code") or None,
            confidence=float(confidence) if confidence is not None else None,
        )


@dataclass(frozen=True)
class TurnEvent:
    """Caption event for one session. Sent to the client as one JSON message."""

    text: str
    language: str
    kind: TurnKind
    session_id: str

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "text": self.text,
            "language": self.language,
            "sessionId": self.session_id,
            "isNewTurn": self.kind.closes_turn,
        }
        if self.kind is TurnKind.FORCED_CLOSE:
            payload["isForcedClose"] = True
        elif self.kind is TurnKind.NEW_BLOCK:
            payload["isNewBlock"] = True
        elif self.kind is TurnKind.CORRECTION:
            payload["isCorrection"] = True
        return payload


EventSink = Callable[[TurnEvent], None]


@dataclass
class Session:
    """
    State of one live stream. At most one open utterance: accumulated_text is
    empty when no utterance is open, and last_emitted_length is then zero.
    """

    id: str
    sink: EventSink | None = None
    accumulated_text: str = ""
    last_emitted_length: int = 0
    pending_close_timer: asyncio.Task | None = None
    chunk_count: int = 0

    @property
    def has_open_utterance(self) -> bool:
        return bool(self.accumulated_text)

    def reset_utterance(self) -> None:
        self.accumulated_text = ""
        self.last_emitted_length = 0
