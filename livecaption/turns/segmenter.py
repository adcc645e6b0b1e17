"""
TurnSegmenter: per-session state machine from recognizer snapshots to caption events.

Every snapshot carries the full text of the current utterance. The segmenter decides,
per snapshot, between:
- FINAL: authoritative end of utterance -> FinalTurn with the whole text, state reset.
- GROWTH: longer partial -> PartialUpdate with only the unseen suffix.
- REFORMULATION: shorter partial -> FinalTurn for the old text, then NewBlock for the new.
- DUPLICATE: same length -> nothing.

A force-close timer is restarted on every partial; if the recognizer goes quiet for
the configured delay, the open utterance is closed with ForcedClose. stop() closes the
same way, so open text is never dropped.

All methods are synchronous and must be called from the event loop thread; timer and
correction callbacks run on the same loop, so one session is never mutated concurrently.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from livecaption.config import get_settings
from livecaption.turns.language import LanguageDetector, normalize_tag
from livecaption.turns.models import EventSink, Session, Snapshot, TurnEvent, TurnKind

logger = logging.getLogger(__name__)


def _preview(text: str, limit: int = 40) -> str:
    text = text.strip()
    return text if len(text) <= limit else text[:limit] + "..."


def _words(text: str) -> list[str]:
    return [w for w in (t.strip(".,;:!?¿¡\"'").lower() for t in text.split()) if w]


class CorrectionOverlay(ABC):
    """Polishes a finalized turn. Returns the same text when nothing needs fixing."""

    @abstractmethod
    async def correct(self, text: str, language: str) -> str:
        ...


class TurnSegmenter:
    """
    Owns the session_id -> Session store. Events go to the session's sink (set at
    start) or the segmenter-wide sink, and are also returned from on_snapshot/stop.
    """

    def __init__(
        self,
        sink: EventSink | None = None,
        detector: LanguageDetector | None = None,
        correction: CorrectionOverlay | None = None,
        force_close_delay: float | None = None,
        hint_min_confidence: float | None = None,
        drastic_change: bool | None = None,
    ) -> None:
        settings = get_settings()
        self._sink = sink
        self._detector = detector or LanguageDetector(ratio_threshold=settings.LANGUAGE_RATIO_THRESHOLD)
        self._correction = correction
        self._force_close_delay = (
            force_close_delay if force_close_delay is not None else settings.FORCE_CLOSE_DELAY_SECONDS
        )
        self._hint_min_confidence = (
            hint_min_confidence if hint_min_confidence is not None else settings.LANGUAGE_HINT_MIN_CONFIDENCE
        )
        self._drastic_enabled = (
            drastic_change if drastic_change is not None else settings.TURN_DRASTIC_CHANGE_ENABLED
        )
        self._drastic_max_words = settings.TURN_DRASTIC_MAX_PRIOR_WORDS
        self._drastic_ratio = settings.TURN_DRASTIC_LENGTH_RATIO

        self._sessions: dict[str, Session] = {}
        self._correction_tasks: set[asyncio.Task] = set()

    # --- session lifecycle ---

    def start(self, session_id: str, sink: EventSink | None = None) -> Session:
        """Create a fresh session. An existing session with the same id is replaced, not merged."""
        previous = self._sessions.get(session_id)
        if previous is not None:
            logger.warning(
                "Session %s restarted; discarding open text (%d chars)",
                session_id, len(previous.accumulated_text),
            )
            self._cancel_timer(previous)
        session = Session(id=session_id, sink=sink or self._sink)
        self._sessions[session_id] = session
        logger.info("Turn session started: %s", session_id)
        return session

    def stop(self, session_id: str) -> list[TurnEvent]:
        """Close any open utterance as ForcedClose, then destroy the session. Unknown ids are ignored."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return []
        events: list[TurnEvent] = []
        self._close_utterance(session, TurnKind.FORCED_CLOSE, events)
        logger.info("Turn session stopped: %s (chunks=%d)", session_id, session.chunk_count)
        return events

    def record_audio_chunk(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.chunk_count += 1

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    async def aclose(self) -> None:
        """Cancel all timers and in-flight corrections (app shutdown). Sessions are not flushed."""
        tasks: list[asyncio.Task] = []
        for session in self._sessions.values():
            if session.pending_close_timer is not None:
                tasks.append(session.pending_close_timer)
            self._cancel_timer(session)
        self._sessions.clear()
        for task in list(self._correction_tasks):
            task.cancel()
            tasks.append(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # --- snapshot handling ---

    def on_snapshot(self, session_id: str, snapshot: Snapshot) -> list[TurnEvent]:
        """Apply one snapshot. Returns the events emitted for it, in order."""
        session = self._sessions.get(session_id)
        if session is None:
            logger.debug("Snapshot for unknown session %s ignored", session_id)
            return []
        text = snapshot.text or ""
        if not text.strip():
            return []

        language = self._resolve_language(snapshot)
        events: list[TurnEvent] = []

        if snapshot.is_final:
            self._cancel_timer(session)
            session.reset_utterance()
            logger.info("FINAL [%s] [%s]: %r", session_id, language, _preview(text, 60))
            self._emit(session, TurnEvent(text.strip(), language, TurnKind.FINAL_TURN, session_id), events)
            return events

        new_len = len(text)
        if new_len < session.last_emitted_length:
            logger.info(
                "REFORMULATION [%s]: %d -> %d chars", session_id, session.last_emitted_length, new_len
            )
            self._start_new_block(session, text, language, events)
        elif new_len > session.last_emitted_length:
            if self._is_drastic_change(session, text):
                logger.info(
                    "DRASTIC CHANGE [%s]: %r -> %r",
                    session_id, _preview(session.accumulated_text), _preview(text),
                )
                self._start_new_block(session, text, language, events)
            else:
                self._grow(session, text, language, events)
        else:
            logger.debug("DUPLICATE [%s]: same length %d", session_id, new_len)

        if session.has_open_utterance:
            self._schedule_close(session)
        return events

    def _resolve_language(self, snapshot: Snapshot) -> str:
        hint = normalize_tag(snapshot.language_hint, self._detector.languages)
        if hint is not None and (
            snapshot.confidence is None or snapshot.confidence >= self._hint_min_confidence
        ):
            return hint
        return self._detector.detect(snapshot.text)

    def _grow(self, session: Session, text: str, language: str, events: list[TurnEvent]) -> None:
        suffix = text[session.last_emitted_length:].strip()
        session.accumulated_text = text
        session.last_emitted_length = len(text)
        if suffix:
            logger.debug(
                "PARTIAL [%s] [%s]: new=%r (sent %d)",
                session.id, language, _preview(suffix), session.last_emitted_length,
            )
            self._emit(session, TurnEvent(suffix, language, TurnKind.PARTIAL_UPDATE, session.id), events)

    def _start_new_block(self, session: Session, text: str, language: str, events: list[TurnEvent]) -> None:
        """Finalize the previously displayed text before the new hypothesis replaces it."""
        previous = session.accumulated_text
        session.accumulated_text = text
        session.last_emitted_length = len(text)
        if previous.strip():
            closing = TurnEvent(
                previous.strip(), self._detector.detect(previous), TurnKind.FINAL_TURN, session.id
            )
            self._emit(session, closing, events)
        self._emit(session, TurnEvent(text.strip(), language, TurnKind.NEW_BLOCK, session.id), events)

    def _is_drastic_change(self, session: Session, text: str) -> bool:
        """Short open utterance replaced by a much longer one that does not continue it."""
        if not self._drastic_enabled or not session.has_open_utterance:
            return False
        prior = _words(session.accumulated_text)
        if not prior or len(prior) > self._drastic_max_words:
            return False
        if len(text.strip()) <= len(session.accumulated_text.strip()) * self._drastic_ratio:
            return False
        new = _words(text)
        if len(new) < len(prior) or new[: len(prior) - 1] != prior[:-1]:
            return True
        # Last prior word may have been cut mid-word ("com" -> "como")
        return not new[len(prior) - 1].startswith(prior[-1])

    # --- closing ---

    def _close_utterance(self, session: Session, kind: TurnKind, events: list[TurnEvent]) -> None:
        """Single close path for timer, stop and upstream close. Leaves no timer and no open text."""
        self._cancel_timer(session)
        if not session.has_open_utterance:
            return
        text = session.accumulated_text
        session.reset_utterance()
        language = self._detector.detect(text)
        logger.info("FORCED CLOSE [%s] [%s]: %r", session.id, language, _preview(text, 60))
        self._emit(session, TurnEvent(text.strip(), language, kind, session.id), events)

    def _schedule_close(self, session: Session) -> None:
        self._cancel_timer(session)
        session.pending_close_timer = asyncio.get_running_loop().create_task(
            self._force_close_after_delay(session)
        )

    async def _force_close_after_delay(self, session: Session) -> None:
        await asyncio.sleep(self._force_close_delay)
        # Session replaced/stopped or timer rescheduled meanwhile: stale
        if self._sessions.get(session.id) is not session:
            return
        if session.pending_close_timer is not asyncio.current_task():
            return
        session.pending_close_timer = None
        self._close_utterance(session, TurnKind.FORCED_CLOSE, [])

    @staticmethod
    def _cancel_timer(session: Session) -> None:
        timer = session.pending_close_timer
        session.pending_close_timer = None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    # --- output ---

    def _emit(self, session: Session, event: TurnEvent, events: list[TurnEvent]) -> None:
        events.append(event)
        if session.sink is not None:
            session.sink(event)
        if event.kind.closes_turn and self._correction is not None:
            self._hand_off_correction(session.sink, event)

    def _hand_off_correction(self, sink: EventSink | None, event: TurnEvent) -> None:
        task = asyncio.get_running_loop().create_task(self._correct(sink, event))
        self._correction_tasks.add(task)
        task.add_done_callback(self._correction_tasks.discard)

    async def _correct(self, sink: EventSink | None, event: TurnEvent) -> None:
        try:
            corrected = await self._correction.correct(event.text, event.language)
        except Exception as e:
            logger.warning("Correction failed for session %s: %s", event.session_id, e)
            return
        corrected = (corrected or "").strip()
        if not corrected or corrected == event.text:
            return
        logger.info("CORRECTION [%s]: %r -> %r", event.session_id, _preview(event.text), _preview(corrected))
        if sink is not None:
            sink(TurnEvent(corrected, event.language, TurnKind.CORRECTION, event.session_id))
