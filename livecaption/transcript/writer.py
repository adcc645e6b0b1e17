"""
TranscriptWriter: session-based, append-only persistence of finalized caption turns.

- One line per FinalTurn / ForcedClose, prefixed with the turn language: "[es] hola".
- Corrections are appended as their own line ("[es] (corrected) Hola."); earlier lines
  are never rewritten.
- PartialUpdate and NewBlock are live, uncertain text and are never written.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Optional

from livecaption.config import get_settings
from livecaption.turns.models import TurnEvent, TurnKind

logger = logging.getLogger(__name__)


def _format_line(event: TurnEvent, elapsed_sec: Optional[float]) -> str:
    parts: list[str] = []
    if elapsed_sec is not None:
        mm = int(elapsed_sec // 60)
        ss = elapsed_sec % 60
        parts.append(f"[{mm:02d}:{ss:05.2f}]")
    parts.append(f"[{event.language}]")
    if event.kind is TurnKind.CORRECTION:
        parts.append("(corrected)")
    parts.append(event.text.strip())
    return " ".join(parts)


class TranscriptWriterBase(ABC):
    """Base for session transcript writer."""

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    def append_turn(self, event: TurnEvent) -> None:
        """Queue a finalized turn or correction. Non-blocking; other kinds are ignored."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class NoOpTranscriptWriter(TranscriptWriterBase):
    """When transcript saving is disabled. No file I/O."""

    async def start(self) -> None:
        pass

    def append_turn(self, event: TurnEvent) -> None:
        pass

    async def close(self) -> None:
        pass


class TranscriptWriter(TranscriptWriterBase):
    """
    One file per session: {TRANSCRIPT_DIR}/{session_id}.txt, opened in append mode.
    A worker task drains the queue so the caption path never blocks on disk.
    """

    def __init__(
        self,
        session_id: str,
        transcript_dir: Optional[str] = None,
        add_timestamps: Optional[bool] = None,
    ) -> None:
        if not session_id or session_id in (".", "..") or os.path.basename(session_id) != session_id:
            raise ValueError(f"Session id is not a plain file name: {session_id!r}")
        settings = get_settings()
        self._session_id = session_id
        self._transcript_dir = transcript_dir or settings.TRANSCRIPT_DIR
        self._add_timestamps = add_timestamps if add_timestamps is not None else settings.TRANSCRIPT_ADD_TIMESTAMPS
        self._path = os.path.join(self._transcript_dir, f"{session_id}.txt")
        self._file = None
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None
        self._started_at = time.monotonic()

    @property
    def path(self) -> str:
        return self._path

    async def _worker(self) -> None:
        """Write each line (append + newline + flush). None = close. Log errors, never crash."""
        while True:
            line = await self._queue.get()
            if line is None:
                break
            if self._file is None:
                continue
            try:
                self._file.write(line + "\n")
                self._file.flush()
            except OSError as e:
                logger.warning("Transcript write failed for %s: %s", self._path, e)
        try:
            if self._file is not None:
                self._file.close()
        except OSError as e:
            logger.warning("Transcript close failed for %s: %s", self._path, e)
        finally:
            self._file = None

    async def start(self) -> None:
        if self._worker_task is not None:
            return
        self._started_at = time.monotonic()
        try:
            os.makedirs(self._transcript_dir, exist_ok=True)
            self._file = open(self._path, "a", encoding="utf-8")
        except OSError as e:
            logger.warning("Transcript file open failed for %s: %s", self._path, e)
        self._worker_task = asyncio.create_task(self._worker())

    def append_turn(self, event: TurnEvent) -> None:
        if not (event.kind.closes_turn or event.kind is TurnKind.CORRECTION):
            return
        if not event.text.strip() or self._worker_task is None:
            return
        elapsed = time.monotonic() - self._started_at if self._add_timestamps else None
        self._queue.put_nowait(_format_line(event, elapsed))

    async def close(self) -> None:
        """Signal worker to stop and close file."""
        if self._worker_task is None:
            return
        self._queue.put_nowait(None)
        try:
            await asyncio.wait_for(self._worker_task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Transcript writer for %s did not flush in time", self._session_id)
        self._worker_task = None


def create_transcript_writer(session_id: str) -> TranscriptWriterBase:
    """Create writer when TRANSCRIPT_SAVE_ENABLED is true; else no-op."""
    settings = get_settings()
    if not settings.TRANSCRIPT_SAVE_ENABLED:
        return NoOpTranscriptWriter()
    return TranscriptWriter(session_id=session_id)
