"""
StreamingRecognizer: turns a live PCM stream into transcript snapshots.

Whisper-style engines are not incremental, so the open utterance is re-transcribed:
- VAD opens an utterance on the first speech frame (with a short pre-roll).
- Every STT_PARTIAL_STEP_SECONDS of utterance audio, the whole utterance so far is
  queued as a PARTIAL job. Re-decoding may grow, repeat or shrink the text; the
  TurnSegmenter sorts that out.
- After SILENCE_COMMIT_MS of trailing silence (or STT_MAX_UTTERANCE_SECONDS) the
  utterance is queued as a FINAL job and a new utterance can start.

One consumer task runs jobs in order, so snapshots are delivered in order. A partial
job that already has a newer job behind it is skipped: only the latest hypothesis matters.
Engine errors stop the recognizer and are reported through on_error; no retry.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Callable

from livecaption.asr.base import ASREngine
from livecaption.asr.local_whisper import pcm_bytes_to_float32
from livecaption.audio.receiver import AudioReceiver
from livecaption.audio.vad import VADProcessor
from livecaption.config import get_settings
from livecaption.turns.models import Snapshot

logger = logging.getLogger(__name__)


class StreamingRecognizer:
    """One recognizer per live session. start() before send_audio(); close() flushes."""

    def __init__(
        self,
        engine: ASREngine,
        on_snapshot: Callable[[Snapshot], None],
        on_open: Callable[[], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        on_close: Callable[[], None] | None = None,
        vad: VADProcessor | None = None,
        partial_step_sec: float | None = None,
        min_utterance_sec: float | None = None,
        silence_commit_ms: int | None = None,
        max_utterance_sec: float | None = None,
        preroll_ms: int | None = None,
    ) -> None:
        settings = get_settings()
        self._engine = engine
        self._on_snapshot = on_snapshot
        self._on_open = on_open
        self._on_error = on_error
        self._on_close = on_close
        self._receiver = AudioReceiver()
        self._vad = vad or VADProcessor()

        frame_sec = settings.FRAME_MS / 1000.0
        step = partial_step_sec if partial_step_sec is not None else settings.STT_PARTIAL_STEP_SECONDS
        min_utt = min_utterance_sec if min_utterance_sec is not None else settings.STT_MIN_UTTERANCE_SECONDS
        silence_ms = silence_commit_ms if silence_commit_ms is not None else settings.SILENCE_COMMIT_MS
        max_utt = max_utterance_sec if max_utterance_sec is not None else settings.STT_MAX_UTTERANCE_SECONDS
        preroll = preroll_ms if preroll_ms is not None else settings.STT_PREROLL_MS

        self._step_frames = max(1, int(step / frame_sec))
        self._min_frames = max(1, int(min_utt / frame_sec))
        self._silence_commit_frames = max(1, silence_ms // settings.FRAME_MS)
        self._max_frames = max(self._step_frames, int(max_utt / frame_sec))
        self._preroll_frames = max(0, preroll // settings.FRAME_MS)

        self._queue: asyncio.Queue[tuple[bytes, bool] | None] = asyncio.Queue()
        self._consumer_task: asyncio.Task | None = None
        self._preroll: deque[bytes] = deque(maxlen=self._preroll_frames or None)
        self._utterance: list[bytes] = []
        self._silence_frames = 0
        self._frames_since_partial = 0
        self._partials_queued = 0
        self._accepting = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._accepting

    async def start(self) -> None:
        if self._consumer_task is not None:
            return
        self._consumer_task = asyncio.create_task(self._consume())
        self._accepting = True
        logger.info("Streaming recognizer open (%s)", type(self._engine).__name__)
        if self._on_open:
            self._on_open()

    def send_audio(self, data: bytes) -> None:
        """Feed raw PCM 16-bit mono bytes of any length. Ignored when not open."""
        if not self._accepting:
            return
        self._receiver.feed(data)
        for frame in self._receiver.drain_frames():
            self._push_frame(frame, self._vad.is_speech(frame))

    def _push_frame(self, frame: bytes, is_speech: bool) -> None:
        if not self._utterance:
            if not is_speech:
                if self._preroll_frames:
                    self._preroll.append(frame)
                return
            # Speech onset: open utterance with pre-roll so the first syllable is not clipped
            self._utterance.extend(self._preroll)
            self._preroll.clear()
            self._silence_frames = 0
            self._frames_since_partial = 0

        self._utterance.append(frame)
        self._frames_since_partial += 1
        if is_speech:
            self._silence_frames = 0
        else:
            self._silence_frames += 1

        if self._silence_frames >= self._silence_commit_frames or len(self._utterance) >= self._max_frames:
            self._commit()
            return
        if self._frames_since_partial >= self._step_frames and len(self._utterance) >= self._min_frames:
            self._frames_since_partial = 0
            self._partials_queued += 1
            self._queue.put_nowait((b"".join(self._utterance), False))

    def _commit(self) -> None:
        """Queue the open utterance as FINAL (trailing silence trimmed) and reset."""
        keep = len(self._utterance) - max(0, self._silence_frames - self._preroll_frames)
        frames = self._utterance[:keep]
        # A final is always sent once partials went out, so the segmenter gets an authoritative close
        if self._partials_queued or len(frames) >= self._min_frames:
            self._queue.put_nowait((b"".join(frames), True))
        self._utterance = []
        self._silence_frames = 0
        self._frames_since_partial = 0
        self._partials_queued = 0

    async def _consume(self) -> None:
        while True:
            item = await self._queue.get()
            if item is None:
                break
            pcm, is_final = item
            if not is_final and not self._queue.empty():
                continue
            try:
                result = await self._engine.transcribe(pcm_bytes_to_float32(pcm), is_final=is_final)
            except Exception as e:
                logger.error("ASR engine failed (%s): %s", "final" if is_final else "partial", e)
                self._accepting = False
                if self._on_error:
                    self._on_error(e)
                break
            self._on_snapshot(
                Snapshot(
                    text=result.text,
                    is_final=is_final,
                    language_hint=result.language,
                    confidence=result.language_probability,
                )
            )

    async def close(self, timeout: float = 30.0) -> None:
        """Stop accepting audio, finalize the open utterance, drain jobs, then fire on_close."""
        if self._closed:
            return
        self._closed = True
        self._accepting = False
        if self._utterance:
            self._commit()
        self._queue.put_nowait(None)
        if self._consumer_task is not None:
            try:
                await asyncio.wait_for(self._consumer_task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Streaming recognizer did not drain within %.1fs; pending jobs dropped", timeout)
        logger.info("Streaming recognizer closed")
        if self._on_close:
            self._on_close()
