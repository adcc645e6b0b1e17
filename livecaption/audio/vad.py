"""
VADProcessor: speech/silence decision per 20ms PCM frame.

Two gates, both must pass for speech:
- level: frames quieter than VAD_MIN_LEVEL_DB are silence (room hiss, muted mic).
- webrtcvad at VAD_AGGRESSIVENESS (0-3).

StreamingRecognizer uses it to open utterances and to commit them after trailing silence.
"""
from __future__ import annotations

import webrtcvad

from livecaption.audio.receiver import audio_level_db
from livecaption.config import get_settings


class VADProcessor:
    """webrtcvad accepts only 10, 20 or 30 ms frames; anything else is reported as silence."""

    def __init__(self, aggressiveness: int | None = None, min_level_db: float | None = None) -> None:
        settings = get_settings()
        self._vad = webrtcvad.Vad(
            aggressiveness if aggressiveness is not None else settings.VAD_AGGRESSIVENESS
        )
        self._min_level_db = min_level_db if min_level_db is not None else settings.VAD_MIN_LEVEL_DB
        self._frame_bytes = settings.FRAME_BYTES
        self._frame_ms = settings.FRAME_MS
        self._sample_rate = settings.SAMPLE_RATE

    def is_speech(self, frame: bytes) -> bool:
        if len(frame) != self._frame_bytes:
            return False
        if audio_level_db(frame) < self._min_level_db:
            return False
        return self._vad.is_speech(frame, self._sample_rate)

    @property
    def frame_ms(self) -> int:
        return self._frame_ms
