"""
LocalWhisperEngine: Whisper-compatible ASR using faster-whisper.

- Model loaded ONCE at startup (singleton, injected at construction).
- PARTIAL: lower beam size, no conditioning, may change.
- FINAL: higher beam size, stable decode.
- Language is auto-detected; info.language / info.language_probability become the
  snapshot's language hint.
- Runs in executor so event loop stays responsive.
"""
from __future__ import annotations

import asyncio
import io
from typing import Any

import numpy as np

from livecaption.asr.base import ASREngine, ASRResult
from livecaption.config import get_settings

# Type for shared WhisperModel (loaded at startup)
WhisperModelT = Any


def pcm_bytes_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """Convert PCM 16-bit mono bytes to float32 [-1.0, 1.0]."""
    samples = np.frombuffer(pcm_bytes, dtype=np.int16)
    return samples.astype(np.float32) / 32768.0


def _join_segments(segments: Any) -> str:
    parts = [(seg.text or "").strip() for seg in segments]
    return " ".join(p for p in parts if p).strip()


class LocalWhisperEngine(ASREngine):
    """
    Local Whisper via faster-whisper. Uses shared model (singleton).
    transcribe() is async; heavy work runs in executor.
    """

    def __init__(self, model: WhisperModelT | None = None) -> None:
        """
        model: shared WhisperModel instance (loaded at app startup).
        If None, engine returns empty results until a model is set.
        """
        self._model = model

    def _transcribe_sync(self, audio: np.ndarray, is_final: bool) -> ASRResult:
        if self._model is None:
            return ASRResult(text="", is_final=is_final)

        settings = get_settings()
        beam_size = settings.LOCAL_WHISPER_BEAM_SIZE_FINAL if is_final else settings.LOCAL_WHISPER_BEAM_SIZE_PARTIAL
        segments, info = self._model.transcribe(
            audio,
            beam_size=beam_size,
            vad_filter=False,  # utterance audio is already VAD-gated
            condition_on_previous_text=False,
            without_timestamps=True,
        )
        # segments is a lazy generator; decoding happens here
        text = _join_segments(segments)
        return ASRResult(
            text=text,
            is_final=is_final,
            language=getattr(info, "language", None),
            language_probability=getattr(info, "language_probability", None),
        )

    def _transcribe_file_sync(self, data: bytes, language: str | None) -> ASRResult:
        if self._model is None:
            return ASRResult(text="")
        settings = get_settings()
        segments, info = self._model.transcribe(
            io.BytesIO(data),
            beam_size=settings.LOCAL_WHISPER_BEAM_SIZE_FINAL,
            language=language or None,
            vad_filter=True,
            vad_parameters=dict(min_silence_duration_ms=300, speech_pad_ms=100),
        )
        text = _join_segments(segments)
        return ASRResult(
            text=text,
            language=getattr(info, "language", None),
            language_probability=getattr(info, "language_probability", None),
        )

    async def transcribe(self, audio: np.ndarray, is_final: bool) -> ASRResult:
        """Run _transcribe_sync in executor so event loop is not blocked."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._transcribe_sync, audio, is_final)

    async def transcribe_file(self, data: bytes, language: str | None = None) -> ASRResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._transcribe_file_sync, data, language)

    @property
    def sample_rate(self) -> int:
        return get_settings().SAMPLE_RATE
