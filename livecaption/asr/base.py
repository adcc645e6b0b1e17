"""
ASREngine: abstract interface for Whisper-compatible ASR.

Implementations: LocalWhisperEngine (faster-whisper), CloudflareWhisperEngine.
All run heavy work in executor to avoid blocking the event loop.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np


@dataclass
class ASRResult:
    """Result of one ASR transcribe call."""

    text: str
    is_final: bool = True
    language: str | None = None  # ISO 639-1 code detected by the engine, if any
    language_probability: float | None = None  # 0.0–1.0


class ASREngine(ABC):
    """
    Abstract ASR engine. Accepts float32 mono audio (normalized [-1, 1]).
    transcribe() is async; implementations may run sync work in executor.
    """

    @abstractmethod
    async def transcribe(self, audio: "np.ndarray", is_final: bool) -> ASRResult:
        """
        Transcribe the audio of one utterance so far.
        - is_final=False: partial (faster decode, may change).
        - is_final=True: final (stable decode).
        Must not block event loop; run heavy work in executor.
        """
        ...

    @abstractmethod
    async def transcribe_file(self, data: bytes, language: str | None = None) -> ASRResult:
        """Transcribe a complete encoded audio file (batch path)."""
        ...

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """Expected sample rate (e.g. 16000)."""
        ...
