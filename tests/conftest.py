"""Shared fixtures and test doubles for the livecaption test suite."""
from __future__ import annotations

import asyncio

import pytest

from livecaption.asr.base import ASREngine, ASRResult

SPEECH_FRAME = b"\x01" * 640
SILENCE_FRAME = b"\x00" * 640


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    """Settings are read from the environment on every get_settings() call."""
    monkeypatch.setenv("ASR_BACKEND", "cloudflare")
    monkeypatch.setenv("TRANSCRIPT_DIR", str(tmp_path / "transcripts"))
    monkeypatch.setenv("CLOUDFLARE_ACCOUNT_ID", "")
    monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "")
    monkeypatch.delenv("CORRECTION_ENABLED", raising=False)
    monkeypatch.delenv("LOG_FILE", raising=False)
    yield


class FakeVAD:
    """Frames made of non-zero bytes are speech."""

    def is_speech(self, frame: bytes) -> bool:
        return any(frame)


class FakeEngine(ASREngine):
    """Scripted engine: returns results in order (last one repeats) and records calls."""

    def __init__(self, results=None, error: Exception | None = None) -> None:
        self.results = list(results or [ASRResult(text="")])
        self.error = error
        self.calls: list[tuple[int, bool]] = []
        self.files: list[bytes] = []

    async def transcribe(self, audio, is_final: bool) -> ASRResult:
        self.calls.append((len(audio), is_final))
        if self.error is not None:
            raise self.error
        index = min(len(self.calls) - 1, len(self.results) - 1)
        result = self.results[index]
        return ASRResult(
            text=result.text,
            is_final=is_final,
            language=result.language,
            language_probability=result.language_probability,
        )

    async def transcribe_file(self, data: bytes, language: str | None = None) -> ASRResult:
        self.files.append(data)
        if self.error is not None:
            raise self.error
        return self.results[-1]

    @property
    def sample_rate(self) -> int:
        return 16000


async def settle(seconds: float = 0.01) -> None:
    """Let scheduled tasks run."""
    await asyncio.sleep(seconds)
