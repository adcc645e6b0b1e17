"""
CloudflareWhisperEngine: Whisper via Cloudflare Workers AI.

Accepts float32 audio; wraps it as 16 kHz mono WAV for the API.
Runs HTTP call in executor to avoid blocking event loop.
whisper-large-v3-turbo reports transcription_info.language / language_probability,
which become the snapshot's language hint.
"""
from __future__ import annotations

import asyncio
import base64
import io
import logging
import wave
from typing import Any

import httpx
import numpy as np

from livecaption.asr.base import ASREngine, ASRResult
from livecaption.config import get_settings

logger = logging.getLogger(__name__)


def _float32_to_wav_bytes(audio: np.ndarray, sample_rate: int) -> bytes:
    """Convert float32 [-1, 1] to a PCM 16-bit mono WAV file in memory."""
    samples = (audio * 32767).clip(-32768, 32767).astype(np.int16)
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(samples.tobytes())
    return buf.getvalue()


def _parse_result(data: dict[str, Any], is_final: bool) -> ASRResult:
    result = data.get("result", data)
    if isinstance(result, str):
        return ASRResult(text=result.strip(), is_final=is_final)
    if not isinstance(result, dict):
        return ASRResult(text="", is_final=is_final)
    text = (result.get("text") or result.get("transcript") or "").strip()
    info = result.get("transcription_info") or {}
    probability = info.get("language_probability")
    return ASRResult(
        text=text,
        is_final=is_final,
        language=info.get("language"),
        language_probability=float(probability) if probability is not None else None,
    )


def _sync_transcribe_cloudflare(audio_file: bytes, is_final: bool, language: str | None = None) -> ASRResult:
    """Blocking HTTP call; run in executor. Raises httpx.HTTPError on transport/API failure."""
    settings = get_settings()
    account_id = settings.CLOUDFLARE_ACCOUNT_ID
    token = settings.CLOUDFLARE_API_TOKEN
    if not account_id or not token:
        logger.warning("CLOUDFLARE_ACCOUNT_ID / CLOUDFLARE_API_TOKEN not set; returning empty transcript")
        return ASRResult(text="", is_final=is_final)

    url = f"https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/run/{settings.CLOUDFLARE_ASR_MODEL}"
    headers = {"Authorization": f"Bearer {token}"}
    body: dict[str, Any] = {"audio": base64.b64encode(audio_file).decode("ascii")}
    if language:
        body["language"] = language

    with httpx.Client(timeout=30.0) as client:
        resp = client.post(url, headers=headers, json=body)
    resp.raise_for_status()
    return _parse_result(resp.json(), is_final)


class CloudflareWhisperEngine(ASREngine):
    """
    Remote Whisper via Cloudflare Workers AI.
    async transcribe() runs HTTP in executor; partial and final use the same model.
    """

    async def transcribe(self, audio: np.ndarray, is_final: bool) -> ASRResult:
        wav_bytes = _float32_to_wav_bytes(audio, self.sample_rate)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _sync_transcribe_cloudflare, wav_bytes, is_final)

    async def transcribe_file(self, data: bytes, language: str | None = None) -> ASRResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _sync_transcribe_cloudflare, data, True, language)

    @property
    def sample_rate(self) -> int:
        return get_settings().SAMPLE_RATE
