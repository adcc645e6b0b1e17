"""Tests for the Cloudflare Whisper engine response handling."""
from __future__ import annotations

import asyncio
import io
import wave

import numpy as np

from livecaption.asr.cloudflare import CloudflareWhisperEngine, _float32_to_wav_bytes, _parse_result


class TestParseResult:
    def test_text_with_language_info(self):
        result = _parse_result(
            {
                "result": {
                    "text": " hola como estas ",
                    "transcription_info": {"language": "es", "language_probability": 0.97},
                }
            },
            is_final=False,
        )
        assert result.text == "hola como estas"
        assert result.is_final is False
        assert result.language == "es"
        assert result.language_probability == 0.97

    def test_without_language_info(self):
        result = _parse_result({"result": {"text": "hello"}}, is_final=True)
        assert (result.text, result.language, result.language_probability) == ("hello", None, None)

    def test_plain_string_result(self):
        assert _parse_result({"result": "hi"}, is_final=True).text == "hi"

    def test_unexpected_shape_is_empty(self):
        assert _parse_result({"result": [1, 2]}, is_final=True).text == ""


class TestWav:
    def test_float32_to_wav(self):
        data = _float32_to_wav_bytes(np.zeros(1600, dtype=np.float32), 16000)
        with wave.open(io.BytesIO(data), "rb") as wf:
            assert wf.getnchannels() == 1
            assert wf.getsampwidth() == 2
            assert wf.getframerate() == 16000
            assert wf.getnframes() == 1600


class TestCloudflareWhisperEngine:
    def test_missing_credentials_return_empty_transcript(self):
        engine = CloudflareWhisperEngine()
        result = asyncio.run(engine.transcribe(np.zeros(320, dtype=np.float32), is_final=True))
        assert result.text == ""
        assert result.is_final is True
