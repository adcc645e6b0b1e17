"""Tests for the Workers AI correction overlay."""
from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from livecaption.config import Settings
from livecaption.services.correction_service import (
    CloudflareCorrectionOverlay,
    _build_user_message,
    _extract_corrected_text,
    create_correction_overlay,
)


def _settings(**overrides) -> Settings:
    values = dict(
        CORRECTION_ENABLED=True,
        CLOUDFLARE_ACCOUNT_ID="acct",
        CLOUDFLARE_API_TOKEN="secret",
    )
    values.update(overrides)
    return Settings(**values)


def _correct(overlay: CloudflareCorrectionOverlay, text: str, language: str) -> str:
    return asyncio.run(overlay.correct(text, language))


class TestExtractCorrectedText:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Hola, ¿cómo estás?", "Hola, ¿cómo estás?"),
            ('"Hola."', "Hola."),
            ("Corrected: Hello there.", "Hello there."),
            ("```\nHello.\n```", "Hello."),
            ("   ", ""),
        ],
    )
    def test_cleanup(self, raw, expected):
        assert _extract_corrected_text(raw) == expected

    def test_user_message_names_the_language(self):
        assert _build_user_message("hola", "es") == "Language: Spanish\nCaption: hola"


class TestCloudflareCorrectionOverlay:
    def test_posts_caption_and_returns_model_text(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"result": {"response": "Hola, ¿cómo estás?"}, "success": True})

        async def scenario():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                overlay = CloudflareCorrectionOverlay(_settings(), client=client)
                return await overlay.correct("hola como estas", "es")

        assert asyncio.run(scenario()) == "Hola, ¿cómo estás?"
        request = requests[0]
        assert request.url.path.startswith("/client/v4/accounts/acct/ai/run/")
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["messages"][-1]["content"] == "Language: Spanish\nCaption: hola como estas"

    def test_empty_model_reply_keeps_original(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"result": {"response": ""}})

        async def scenario():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await CloudflareCorrectionOverlay(_settings(), client=client).correct("ok", "en")

        assert asyncio.run(scenario()) == "ok"

    def test_api_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"success": False})

        async def scenario():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                await CloudflareCorrectionOverlay(_settings(), client=client).correct("ok", "en")

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(scenario())

    def test_unconfigured_overlay_makes_no_request(self):
        overlay = CloudflareCorrectionOverlay(_settings(CLOUDFLARE_API_TOKEN=""))
        assert not overlay.configured
        assert _correct(overlay, "as is", "en") == "as is"

    def test_disabled_overlay_is_not_configured(self):
        overlay = CloudflareCorrectionOverlay(_settings(CORRECTION_ENABLED=False))
        assert not overlay.configured


class TestCreateCorrectionOverlay:
    def test_disabled_by_default(self):
        assert create_correction_overlay() is None

    def test_enabled_from_environment(self, monkeypatch):
        monkeypatch.setenv("CORRECTION_ENABLED", "true")
        monkeypatch.setenv("CLOUDFLARE_ACCOUNT_ID", "acct")
        monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "secret")
        overlay = create_correction_overlay()
        assert isinstance(overlay, CloudflareCorrectionOverlay)
        assert overlay.configured
