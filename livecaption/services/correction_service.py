"""
Correction overlay: polish one finalized caption turn with Cloudflare Workers AI.

- Runs detached from the segmentation path; TurnSegmenter never awaits it.
- Minimal edits only: punctuation, accents, casing, obvious mishearings. Same language.
- Returns the input unchanged when disabled, unconfigured, or when the model says nothing.
"""
from __future__ import annotations

import logging
import re

import httpx

from livecaption.config import Settings, get_settings
from livecaption.turns.segmenter import CorrectionOverlay

logger = logging.getLogger(__name__)

_LANGUAGE_NAMES = {"es": "Spanish", "en": "English"}

_SYSTEM_PROMPT = """You correct live speech-recognition captions.

Rules:
- Fix punctuation, capitalization, accents and obvious misheard words only.
- Keep the same language as the input. Never translate.
- Never add, remove or summarize content.
- If the caption is already correct, return it unchanged.

Return only the corrected caption text, no quotes, no explanations."""

# Model sometimes wraps the answer: "Corrected: ...", quotes, code fences
_PREFIX = re.compile(r"^(corrected( caption)?|caption|texto corregido)\s*:\s*", re.IGNORECASE)


def _get_cloudflare_auth(settings: Settings) -> tuple[str, str]:
    """Return (account_id, token) for Workers AI. Same credentials as the Cloudflare ASR backend."""
    account_id = (settings.CLOUDFLARE_ACCOUNT_ID or "").strip()
    token = (settings.CLOUDFLARE_API_TOKEN or "").strip()
    return account_id, token


def _build_user_message(text: str, language: str) -> str:
    name = _LANGUAGE_NAMES.get(language, language)
    return f"Language: {name}\nCaption: {text}"


def _extract_corrected_text(raw: str) -> str:
    """Strip code fences, labels and surrounding quotes from the model reply."""
    content = (raw or "").strip()
    if content.startswith("```"):
        content = re.sub(r"^```\w*\s*", "", content)
        content = re.sub(r"\s*```\s*$", "", content)
    content = _PREFIX.sub("", content.strip())
    if len(content) >= 2 and content[0] == content[-1] and content[0] in "\"'“”":
        content = content[1:-1]
    return content.strip()


class CloudflareCorrectionOverlay(CorrectionOverlay):
    """
    One POST per finalized turn. Pass client to reuse a connection pool (or for tests);
    otherwise a short-lived AsyncClient is opened per call.
    Raises httpx.HTTPError on API failure; the segmenter logs it and emits nothing.
    """

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings or get_settings()
        self._client = client

    @property
    def configured(self) -> bool:
        account_id, token = _get_cloudflare_auth(self._settings)
        return bool(self._settings.CORRECTION_ENABLED and account_id and token)

    async def correct(self, text: str, language: str) -> str:
        if not (text or "").strip() or not self.configured:
            return text
        account_id, token = _get_cloudflare_auth(self._settings)
        url = f"https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/run/{self._settings.CORRECTION_CF_MODEL}"
        payload = {
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": _build_user_message(text, language)},
            ],
            "max_tokens": self._settings.CORRECTION_MAX_TOKENS,
            "temperature": 0.0,
        }
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

        if self._client is not None:
            resp = await self._client.post(url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self._settings.CORRECTION_TIMEOUT_SECONDS) as client:
                resp = await client.post(url, json=payload, headers=headers)
        resp.raise_for_status()
        data = resp.json()

        # Workers AI returns { "result": { "response": "..." } } or direct { "response": "..." }
        result = data.get("result", data)
        if isinstance(result, dict):
            content = result.get("response", "") or ""
        elif isinstance(result, str):
            content = result
        else:
            content = ""
        corrected = _extract_corrected_text(content)
        return corrected or text


def create_correction_overlay() -> CorrectionOverlay | None:
    """Overlay when CORRECTION_ENABLED is true; else None (no Correction events)."""
    settings = get_settings()
    if not settings.CORRECTION_ENABLED:
        return None
    overlay = CloudflareCorrectionOverlay(settings)
    if not overlay.configured:
        logger.warning("CORRECTION_ENABLED but Cloudflare credentials missing; corrections are no-ops")
    return overlay
