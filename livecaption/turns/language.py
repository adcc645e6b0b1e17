"""
LanguageDetector: heuristic text -> language tag for short spoken fragments.

Cascade, first match wins:
1. Orthography unique to the marked language (accented vowels, ñ, inverted ¿ ¡).
2. Grammar patterns (article + noun + preposition, demonstrative + verb, ...).
3. Function-word ratio: short fragments (<= 5 tokens) need one hit; longer ones need
   the ratio to reach the threshold.
4. Default tag.

Short utterances rarely carry enough tokens for frequency analysis alone, so the
strong signals are checked first. Pure and deterministic; never raises.
"""
from __future__ import annotations

import logging
import re
from typing import Iterable, Pattern

logger = logging.getLogger(__name__)

SPANISH = "es"
ENGLISH = "en"
SUPPORTED_LANGUAGES: tuple[str, ...] = (SPANISH, ENGLISH)

DEFAULT_RATIO_THRESHOLD = 0.18
SHORT_UTTERANCE_TOKENS = 5

_SPANISH_ORTHOGRAPHY = re.compile(r"[áéíóúüñ¿¡]", re.IGNORECASE)

_SPANISH_GRAMMAR: tuple[Pattern[str], ...] = (
    re.compile(r"\b(que|qué)\s+(es|son|está|están|tiene|tienen)\b"),
    re.compile(r"\b(el|la|los|las)\s+\w+\s+(de|del)\b"),
    re.compile(r"\b(esto|esta|este|eso|esa|ese)\s+(es|son)\b"),
    re.compile(r"\b(muy|más|menos)\s+\w+"),
    re.compile(r"\b(no|si)\s+(puedo|puede|quiero|quiere|voy|va)\b"),
    re.compile(r"\baquí\s+(es|está|en)\b"),
    re.compile(r"\bestamos\s+(con|en)\b"),
)

_SPANISH_FUNCTION_WORDS = frozenset(
    """
    de del el la los las un una está están son es como qué cómo por para con sin
    pero y o mi tu su me te se lo le ha he sido sé vamos hacer entonces solo
    mientras lugares más nada esto no que muy aquí allí allá ahí bien mal todo
    siempre nunca cuando donde mucho poco grande nuevo bueno malo si sí ver vea
    veía ir voy va hago dice decir ser estar tener tengo tiene poder puedo puede
    querer quiero deber debe año día vez cosa gente tiempo vida casa ciudad
    centro corazón velada desde hasta otro mismo cada todos sufro huevo viéndome
    estamos sea raro
    """.split()
)

# Punctuation stripped from token edges before the function-word lookup
_TOKEN_EDGES = ".,;:!?¿¡\"'()[]…-"


def normalize_tag(hint: str | None, supported: Iterable[str] = SUPPORTED_LANGUAGES) -> str | None:
    """Map an engine language code ("es", "es-ES", "EN") into the supported set, or None."""
    if not hint:
        return None
    tag = hint.strip().lower().replace("_", "-").split("-", 1)[0]
    return tag if tag in tuple(supported) else None


class LanguageDetector:
    """
    Two-tag classifier. The "marked" language needs positive evidence; everything
    else falls back to the default tag. Rules are constructor arguments so another
    marked language can reuse the same cascade.
    """

    def __init__(
        self,
        marked: str = SPANISH,
        default: str = ENGLISH,
        orthography: Pattern[str] = _SPANISH_ORTHOGRAPHY,
        grammar: Iterable[Pattern[str]] = _SPANISH_GRAMMAR,
        function_words: Iterable[str] = _SPANISH_FUNCTION_WORDS,
        ratio_threshold: float = DEFAULT_RATIO_THRESHOLD,
        short_utterance_tokens: int = SHORT_UTTERANCE_TOKENS,
    ) -> None:
        self.marked = marked
        self.default = default
        self._orthography = orthography
        self._grammar = tuple(grammar)
        self._function_words = frozenset(function_words)
        self._ratio_threshold = ratio_threshold
        self._short_tokens = short_utterance_tokens

    @property
    def languages(self) -> tuple[str, str]:
        return (self.marked, self.default)

    def detect(self, text: str) -> str:
        clean = (text or "").lower().strip()
        if not clean:
            return self.default

        if self._orthography.search(clean):
            return self.marked

        if any(p.search(clean) for p in self._grammar):
            return self.marked

        tokens = clean.split()
        matches = sum(1 for t in tokens if t.strip(_TOKEN_EDGES) in self._function_words)
        if len(tokens) <= self._short_tokens and matches >= 1:
            return self.marked

        ratio = matches / len(tokens)
        if ratio >= self._ratio_threshold:
            logger.debug(
                "Marked language %s by ratio %.1f%% (%d/%d words)",
                self.marked, ratio * 100, matches, len(tokens),
            )
            return self.marked

        return self.default


_default_detector = LanguageDetector()


def detect_language(text: str) -> str:
    """Module-level shortcut using the default es/en detector."""
    return _default_detector.detect(text)
