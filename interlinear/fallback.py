"""Deterministic last-resort placeholders for untranslatable segments."""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Tuple, Union

from .languages import CODE_NAMES, LanguageResolver
from .structures import LanguageSpec

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 30

# target code -> (phrase for Latin-script sources, phrase for Arabic-script sources)
PLACEHOLDER_PHRASES: Dict[str, Tuple[str, str]] = {
    "ar": ("الترجمة العربية مطلوبة", "الترجمة مطلوبة"),
    "cs": ("ČESKÝ PŘEKLAD POŽADOVÁN", "POŽADOVÁN PŘEKLAD"),
    "fr": ("TRADUCTION FRANÇAISE NÉCESSAIRE", "TRADUCTION NÉCESSAIRE"),
    "de": ("DEUTSCHE ÜBERSETZUNG BENÖTIGT", "ÜBERSETZUNG ERFORDERLICH"),
    "es": ("TRADUCCIÓN ESPAÑOLA NECESARIA", "TRADUCCIÓN NECESARIA"),
    "ru": ("ТРЕБУЕТСЯ РУССКИЙ ПЕРЕВОД", "ТРЕБУЕТСЯ ПЕРЕВОД"),
    "zh": ("需要中文翻译", "需要翻译"),
    "ja": ("日本語翻訳が必要です", "翻訳が必要です"),
    "ko": ("한국어 번역 필요", "번역이 필요합니다"),
    "pt": ("TRADUÇÃO PARA PORTUGUÊS NECESSÁRIA", "TRADUÇÃO NECESSÁRIA"),
    "it": ("TRADUZIONE IN ITALIANO RICHIESTA", "NECESSARIA TRADUZIONE"),
    "tr": ("TÜRKÇE ÇEVİRİ GEREKLİ", "ÇEVİRİ GEREKİYOR"),
    "en": ("ENGLISH TRANSLATION NEEDED", "ARABIC TEXT NEEDS ENGLISH TRANSLATION"),
}
GENERIC_PHRASE = "TRANSLATION NEEDED"


def placeholder_markers() -> FrozenSet[str]:
    """Opening markers of every placeholder the synthesizer can emit."""

    phrases = {GENERIC_PHRASE}
    for latin, arabic in PLACEHOLDER_PHRASES.values():
        phrases.update((latin, arabic))
    return frozenset(f"[{phrase}:" for phrase in phrases)


class FallbackSynthesizer:
    """Builds a bracketed "translation still required" marker, no network I/O.

    When the source text is already written in the target's script the
    original is returned unchanged.
    """

    def __init__(
        self,
        resolver: LanguageResolver | None = None,
        excerpt_length: int = EXCERPT_LENGTH,
    ) -> None:
        self.resolver = resolver or LanguageResolver()
        self.excerpt_length = excerpt_length

    def target_code(self, target: Union[str, LanguageSpec]) -> str:
        """Base code for a resolved language, a language code or a display name."""

        if isinstance(target, LanguageSpec):
            return target.base_code
        lowered = target.strip().lower()
        base = lowered.split("-", 1)[0]
        if base in CODE_NAMES:
            return base
        return self.resolver.resolve_code(target).split("-", 1)[0].lower()

    def synthesize(self, original: str, target: Union[str, LanguageSpec]) -> str:
        code = self.target_code(target)
        source = self.resolver.detect_script(original)
        if source == code:
            return original

        latin, arabic = PLACEHOLDER_PHRASES.get(code, (GENERIC_PHRASE, GENERIC_PHRASE))
        phrase = arabic if source == "ar" else latin
        excerpt = original[: self.excerpt_length]
        logger.info("Fallback placeholder for %s target: %.50s", code, original)
        return f"[{phrase}: {excerpt}...]"


def synthesize(original: str, target: str) -> str:
    """Module-level shortcut for :meth:`FallbackSynthesizer.synthesize`."""

    return FallbackSynthesizer().synthesize(original, target)
