"""Language name resolution and script detection."""

from __future__ import annotations

import re
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

from .structures import LanguageSpec

DEFAULT_CODE = "en"

LANGUAGE_CODES: Dict[str, str] = {
    "Arabic (Standard)": "ar",
    "Arabic (Colloquial)": "ar",
    "Arabic (Egyptian)": "ar",
    "Egyptian": "ar",
    "Arabic": "ar",
    "English": "en",
    "German": "de",
    "Spanish": "es",
    "French": "fr",
    "Italian": "it",
    "Czech": "cs",
    "Turkish": "tr",
    "Chinese (Simplified)": "zh-CN",
    "Chinese (Traditional)": "zh-TW",
    "Chinese": "zh",
    "Japanese": "ja",
    "Korean": "ko",
    "Russian": "ru",
    "Portuguese (Brazil)": "pt-BR",
    "Portuguese (Portugal)": "pt-PT",
    "Portuguese": "pt",
    "Dutch": "nl",
    "Hindi": "hi",
    "Swedish": "sv",
    "Norwegian": "no",
    "Danish": "da",
    "Finnish": "fi",
    "Polish": "pl",
    "Greek": "el",
    "Hungarian": "hu",
    "Romanian": "ro",
    "Bulgarian": "bg",
    "Thai": "th",
    "Vietnamese": "vi",
    "Indonesian": "id",
    "Malay": "ms",
    "Hebrew": "he",
    "Ukrainian": "uk",
    "Serbian": "sr",
    "Slovak": "sk",
    "Slovenian": "sl",
    "Croatian": "hr",
    "Filipino": "tl",
    "Swahili": "sw",
    "Persian (Farsi)": "fa",
    "Persian": "fa",
    "Farsi": "fa",
    "Urdu": "ur",
    "Bengali": "bn",
    "Punjabi": "pa",
    "Gujarati": "gu",
    "Tamil": "ta",
    "Telugu": "te",
    "Kannada": "kn",
    "Malayalam": "ml",
    "Marathi": "mr",
    "Sinhalese": "si",
    "Sinhala": "si",
    "Nepali": "ne",
    "Afrikaans": "af",
    "Albanian": "sq",
    "Amharic": "am",
    "Armenian": "hy",
    "Azerbaijani": "az",
    "Basque": "eu",
    "Belarusian": "be",
    "Bosnian": "bs",
    "Catalan": "ca",
    "Estonian": "et",
    "Galician": "gl",
    "Georgian": "ka",
    "Haitian Creole": "ht",
    "Icelandic": "is",
    "Irish": "ga",
    "Kazakh": "kk",
    "Khmer": "km",
    "Kurdish": "ku",
    "Kyrgyz": "ky",
    "Lao": "lo",
    "Latin": "la",
    "Latvian": "lv",
    "Lithuanian": "lt",
    "Luxembourgish": "lb",
    "Macedonian": "mk",
    "Malagasy": "mg",
    "Maltese": "mt",
    "Mongolian": "mn",
    "Myanmar": "my",
    "Burmese": "my",
    "Pashto": "ps",
    "Somali": "so",
    "Sundanese": "su",
    "Tajik": "tg",
    "Tatar": "tt",
    "Uzbek": "uz",
    "Welsh": "cy",
    "Xhosa": "xh",
    "Yiddish": "yi",
    "Yoruba": "yo",
    "Zulu": "zu",
    "Esperanto": "eo",
}

# Evaluated in order after exact lookups fail.
CONTAINMENT_MATCHERS: Tuple[Tuple[str, str], ...] = (
    ("czech", "cs"),
    ("arabic", "ar"),
    ("english", "en"),
    ("french", "fr"),
    ("german", "de"),
    ("spanish", "es"),
    ("russian", "ru"),
    ("chinese", "zh"),
    ("japanese", "ja"),
    ("korean", "ko"),
    ("portuguese", "pt"),
    ("italian", "it"),
    ("turkish", "tr"),
)

CODE_NAMES: Dict[str, str] = {
    "ar": "arabic",
    "cs": "czech",
    "fr": "french",
    "de": "german",
    "es": "spanish",
    "ru": "russian",
    "zh": "chinese",
    "ja": "japanese",
    "ko": "korean",
    "pt": "portuguese",
    "it": "italian",
    "tr": "turkish",
    "en": "english",
}

ScriptMatcher = Callable[[str], bool]


def _has(pattern: str) -> ScriptMatcher:
    compiled = re.compile(pattern)
    return lambda text: compiled.search(text) is not None


# Priority order matters: Czech diacritics mark otherwise-Latin text, and
# CJK ideographs are claimed by Chinese before the Japanese kana check.
SCRIPT_MATCHERS: Tuple[Tuple[ScriptMatcher, str], ...] = (
    (
        _has(
            "[\u010C\u010D\u010E\u010F\u011A\u011B\u0147\u0148\u0158\u0159"
            "\u0160\u0161\u0164\u0165\u016E\u016F\u017D\u017E]"
        ),
        "cs",
    ),
    (_has("[\u0600-\u06FF]"), "ar"),
    (_has("[\u4E00-\u9FFF]"), "zh"),
    (_has("[\u0400-\u04FF]"), "ru"),
    (_has("[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FFF]"), "ja"),
    (_has("[\uAC00-\uD7AF]"), "ko"),
)


class LanguageResolver:
    """Maps display names to codes and guesses the script of a text."""

    def __init__(
        self,
        codes: Mapping[str, str] = LANGUAGE_CODES,
        containment: Sequence[Tuple[str, str]] = CONTAINMENT_MATCHERS,
        scripts: Sequence[Tuple[ScriptMatcher, str]] = SCRIPT_MATCHERS,
        default: str = DEFAULT_CODE,
    ) -> None:
        self.codes = dict(codes)
        self.folded = {name.lower(): code for name, code in self.codes.items()}
        self.containment = tuple(containment)
        self.scripts = tuple(scripts)
        self.default = default

    def resolve_code(self, display_name: Optional[str]) -> str:
        if not display_name:
            return self.default
        name = display_name.strip()
        if name in self.codes:
            return self.codes[name]
        lowered = name.lower()
        if lowered in self.folded:
            return self.folded[lowered]
        for needle, code in self.containment:
            if needle in lowered:
                return code
        return self.default

    def resolve(self, display_name: Optional[str]) -> LanguageSpec:
        name = (display_name or "").strip() or "English"
        return LanguageSpec(display_name=name, code=self.resolve_code(name))

    def detect_script(self, text: str) -> str:
        for matcher, code in self.scripts:
            if matcher(text):
                return code
        return self.default


def resolve_code(display_name: Optional[str]) -> str:
    """Resolve a language display name to its code, defaulting to ``en``."""

    return LanguageResolver().resolve_code(display_name)


def detect_script(text: str) -> str:
    """Return the code of the dominant script found in ``text``."""

    return LanguageResolver().detect_script(text)


def language_name(target: str) -> str:
    """Lower-case English language name for a code or display name."""

    lowered = target.strip().lower()
    return CODE_NAMES.get(lowered, CODE_NAMES.get(lowered.split("-", 1)[0], lowered))
