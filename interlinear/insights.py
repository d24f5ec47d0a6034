"""Insight and key-term extraction modes."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections import Counter
from typing import Any, Dict, List, Optional

from .errors import InterlinearError
from .structures import LanguageSpec

logger = logging.getLogger(__name__)

MAX_ANALYSIS_CHARS = 100_000
MIN_TERM_LENGTH = 3

STOPWORDS = frozenset(
    """
    the and for with that this from into onto upon above below about after
    before between among within without over under again further then once
    here there all any both each few more most other some such no nor not
    only own same so than too very can will just don should now a an of to
    in on at by as is are was were be been being it its if or but their
    they them he she his her you your we our us
    في من على عن مع إلى الى هذا هذه ذلك تلك التي الذي الذين اللواتي اللاتي
    ما متى أين أو و ثم كما لكن بل قد كان كانت يكون يكونون هو هي هم هن أنا
    نحن أن إن إذا كل أي أيضا
    """.split()
)

DIGIT_PATTERN = re.compile(r"[0-9]")
PUNCTUATION_PATTERN = re.compile(r"[.,;:!?()\[\]{}\"“”'’«»<>/\\-]")
WHITESPACE_PATTERN = re.compile(r"\s+")


def _insight_prompt(text: str, count: int, target: LanguageSpec) -> str:
    return (
        "You are a research analyst and linguistic expert.\n"
        f"Extract EXACTLY the top {count} most important, insightful or "
        "representative sentences of the following text.\n\n"
        f"TEXT TO ANALYZE:\n{text[:MAX_ANALYSIS_CHARS]}\n\n"
        "INSTRUCTIONS:\n"
        f"1. Identify the {count} most significant sentences.\n"
        f"2. Give each original sentence and a professional translation into "
        f"{target.display_name}.\n"
        '3. Return a JSON array of objects with "original" and "translation" keys.\n\n'
        "Return ONLY the JSON, without commentary."
    )


def _key_terms_prompt(text: str, target: LanguageSpec) -> str:
    return (
        "You are a terminology expert.\n"
        "Extract the significant technical terms, keywords and specialised "
        "vocabulary needed to understand the following text.\n\n"
        f"TEXT TO ANALYZE:\n{text[:MAX_ANALYSIS_CHARS]}\n\n"
        "INSTRUCTIONS:\n"
        "1. Extract as many terms as the text warrants (a handful for short "
        "texts, dozens for long or dense ones).\n"
        "2. Include jargon, significant proper nouns, repeated specialised "
        "concepts and acronyms defined in the text.\n"
        f"3. Give each term and its accurate translation into {target.display_name}.\n"
        '4. Return a JSON array of objects with "original" and "translation" keys.\n\n'
        "Return ONLY the JSON, without commentary."
    )


def parse_pairs(payload: str) -> Optional[List[Dict[str, str]]]:
    """Parse a model reply into ``{original, translation}`` pairs."""

    text = payload.strip()
    if "```" in text:
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[len("json"):]
    try:
        data: Any = json.loads(text.strip())
    except json.JSONDecodeError:
        return None
    if not isinstance(data, list):
        return None

    pairs: List[Dict[str, str]] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        original = item.get("original")
        translation = item.get("translation")
        if isinstance(original, str) and isinstance(translation, str) and original.strip():
            pairs.append({"original": original, "translation": translation})
    return pairs


async def _ask_for_pairs(backend: Any, prompt: str) -> Optional[List[Dict[str, str]]]:
    if backend is None or not getattr(backend, "available", False):
        return None
    try:
        reply = await backend.complete(prompt)
    except (InterlinearError, asyncio.TimeoutError) as exc:
        logger.warning("Extraction request failed: %s", str(exc) or type(exc).__name__)
        return None
    return parse_pairs(reply)


async def extract_top_insights(
    backend: Any,
    text: str,
    count: int,
    target: LanguageSpec,
) -> Optional[List[Dict[str, str]]]:
    """The ``count`` most significant sentences with translations, or ``None``."""

    return await _ask_for_pairs(backend, _insight_prompt(text, count, target))


async def extract_key_terms(
    backend: Any,
    text: str,
    target: LanguageSpec,
) -> Optional[List[Dict[str, str]]]:
    """Key terminology with translations, or ``None``."""

    return await _ask_for_pairs(backend, _key_terms_prompt(text, target))


def generate_fallback_key_terms(text: str, limit: int = 20) -> List[Dict[str, str]]:
    """Most frequent non-stopword tokens; the translation echoes the term."""

    if not text:
        return []

    cleaned = DIGIT_PATTERN.sub(" ", text)
    cleaned = PUNCTUATION_PATTERN.sub(" ", cleaned)
    cleaned = WHITESPACE_PATTERN.sub(" ", cleaned).strip().lower()
    if not cleaned:
        return []

    counts = Counter(
        token
        for token in cleaned.split(" ")
        if len(token) >= MIN_TERM_LENGTH and token not in STOPWORDS
    )
    return [
        {"original": word, "translation": word}
        for word, _ in counts.most_common(max(1, limit))
    ]
