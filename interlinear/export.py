"""Flat, delimiter-joined payloads for PDF export and UI consumers."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence

from .segmenter import DELIMITER
from .translator import TranslationRun


def build_payload(run: TranslationRun) -> Dict[str, Any]:
    """Serialise a run the way downstream consumers expect it."""

    results = run.results
    return {
        "sys_version": run.sys_version,
        "original": DELIMITER.join(result.original for result in results),
        "translated": DELIMITER.join(result.translation for result in results),
        "segments": [result.as_dict() for result in results],
        "mode": run.summary.split_mode.value,
        "targetLang": run.summary.target_language,
    }


def build_pairs_payload(
    pairs: Sequence[Mapping[str, str]],
    *,
    mode: str,
    target_language: str,
) -> Dict[str, Any]:
    """Payload for the insight (``insights``) and key-term (``terms``) modes."""

    version = {"insights": "AI_v2_Insights", "terms": "AI_v2_Terms"}.get(mode, "AI_v2")
    return {
        "sys_version": version,
        "original": DELIMITER.join(pair["original"] for pair in pairs),
        "translated": DELIMITER.join(pair["translation"] for pair in pairs),
        "segments": [
            {"original": pair["original"], "translation": pair["translation"]}
            for pair in pairs
        ],
        "mode": mode,
        "targetLang": target_language,
    }


def split_payload(payload: Mapping[str, Any]) -> List[Dict[str, str]]:
    """Recover ``{original, translation}`` pairs from the flat strings."""

    originals = str(payload.get("original") or "").split(DELIMITER)
    translations = str(payload.get("translated") or "").split(DELIMITER)
    if not payload.get("original"):
        return []
    if len(originals) != len(translations):
        raise ValueError(
            f"Payload holds {len(originals)} originals but {len(translations)} translations."
        )
    return [
        {"original": original, "translation": translation}
        for original, translation in zip(originals, translations)
    ]
