"""Text segmentation and batching utilities."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import FrozenSet, List, Mapping, Optional, Sequence

from .structures import Batch, Segment, SplitMode

logger = logging.getLogger(__name__)

# Joins segments in flat exports; it must never survive inside segment text.
DELIMITER = "<<<|||>>>"

RESERVED_RUN_PATTERN = re.compile(r">{2,}|<{2,}|\|{2,}")
DIGITS_ONLY_PATTERN = re.compile(r"^\d+$")
BLANK_LINE_PATTERN = re.compile(r"\n\s*\n+")
WHITESPACE_PATTERN = re.compile(r"\s+")
SENTENCE_END_PATTERN = re.compile(r"([.!?\u061F](?:\s+|$))")
TERMINAL_PUNCTUATION_PATTERN = re.compile(r"[.!?\u061F]\s*$")
CONNECTOR_STRIP_PATTERN = re.compile(r"[.,!?;:()]")
PARAGRAPH_START_PATTERN = re.compile(r"^[A-Z\u0621-\u064A\u0660-\u0669]")
ABBREVIATION_PATTERN = re.compile(
    r"\b(?:Mr|Mrs|Ms|Dr|Prof|Sr|Jr|vs|etc|Inc|Ltd|Co|Corp"
    r"|Jan|Feb|Mar|Apr|Jun|Jul|Aug|Sep|Oct|Nov|Dec"
    r"|Mon|Tue|Wed|Thu|Fri|Sat|Sun)\.\s",
    re.IGNORECASE,
)
INITIAL_PATTERN = re.compile(r"\b[a-zA-Z]\.\s")

# Abbreviation dots are swapped for a private-use code point absent from the text.
PLACEHOLDER_CODE_POINTS = range(0xE000, 0xF900)

CONNECTORS: Mapping[str, FrozenSet[str]] = {
    "en": frozenset(
        {
            "in", "on", "at", "by", "for", "with", "the", "a", "an", "to",
            "of", "from", "as", "onto", "into", "upon", "around", "above",
            "below",
        }
    ),
    "ar": frozenset(
        {"في", "من", "إلى", "على", "عن", "مع", "هذا", "هذه", "ذلك", "تلك"}
    ),
}


@dataclass(frozen=True)
class SegmentationPolicy:
    """Tuning constants for the heuristic split modes.

    These are best-effort readability heuristics, not linguistic rules.
    """

    sentence_target_length: int = 100
    sentence_min_length: int = 20
    min_unit_length: int = 3
    connectors: FrozenSet[str] = field(
        default_factory=lambda: frozenset().union(*CONNECTORS.values())
    )


DEFAULT_POLICY = SegmentationPolicy()


def _is_digits(text: str) -> bool:
    return DIGITS_ONLY_PATTERN.match(text) is not None


def sanitise_text(text: str) -> str:
    """Normalise line endings and strip delimiter-like markers."""

    text = text.replace("\r\n", "\n").replace("\r", "\n").strip()
    text = text.replace(DELIMITER, " ")
    return RESERVED_RUN_PATTERN.sub(" ", text)


def _dot_placeholder(text: str) -> Optional[str]:
    for code_point in PLACEHOLDER_CODE_POINTS:
        candidate = chr(code_point)
        if candidate not in text:
            return candidate
    return None


def _protect_abbreviations(text: str, placeholder: str) -> str:
    def protect(match: re.Match[str]) -> str:
        return match.group(0).replace(".", placeholder, 1)

    text = ABBREVIATION_PATTERN.sub(protect, text)
    return INITIAL_PATTERN.sub(protect, text)


def _split_sentences(
    text: str,
    policy: SegmentationPolicy,
    placeholder: Optional[str] = None,
) -> List[str]:
    """Split on terminal punctuation, keeping it on the preceding fragment."""

    fragments: List[str] = []
    for position, piece in enumerate(SENTENCE_END_PATTERN.split(text)):
        if position % 2 == 0:
            if piece.strip():
                fragments.append(piece)
        elif fragments:
            fragments[-1] += piece

    sentences: List[str] = []
    for fragment in fragments:
        restored = (fragment.replace(placeholder, ".") if placeholder else fragment).strip()
        if len(restored) < policy.min_unit_length or _is_digits(restored):
            continue
        sentences.append(restored)
    return sentences


def _merge_short_sentences(
    sentences: Sequence[str], policy: SegmentationPolicy
) -> List[str]:
    """Greedily join fragments until each unit carries enough context."""

    units: List[str] = []
    current = ""
    for sentence in sentences:
        current = f"{current} {sentence}" if current else sentence
        if len(current) > policy.sentence_target_length:
            units.append(current)
            current = ""
        elif (
            TERMINAL_PUNCTUATION_PATTERN.search(sentence)
            and len(current) >= policy.sentence_min_length
        ):
            units.append(current)
            current = ""

    if current:
        units.append(current)
    return units


def split_sentences(text: str, policy: SegmentationPolicy = DEFAULT_POLICY) -> List[str]:
    """Semantic sentence mode: abbreviation-aware split, then re-merge."""

    flattened = re.sub(r"\n+", " ", text)
    placeholder = _dot_placeholder(flattened)
    if placeholder is None:
        sentences = _split_sentences(flattened, policy)
    else:
        sentences = _split_sentences(
            _protect_abbreviations(flattened, placeholder), policy, placeholder
        )
    return _merge_short_sentences(sentences, policy)


def _connector_key(word: str) -> str:
    return CONNECTOR_STRIP_PATTERN.sub("", word.lower())


def split_words(text: str, policy: SegmentationPolicy = DEFAULT_POLICY) -> List[str]:
    """Word mode: whitespace tokens with connector words attached forward.

    A connector absorbs the following token; when that token is itself a
    connector, the one after it is absorbed as well ("in the stadium").
    """

    words = [word for word in text.split() if not _is_digits(word)]
    merged: List[str] = []
    idx = 0
    total = len(words)
    while idx < total:
        word = words[idx]
        if _connector_key(word) in policy.connectors and idx < total - 1:
            following = words[idx + 1]
            if _connector_key(following) in policy.connectors and idx < total - 2:
                merged.append(f"{word} {following} {words[idx + 2]}")
                idx += 3
            else:
                merged.append(f"{word} {following}")
                idx += 2
            continue
        merged.append(word)
        idx += 1
    return merged


def split_lines(text: str) -> List[str]:
    """Line mode: literal lines, trimmed, without blanks or bare numbers."""

    lines = (line.strip() for line in text.split("\n"))
    return [line for line in lines if line and not _is_digits(line)]


def split_paragraphs(text: str) -> List[str]:
    """Paragraph mode: blank-line chunks, re-split on likely paragraph starts."""

    paragraphs: List[str] = []
    for chunk in BLANK_LINE_PATTERN.split(text):
        current = ""
        for line in chunk.split("\n"):
            stripped = line.strip()
            if not stripped:
                continue
            if not current:
                current = stripped
                continue
            previous_ends_sentence = TERMINAL_PUNCTUATION_PATTERN.search(current) is not None
            starts_paragraph = PARAGRAPH_START_PATTERN.match(stripped) is not None
            if previous_ends_sentence or starts_paragraph:
                paragraphs.append(current)
                current = stripped
            else:
                current = f"{current} {stripped}"
        if current:
            paragraphs.append(current)

    cleaned = (WHITESPACE_PATTERN.sub(" ", paragraph).strip() for paragraph in paragraphs)
    return [paragraph for paragraph in cleaned if paragraph and not _is_digits(paragraph)]


def segment_text(
    text: str,
    mode: SplitMode | str = SplitMode.SENTENCE,
    policy: SegmentationPolicy = DEFAULT_POLICY,
) -> List[str]:
    """Split raw extracted text into ordered meaning units."""

    if not text:
        return []

    split_mode = SplitMode.parse(mode)
    cleaned = sanitise_text(text)
    if split_mode is SplitMode.WORD:
        units = split_words(cleaned, policy)
    elif split_mode is SplitMode.LINE:
        units = split_lines(cleaned)
    elif split_mode is SplitMode.PARAGRAPH:
        units = split_paragraphs(cleaned)
    else:
        units = split_sentences(cleaned, policy)

    logger.info("%s mode: %d segments", split_mode.value, len(units))
    return units


class Segmenter:
    """Turns raw text into indexed segments for a fixed split mode."""

    def __init__(
        self,
        mode: SplitMode | str = SplitMode.SENTENCE,
        policy: SegmentationPolicy = DEFAULT_POLICY,
    ) -> None:
        self.mode = SplitMode.parse(mode)
        self.policy = policy

    def segment(self, text: str) -> List[Segment]:
        return [
            Segment(text=unit, index=idx)
            for idx, unit in enumerate(segment_text(text, self.mode, self.policy))
        ]


class BatchBuilder:
    """Partitions segments into consecutive fixed-size batches."""

    def __init__(self, group_size: int) -> None:
        self.group_size = max(1, group_size)

    def build(self, segments: Sequence[Segment]) -> List[Batch]:
        batches: List[Batch] = []
        for batch_id, start in enumerate(range(0, len(segments), self.group_size), 1):
            chunk = tuple(segments[start:start + self.group_size])
            batches.append(Batch(batch_id=batch_id, segments=chunk))
        return batches


def batch_units(units: Sequence[str], group_size: int) -> List[str]:
    """Join each run of ``group_size`` consecutive units with a newline."""

    size = max(1, group_size)
    return ["\n".join(units[start:start + size]) for start in range(0, len(units), size)]


def unbatch(batches: Sequence[str]) -> List[str]:
    """Inverse of :func:`batch_units` for newline-free units."""

    units: List[str] = []
    for batch in batches:
        units.extend(batch.split("\n"))
    return units
