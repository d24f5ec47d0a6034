"""Core data structures for the Interlinear pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class SplitMode(str, Enum):
    """Selects how raw text is cut into translation segments."""

    WORD = "word"
    LINE = "line"
    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"

    @classmethod
    def parse(cls, value: "str | SplitMode | None") -> "SplitMode":
        """Resolve user input to a mode; unknown or empty values mean sentence."""

        if isinstance(value, SplitMode):
            return value
        normalized = (value or "").strip().lower()
        for mode in cls:
            if mode.value == normalized:
                return mode
        return cls.SENTENCE


class ProviderUsed(str, Enum):
    """Which stage produced an accepted translation."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Segment:
    """A contiguous span of source text treated as one translation item."""

    text: str
    index: int

    def __post_init__(self) -> None:
        if not self.text or not self.text.strip():
            raise ValueError("Segment text must not be empty.")
        if self.index < 0:
            raise ValueError("Segment index must be non-negative.")


@dataclass(frozen=True)
class Batch:
    """Consecutive segments sent to a backend together."""

    batch_id: int
    segments: Tuple[Segment, ...]

    def __post_init__(self) -> None:
        if not self.segments:
            raise ValueError("Batch must contain at least one segment.")

    @property
    def texts(self) -> list[str]:
        return [segment.text for segment in self.segments]

    @property
    def text(self) -> str:
        """Segments joined with single newlines, the batch's flat form."""

        return "\n".join(self.texts)

    def __len__(self) -> int:
        return len(self.segments)


@dataclass(frozen=True)
class TranslationResult:
    """An accepted original/translation pair."""

    original: str
    translation: str
    provider_used: ProviderUsed
    index: int = 0

    def __post_init__(self) -> None:
        if not self.original or not self.original.strip():
            raise ValueError("TranslationResult original must not be empty.")
        if not self.translation or not self.translation.strip():
            raise ValueError("TranslationResult translation must not be empty.")

    def as_dict(self) -> dict[str, str]:
        return {
            "original": self.original,
            "translation": self.translation,
            "provider": self.provider_used.value,
        }


@dataclass(frozen=True)
class LanguageSpec:
    """A free-form language display name and its resolved code."""

    display_name: str
    code: str

    @property
    def base_code(self) -> str:
        """The code without a region suffix (``zh-CN`` -> ``zh``)."""

        return self.code.split("-", 1)[0].lower()
