"""Post-translation checks for echoed, near-duplicate or placeholder output."""

from __future__ import annotations

import logging
import math
from typing import FrozenSet, Iterable, Optional

from rapidfuzz.distance import Levenshtein

from .fallback import placeholder_markers

logger = logging.getLogger(__name__)

NEAR_DUPLICATE_RATIO = 0.1

# Markers emitted by failed providers, plus everything the synthesizer emits.
FAILURE_MARKERS: FrozenSet[str] = frozenset(
    {
        "[TRANSLATION NEEDED:",
        "[TRANSLATION_NEEDED:",
        "[ENGLISH TRANSLATION NEEDED:",
        "[ARABIC TEXT NEEDS ENGLISH TRANSLATION:",
        "[NEEDS ARABIC TRANSLATION:",
        "[الترجمة العربية مطلوبة:",
        "[TRANSLATION_FAILED]",
        "[Error]",
    }
) | placeholder_markers()


def levenshtein(first: str, second: str, cutoff: Optional[int] = None) -> int:
    """Edit distance with unit insertion, deletion and substitution.

    With ``cutoff`` the computation stops early and any distance above it
    is reported as ``cutoff + 1``.
    """

    return Levenshtein.distance(first, second, score_cutoff=cutoff)


def similarity_ratio(original: str, candidate: str) -> float:
    """Edit distance over the shorter of the trimmed, lower-cased strings."""

    left = original.strip().lower()
    right = candidate.strip().lower()
    shortest = min(len(left), len(right))
    if shortest == 0:
        return 0.0 if left == right else 1.0
    return levenshtein(left, right) / shortest


class QualityGate:
    """Decides whether a candidate translation is genuine."""

    def __init__(
        self,
        markers: Optional[Iterable[str]] = None,
        near_duplicate_ratio: float = NEAR_DUPLICATE_RATIO,
    ) -> None:
        self.markers = frozenset(markers) if markers is not None else FAILURE_MARKERS
        self.near_duplicate_ratio = near_duplicate_ratio

    def rejection_reason(self, original: str, candidate: Optional[str]) -> Optional[str]:
        """Return why ``candidate`` fails, or ``None`` when it is acceptable."""

        if candidate is None or not candidate.strip() or candidate.strip() == "...":
            return "empty"
        if candidate.strip() == original.strip():
            return "copy"
        if self.is_placeholder(candidate):
            return "placeholder"
        if self.is_near_duplicate(original, candidate):
            return "near-duplicate"
        return None

    def is_near_duplicate(self, original: str, candidate: str) -> bool:
        left = original.strip().lower()
        right = candidate.strip().lower()
        shortest = min(len(left), len(right))
        if shortest == 0:
            return left == right
        # Largest distance still below the ratio; anything beyond is not needed.
        limit = math.ceil(self.near_duplicate_ratio * shortest) - 1
        if limit >= 0 and limit / shortest >= self.near_duplicate_ratio:
            limit -= 1
        if limit < 0 or abs(len(left) - len(right)) > limit:
            return False
        return levenshtein(left, right, cutoff=limit) <= limit

    def is_placeholder(self, candidate: str) -> bool:
        return any(marker in candidate for marker in self.markers)

    def accept(self, original: str, candidate: Optional[str]) -> bool:
        reason = self.rejection_reason(original, candidate)
        if reason is not None:
            logger.debug("Rejected candidate (%s) for: %.50s", reason, original)
            return False
        return True


def accept(original: str, candidate: Optional[str]) -> bool:
    """Module-level shortcut for :meth:`QualityGate.accept`."""

    return QualityGate().accept(original, candidate)
