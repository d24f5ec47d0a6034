"""Error definitions for the Interlinear translation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class ErrorCategory(Enum):
    """Categorises recovered failures for the run report."""

    INPUT = auto()
    PROVIDER = auto()
    NETWORK = auto()
    VALIDATION = auto()
    FALLBACK = auto()
    OTHER = auto()


class InterlinearError(Exception):
    """Base exception for all custom errors."""


class EmptyInputError(InterlinearError):
    """Raised when the extracted text holds nothing to translate."""


class UnsupportedFileTypeError(InterlinearError):
    """Raised when a given file extension is not supported."""


class TranslationProviderConfigurationError(InterlinearError):
    """Raised when a translation provider is misconfigured."""


class TranslationProviderError(InterlinearError):
    """Raised when a translation provider call fails."""


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    category: ErrorCategory
    message: str
    details: Optional[str] = None


class ErrorTracker:
    """Tracks consecutive and aggregate errors within a run."""

    def __init__(self) -> None:
        self.last_category: Optional[ErrorCategory] = None
        self.consecutive: int = 0
        self.total: int = 0

    def register(self, category: ErrorCategory) -> tuple[int, int]:
        """Register a new error and return the (consecutive, total) counters."""

        if self.last_category == category:
            self.consecutive += 1
        else:
            self.last_category = category
            self.consecutive = 1

        self.total += 1
        return self.consecutive, self.total

    def reset_consecutive(self) -> None:
        """Reset the consecutive counter after successful work."""

        self.consecutive = 0
        self.last_category = None
