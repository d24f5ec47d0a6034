"""High-level orchestration of segmentation, translation and validation."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import httpx

from .errors import (
    EmptyInputError,
    ErrorCategory,
    TranslationProviderError,
)
from .fallback import FallbackSynthesizer
from .insights import (
    extract_key_terms,
    extract_top_insights,
    generate_fallback_key_terms,
)
from .languages import LanguageResolver
from .policy import ErrorPolicy, RetryPolicy
from .providers import SecondaryGTXBackend, TranslationBackend, fit_length
from .quality import QualityGate
from .segmenter import DEFAULT_POLICY, BatchBuilder, SegmentationPolicy, Segmenter
from .structures import (
    Batch,
    LanguageSpec,
    ProviderUsed,
    Segment,
    SplitMode,
    TranslationResult,
)

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    IDLE = "idle"
    SEGMENTING = "segmenting"
    BATCHING = "batching"
    TRANSLATING = "translating"
    VALIDATING = "validating"
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PipelineConfig:
    """Per-run options supplied by the caller."""

    target_lang: str = "English"
    split_mode: SplitMode = SplitMode.SENTENCE
    group_size: int = 1
    groups_per_call: int = 1
    has_primary_credential: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "split_mode", SplitMode.parse(self.split_mode))
        object.__setattr__(self, "group_size", max(1, int(self.group_size or 1)))
        object.__setattr__(self, "groups_per_call", max(1, int(self.groups_per_call or 1)))

    @property
    def call_size(self) -> int:
        """Segments sent to a backend in one call."""

        return self.group_size * self.groups_per_call


@dataclass
class TranslationSummary:
    """Report returned after processing a text."""

    target_language: str
    target_code: str
    split_mode: SplitMode
    group_size: int
    primary_enabled: bool
    total_segments: int = 0
    total_batches: int = 0
    completed_batches: int = 0
    provider_counts: Dict[ProviderUsed, int] = field(default_factory=dict)
    total_errors: int = 0
    cancelled: bool = False
    elapsed_seconds: float = 0.0
    error_messages: List[str] = field(default_factory=list)


@dataclass
class TranslationRun:
    """Ordered results of a run plus its summary."""

    results: List[TranslationResult]
    summary: TranslationSummary

    @property
    def sys_version(self) -> str:
        return "AI_v2" if self.summary.primary_enabled else "GTX_v2"

    def __len__(self) -> int:
        return len(self.results)


class TranslationRunner:
    """Coordinates segmentation, backend dispatch and the quality cascade."""

    def __init__(
        self,
        config: PipelineConfig,
        *,
        primary: Optional[TranslationBackend] = None,
        secondary: Optional[TranslationBackend] = None,
        gate: Optional[QualityGate] = None,
        synthesizer: Optional[FallbackSynthesizer] = None,
        resolver: Optional[LanguageResolver] = None,
        policy: Optional[RetryPolicy] = None,
        segmentation: SegmentationPolicy = DEFAULT_POLICY,
        owns_backends: bool = False,
    ) -> None:
        self.config = config
        self.policy = policy or RetryPolicy()
        self.resolver = resolver or LanguageResolver()
        self.synthesizer = synthesizer or FallbackSynthesizer(self.resolver)
        self.gate = gate or QualityGate()
        self.primary = primary
        self._owns_primary = owns_backends
        self._owns_secondary = owns_backends or secondary is None
        self.secondary = secondary or SecondaryGTXBackend(
            policy=self.policy, synthesizer=self.synthesizer
        )
        self.segmentation = segmentation

        self.error_policy = ErrorPolicy()
        self.state = PipelineState.IDLE
        self.results: List[TranslationResult] = []
        self._cancel = asyncio.Event()

    @property
    def primary_enabled(self) -> bool:
        return (
            self.config.has_primary_credential
            and self.primary is not None
            and self.primary.available
        )

    def cancel(self) -> None:
        """Stop before the next batch; finished batches stay in the results."""

        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def segment(self, raw_text: str) -> List[Segment]:
        if not raw_text or not raw_text.strip():
            raise EmptyInputError("Empty file (or unreadable format).")

        self.state = PipelineState.SEGMENTING
        segments = Segmenter(self.config.split_mode, self.segmentation).segment(raw_text)
        if not segments:
            raise EmptyInputError("No translatable text found in the input.")
        return segments

    async def run(self, raw_text: str) -> TranslationRun:
        """Translate ``raw_text``; a runner can be reused for several runs.

        Errors are recorded per run. A cancellation ends the run it stopped
        and is cleared afterwards.
        """

        start_time = time.monotonic()
        self.error_policy = ErrorPolicy()
        self.results = []
        try:
            return await self._run(raw_text, start_time)
        finally:
            self._cancel.clear()

    async def _run(self, raw_text: str, start_time: float) -> TranslationRun:
        target = self.resolver.resolve(self.config.target_lang)
        segments = self.segment(raw_text)

        self.state = PipelineState.BATCHING
        batches = BatchBuilder(self.config.call_size).build(segments)
        logger.info(
            "Prepared %d segments in %d batches for %s (%s), primary %s.",
            len(segments),
            len(batches),
            target.display_name,
            target.code,
            "enabled" if self.primary_enabled else "disabled",
        )

        completed = 0
        for position, batch in enumerate(batches):
            if self.cancelled:
                logger.info("Run cancelled after %d of %d batches.", completed, len(batches))
                break
            self.state = PipelineState.TRANSLATING
            self.results.extend(await self._process_batch(batch, target))
            completed += 1
            if position < len(batches) - 1:
                await self.policy.pause_between_batches()

        self.state = PipelineState.CANCELLED if self.cancelled else PipelineState.DONE
        summary = self._summarise(
            target,
            total_segments=len(segments),
            total_batches=len(batches),
            completed_batches=completed,
            elapsed=time.monotonic() - start_time,
        )
        logger.info(
            "Returning %d segments (%s).",
            len(self.results),
            ", ".join(
                f"{provider.value}={count}"
                for provider, count in summary.provider_counts.items()
            ),
        )
        return TranslationRun(results=list(self.results), summary=summary)

    async def _process_batch(
        self,
        batch: Batch,
        target: LanguageSpec,
    ) -> List[TranslationResult]:
        candidates, provider, reasons = await self._translate_batch(batch, target)

        self.state = PipelineState.VALIDATING
        results: List[TranslationResult] = []
        for segment, candidate, reason in zip(batch.segments, candidates, reasons):
            results.append(
                await self._accept_or_recover(segment, candidate, provider, target, reason)
            )
            await asyncio.sleep(0)
        return results

    def _rejections(
        self,
        texts: Sequence[str],
        candidates: Sequence[str],
    ) -> List[Optional[str]]:
        return [
            self.gate.rejection_reason(text, candidate)
            for text, candidate in zip(texts, candidates)
        ]

    async def _translate_batch(
        self,
        batch: Batch,
        target: LanguageSpec,
    ) -> Tuple[List[str], ProviderUsed, List[Optional[str]]]:
        texts = batch.texts
        if self.primary is not None and self.primary_enabled:
            logger.info("Batch %d via %s (%d segments).", batch.batch_id, self.primary.name, len(batch))
            candidates = await self.primary.translate_batch(texts, target)
            if candidates is None:
                self.error_policy.handle_error(
                    ErrorCategory.PROVIDER,
                    f"Primary backend failed for batch {batch.batch_id}.",
                )
            else:
                fitted = fit_length(candidates, len(texts))
                reasons = self._rejections(texts, fitted)
                if any(reason is None for reason in reasons):
                    return fitted, ProviderUsed.PRIMARY, reasons
                self.error_policy.handle_error(
                    ErrorCategory.VALIDATION,
                    f"Primary output rejected for every segment of batch {batch.batch_id}.",
                )

        logger.info("Batch %d via %s (%d segments).", batch.batch_id, self.secondary.name, len(batch))
        candidates = await self._translate_secondary(texts, target)
        return candidates, ProviderUsed.SECONDARY, self._rejections(texts, candidates)

    async def _translate_secondary(
        self,
        texts: Sequence[str],
        target: LanguageSpec,
    ) -> List[str]:
        try:
            candidates = await self.secondary.translate_batch(texts, target)
        except (TranslationProviderError, httpx.HTTPError, asyncio.TimeoutError) as exc:
            self.error_policy.handle_error(
                ErrorCategory.NETWORK,
                "Secondary backend failed.",
                details=str(exc),
            )
            candidates = None
        return fit_length(candidates or [], len(texts))

    async def _accept_or_recover(
        self,
        segment: Segment,
        candidate: str,
        provider: ProviderUsed,
        target: LanguageSpec,
        reason: Optional[str],
    ) -> TranslationResult:
        """Keep an accepted candidate, else retry alone and then synthesize."""

        original = segment.text
        if reason is None:
            self.error_policy.record_success()
            return TranslationResult(original, candidate, provider, segment.index)

        self.error_policy.handle_error(
            ErrorCategory.VALIDATION,
            f"Segment {segment.index} rejected ({reason}).",
            details=original[:50],
        )
        await self.policy.pause_before_segment_retry()
        retried = (await self._translate_secondary([original], target))[0]
        if self.gate.accept(original, retried):
            self.error_policy.record_success()
            return TranslationResult(original, retried, ProviderUsed.SECONDARY, segment.index)

        self.error_policy.handle_error(
            ErrorCategory.FALLBACK,
            f"Segment {segment.index} replaced by fallback placeholder.",
            details=original[:50],
        )
        placeholder = self.synthesizer.synthesize(original, target)
        return TranslationResult(original, placeholder, ProviderUsed.FALLBACK, segment.index)

    def _summarise(
        self,
        target: LanguageSpec,
        *,
        total_segments: int,
        total_batches: int,
        completed_batches: int,
        elapsed: float,
    ) -> TranslationSummary:
        counts: Dict[ProviderUsed, int] = {provider: 0 for provider in ProviderUsed}
        for result in self.results:
            counts[result.provider_used] += 1
        return TranslationSummary(
            target_language=target.display_name,
            target_code=target.code,
            split_mode=self.config.split_mode,
            group_size=self.config.group_size,
            primary_enabled=self.primary_enabled,
            total_segments=total_segments,
            total_batches=total_batches,
            completed_batches=completed_batches,
            provider_counts=counts,
            total_errors=len(self.error_policy.records),
            cancelled=self.cancelled,
            elapsed_seconds=elapsed,
            error_messages=self.error_policy.messages,
        )

    async def run_insights(self, raw_text: str, count: int = 20) -> List[Dict[str, str]]:
        """Top-insight extraction; falls back to a normal run's pairs."""

        if not raw_text or not raw_text.strip():
            raise EmptyInputError("Empty file (or unreadable format).")
        target = self.resolver.resolve(self.config.target_lang)
        insights = None
        if self.primary_enabled:
            insights = await extract_top_insights(self.primary, raw_text, count, target)
        if insights:
            return insights
        logger.warning("Insight extraction unavailable, running the normal pipeline.")
        run = await self.run(raw_text)
        return [
            {"original": result.original, "translation": result.translation}
            for result in run.results
        ]

    async def run_key_terms(self, raw_text: str, limit: int = 20) -> List[Dict[str, str]]:
        """Key-term extraction; falls back to local frequency counting."""

        if not raw_text or not raw_text.strip():
            raise EmptyInputError("Empty file (or unreadable format).")
        target = self.resolver.resolve(self.config.target_lang)
        terms = None
        if self.primary_enabled:
            terms = await extract_key_terms(self.primary, raw_text, target)
        if terms:
            return terms
        logger.warning("Key term extraction unavailable, using frequency-based terms.")
        return generate_fallback_key_terms(raw_text, limit)

    async def aclose(self) -> None:
        if self._owns_primary and self.primary is not None:
            await self.primary.aclose()
        if self._owns_secondary:
            await self.secondary.aclose()


async def translate_text(
    raw_text: str,
    config: PipelineConfig,
    *,
    primary: Optional[TranslationBackend] = None,
    secondary: Optional[TranslationBackend] = None,
    policy: Optional[RetryPolicy] = None,
) -> TranslationRun:
    """Run the full pipeline once and release the backends it created."""

    runner = TranslationRunner(config, primary=primary, secondary=secondary, policy=policy)
    try:
        return await runner.run(raw_text)
    finally:
        await runner.aclose()
