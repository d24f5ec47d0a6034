"""Tests for the pipeline orchestrator."""

import asyncio

import pytest

from interlinear.errors import EmptyInputError, ErrorCategory, TranslationProviderError
from interlinear.policy import NO_DELAY
from interlinear.providers import EchoBackend, TranslationBackend
from interlinear.quality import QualityGate
from interlinear.segmenter import segment_text
from interlinear.structures import ProviderUsed, SplitMode
from interlinear.translator import (
    PipelineConfig,
    PipelineState,
    TranslationRunner,
    translate_text,
)

THREE_SENTENCES = (
    "The first sentence is right here. "
    "The second sentence stays the same. "
    "The third sentence closes the text."
)


class StubBackend(TranslationBackend):
    """Looks translations up in a table; unknown segments are echoed."""

    name = "stub"

    def __init__(self, table=None, *, fail=False, on_call=None):
        self.table = dict(table or {})
        self.fail = fail
        self.on_call = on_call
        self.calls = []

    async def translate_batch(self, segments, target):
        self.calls.append(list(segments))
        if self.on_call is not None:
            self.on_call()
        if self.fail:
            return None
        return [self.table.get(segment, segment) for segment in segments]


class RaisingBackend(TranslationBackend):
    name = "raising"

    async def translate_batch(self, segments, target):
        raise TranslationProviderError("endpoint down")


class CountingGate(QualityGate):
    """Records the original of every candidate it judges."""

    def __init__(self):
        super().__init__()
        self.judged = []

    def rejection_reason(self, original, candidate):
        self.judged.append(original)
        return super().rejection_reason(original, candidate)


def _table(text, prefix="fr"):
    return {unit: f"{prefix}: {unit[::-1]}" for unit in segment_text(text)}


def _run(runner, text):
    async def scenario():
        try:
            return await runner.run(text)
        finally:
            await runner.aclose()

    return asyncio.run(scenario())


class TestPipelineConfig:
    def test_normalises_mode_and_group_size(self):
        config = PipelineConfig(split_mode="LINE", group_size=0)
        assert config.split_mode is SplitMode.LINE
        assert config.group_size == 1

    def test_defaults(self):
        config = PipelineConfig()
        assert config.target_lang == "English"
        assert config.split_mode is SplitMode.SENTENCE
        assert config.has_primary_credential is False

    def test_groups_per_call_sets_call_size(self):
        config = PipelineConfig(group_size=2, groups_per_call=5)
        assert config.call_size == 10
        assert PipelineConfig(groups_per_call=0).call_size == 1


class TestSecondaryOnly:
    """Runs without a primary credential."""

    def test_echoed_segment_becomes_placeholder(self):
        units = segment_text(THREE_SENTENCES)
        assert len(units) == 3
        table = {units[0]: "Voici la première phrase.", units[2]: "La troisième phrase termine le texte."}
        secondary = StubBackend(table)
        runner = TranslationRunner(
            PipelineConfig(target_lang="French", group_size=3),
            secondary=secondary,
            policy=NO_DELAY,
        )

        run = _run(runner, THREE_SENTENCES)

        assert [r.original for r in run.results] == units
        assert run.results[0].translation == table[units[0]]
        assert run.results[2].translation == table[units[2]]
        assert run.results[1].translation == f"[TRADUCTION FRANÇAISE NÉCESSAIRE: {units[1][:30]}...]"
        assert [r.provider_used for r in run.results] == [
            ProviderUsed.SECONDARY,
            ProviderUsed.FALLBACK,
            ProviderUsed.SECONDARY,
        ]
        # Whole batch once, then the rejected segment alone.
        assert secondary.calls == [units, [units[1]]]

    def test_summary_reports_counts_and_errors(self):
        units = segment_text(THREE_SENTENCES)
        secondary = StubBackend({units[0]: "Un", units[2]: "Trois"})
        runner = TranslationRunner(
            PipelineConfig(target_lang="French"), secondary=secondary, policy=NO_DELAY
        )

        run = _run(runner, THREE_SENTENCES)

        summary = run.summary
        assert summary.total_segments == 3
        assert summary.total_batches == 3
        assert summary.completed_batches == 3
        assert summary.provider_counts[ProviderUsed.SECONDARY] == 2
        assert summary.provider_counts[ProviderUsed.FALLBACK] == 1
        assert summary.provider_counts[ProviderUsed.PRIMARY] == 0
        assert summary.target_code == "fr"
        assert summary.cancelled is False
        assert runner.error_policy.count(ErrorCategory.VALIDATION) == 1
        assert runner.error_policy.count(ErrorCategory.FALLBACK) == 1
        assert run.sys_version == "GTX_v2"
        assert runner.state is PipelineState.DONE

    def test_primary_is_skipped_without_credential(self):
        primary = StubBackend(_table(THREE_SENTENCES, "primary"))
        secondary = StubBackend(_table(THREE_SENTENCES))
        runner = TranslationRunner(
            PipelineConfig(target_lang="French", has_primary_credential=False),
            primary=primary,
            secondary=secondary,
            policy=NO_DELAY,
        )

        run = _run(runner, THREE_SENTENCES)

        assert primary.calls == []
        assert all(r.provider_used is ProviderUsed.SECONDARY for r in run.results)

    def test_raising_secondary_degrades_to_fallback(self):
        runner = TranslationRunner(
            PipelineConfig(target_lang="German", split_mode="line"),
            secondary=RaisingBackend(),
            policy=NO_DELAY,
        )

        run = _run(runner, "Good morning\nGood night")

        assert len(run) == 2
        assert all(r.provider_used is ProviderUsed.FALLBACK for r in run.results)
        assert run.results[0].translation == "[DEUTSCHE ÜBERSETZUNG BENÖTIGT: Good morning...]"
        assert runner.error_policy.count(ErrorCategory.NETWORK) == 4

    def test_same_script_fallback_keeps_original(self):
        runner = TranslationRunner(
            PipelineConfig(target_lang="English", split_mode="line"),
            secondary=EchoBackend(),
            policy=NO_DELAY,
        )

        run = _run(runner, "Already English")

        assert run.results[0].translation == "Already English"
        assert run.results[0].provider_used is ProviderUsed.FALLBACK


class TestPrimaryPath:
    def _runner(self, primary, secondary, group_size=3):
        return TranslationRunner(
            PipelineConfig(
                target_lang="French", group_size=group_size, has_primary_credential=True
            ),
            primary=primary,
            secondary=secondary,
            policy=NO_DELAY,
        )

    def test_primary_results_are_used(self):
        primary = StubBackend(_table(THREE_SENTENCES, "primary"))
        secondary = StubBackend(_table(THREE_SENTENCES))
        run = _run(self._runner(primary, secondary), THREE_SENTENCES)

        assert all(r.provider_used is ProviderUsed.PRIMARY for r in run.results)
        assert all(r.translation.startswith("primary: ") for r in run.results)
        assert secondary.calls == []
        assert run.sys_version == "AI_v2"

    def test_rejected_segment_is_retried_via_secondary(self):
        units = segment_text(THREE_SENTENCES)
        primary_table = _table(THREE_SENTENCES, "primary")
        del primary_table[units[1]]
        primary = StubBackend(primary_table)
        secondary = StubBackend(_table(THREE_SENTENCES))

        run = _run(self._runner(primary, secondary), THREE_SENTENCES)

        assert [r.provider_used for r in run.results] == [
            ProviderUsed.PRIMARY,
            ProviderUsed.SECONDARY,
            ProviderUsed.PRIMARY,
        ]
        assert secondary.calls == [[units[1]]]

    def test_primary_failure_falls_through_to_secondary(self):
        primary = StubBackend(fail=True)
        secondary = StubBackend(_table(THREE_SENTENCES))
        runner = self._runner(primary, secondary)

        run = _run(runner, THREE_SENTENCES)

        assert all(r.provider_used is ProviderUsed.SECONDARY for r in run.results)
        assert secondary.calls == [segment_text(THREE_SENTENCES)]
        assert runner.error_policy.count(ErrorCategory.PROVIDER) == 1

    def test_all_rejected_batch_goes_to_secondary(self):
        primary = StubBackend()
        secondary = StubBackend(_table(THREE_SENTENCES))
        runner = self._runner(primary, secondary)

        run = _run(runner, THREE_SENTENCES)

        assert all(r.provider_used is ProviderUsed.SECONDARY for r in run.results)
        assert len(secondary.calls) == 1
        assert runner.error_policy.count(ErrorCategory.VALIDATION) == 1

    def test_groups_per_call_share_one_backend_call(self):
        primary = StubBackend(_table(THREE_SENTENCES, "primary"))
        runner = TranslationRunner(
            PipelineConfig(
                target_lang="French",
                group_size=1,
                groups_per_call=3,
                has_primary_credential=True,
            ),
            primary=primary,
            secondary=StubBackend(),
            policy=NO_DELAY,
        )

        run = _run(runner, THREE_SENTENCES)

        assert primary.calls == [segment_text(THREE_SENTENCES)]
        assert run.summary.total_batches == 1
        assert run.summary.group_size == 1
        assert len(run) == 3

    def test_gate_judges_each_candidate_once(self):
        units = segment_text(THREE_SENTENCES)
        primary_table = _table(THREE_SENTENCES, "primary")
        del primary_table[units[1]]
        gate = CountingGate()
        runner = TranslationRunner(
            PipelineConfig(target_lang="French", group_size=3, has_primary_credential=True),
            primary=StubBackend(primary_table),
            secondary=StubBackend(_table(THREE_SENTENCES)),
            gate=gate,
            policy=NO_DELAY,
        )

        _run(runner, THREE_SENTENCES)

        # Three primary candidates, then the single secondary retry.
        assert gate.judged == [units[0], units[1], units[2], units[1]]


class TestInvariants:
    @pytest.mark.parametrize("group_size", [1, 2, 3, 7])
    @pytest.mark.parametrize("mode", list(SplitMode))
    def test_length_and_order(self, mode, group_size):
        text = (
            "Mr. Green opened the meeting at noon.\n"
            "Everyone listened carefully to him.\n\n"
            "The budget was approved without changes!\n"
            "Nobody asked a question afterwards."
        )
        units = segment_text(text, mode)
        secondary = StubBackend({unit: f"<{unit.upper()}>" for unit in units[::2]})
        runner = TranslationRunner(
            PipelineConfig(target_lang="Spanish", split_mode=mode, group_size=group_size),
            secondary=secondary,
            policy=NO_DELAY,
        )

        run = _run(runner, text)

        assert len(run.results) == len(units)
        assert [r.original for r in run.results] == units
        assert [r.index for r in run.results] == list(range(len(units)))
        assert all(r.translation.strip() for r in run.results)


class TestFailures:
    @pytest.mark.parametrize("text", ["", "   \n\t "])
    def test_empty_input_raises(self, text):
        runner = TranslationRunner(PipelineConfig(), secondary=EchoBackend(), policy=NO_DELAY)
        with pytest.raises(EmptyInputError):
            _run(runner, text)

    def test_input_without_segments_raises(self):
        runner = TranslationRunner(
            PipelineConfig(split_mode="line"), secondary=EchoBackend(), policy=NO_DELAY
        )
        with pytest.raises(EmptyInputError):
            _run(runner, "12\n34\n")


class TestCancellation:
    def test_cancel_keeps_completed_batches(self):
        runner = None

        def cancel_after_first_call():
            runner.cancel()

        units = segment_text(THREE_SENTENCES)
        secondary = StubBackend(_table(THREE_SENTENCES), on_call=cancel_after_first_call)
        runner = TranslationRunner(
            PipelineConfig(target_lang="French", group_size=1),
            secondary=secondary,
            policy=NO_DELAY,
        )

        run = _run(runner, THREE_SENTENCES)

        assert len(run.results) == 1
        assert run.results[0].original == units[0]
        assert run.results[0].provider_used is ProviderUsed.SECONDARY
        assert run.summary.cancelled is True
        assert run.summary.completed_batches == 1
        assert run.summary.total_batches == 3
        assert runner.state is PipelineState.CANCELLED

    def test_cancel_before_run_returns_empty(self):
        runner = TranslationRunner(
            PipelineConfig(), secondary=EchoBackend(), policy=NO_DELAY
        )
        runner.cancel()
        run = _run(runner, THREE_SENTENCES)
        assert run.results == []
        assert run.summary.cancelled is True


class TestRunnerReuse:
    def test_errors_do_not_accumulate_across_runs(self):
        units = segment_text(THREE_SENTENCES)
        runner = TranslationRunner(
            PipelineConfig(target_lang="French", group_size=3),
            secondary=StubBackend({units[0]: "Un", units[2]: "Trois"}),
            policy=NO_DELAY,
        )

        async def scenario():
            try:
                return await runner.run(THREE_SENTENCES), await runner.run(THREE_SENTENCES)
            finally:
                await runner.aclose()

        first, second = asyncio.run(scenario())

        assert first.summary.total_errors == 2
        assert second.summary.total_errors == first.summary.total_errors
        assert second.summary.error_messages == first.summary.error_messages
        assert len(second) == 3

    def test_runner_works_again_after_cancelled_run(self):
        runner = TranslationRunner(
            PipelineConfig(target_lang="French", group_size=1),
            secondary=StubBackend(_table(THREE_SENTENCES)),
            policy=NO_DELAY,
        )

        async def scenario():
            try:
                runner.cancel()
                cancelled = await runner.run(THREE_SENTENCES)
                return cancelled, await runner.run(THREE_SENTENCES)
            finally:
                await runner.aclose()

        cancelled, second = asyncio.run(scenario())

        assert cancelled.results == []
        assert cancelled.summary.cancelled is True
        assert second.summary.cancelled is False
        assert [r.original for r in second.results] == segment_text(THREE_SENTENCES)
        assert runner.state is PipelineState.DONE


class TestTranslateText:
    def test_convenience_wrapper(self):
        secondary = StubBackend(_table(THREE_SENTENCES))
        run = asyncio.run(
            translate_text(
                THREE_SENTENCES,
                PipelineConfig(target_lang="French"),
                secondary=secondary,
                policy=NO_DELAY,
            )
        )
        assert len(run) == 3
        assert run.summary.split_mode is SplitMode.SENTENCE


class TestExtractionModes:
    def test_key_terms_fall_back_to_frequency(self):
        runner = TranslationRunner(PipelineConfig(), secondary=EchoBackend(), policy=NO_DELAY)
        text = "Quantum entanglement links particles. Quantum states collapse. Entanglement persists."
        terms = asyncio.run(runner.run_key_terms(text, limit=2))
        assert terms == [
            {"original": "quantum", "translation": "quantum"},
            {"original": "entanglement", "translation": "entanglement"},
        ]

    def test_insights_fall_back_to_pipeline(self):
        secondary = StubBackend(_table(THREE_SENTENCES))
        runner = TranslationRunner(
            PipelineConfig(target_lang="French"), secondary=secondary, policy=NO_DELAY
        )
        pairs = asyncio.run(runner.run_insights(THREE_SENTENCES, count=5))
        assert [pair["original"] for pair in pairs] == segment_text(THREE_SENTENCES)

    def test_extraction_rejects_empty_input(self):
        runner = TranslationRunner(PipelineConfig(), secondary=EchoBackend(), policy=NO_DELAY)
        with pytest.raises(EmptyInputError):
            asyncio.run(runner.run_key_terms("  "))
