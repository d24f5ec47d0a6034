"""Tests for the segmenter and batch builder."""

import pytest

from interlinear.segmenter import (
    DELIMITER,
    BatchBuilder,
    SegmentationPolicy,
    Segmenter,
    batch_units,
    sanitise_text,
    segment_text,
    split_paragraphs,
    split_words,
    unbatch,
)
from interlinear.structures import Segment, SplitMode


class TestSentenceMode:
    """Abbreviation-aware splitting and short-fragment merging."""

    def test_abbreviation_period_is_protected(self):
        units = segment_text("Dr. Smith went home. He was tired!", SplitMode.SENTENCE)
        assert units == ["Dr. Smith went home.", "He was tired!"]

    def test_initials_do_not_split(self):
        units = segment_text("J. R. Tolkien wrote many long books.", "sentence")
        assert units == ["J. R. Tolkien wrote many long books."]

    def test_private_use_characters_survive(self):
        marker = chr(0xE000)
        text = f"Bullet {marker} item for Dr. Smith is ready. He was tired!"
        units = segment_text(text, SplitMode.SENTENCE)
        assert units == [f"Bullet {marker} item for Dr. Smith is ready.", "He was tired!"]

    def test_short_fragments_are_merged(self):
        units = segment_text("Yes. No. Maybe so, said the old man at the door.")
        assert units == ["Yes. No. Maybe so, said the old man at the door."]

    def test_long_unit_is_emitted_without_punctuation(self):
        text = ("word " * 30).strip() + ". Next sentence follows here."
        policy = SegmentationPolicy(sentence_target_length=50)
        units = segment_text(text, SplitMode.SENTENCE, policy)
        assert units[0].startswith("word word")
        assert units[-1] == "Next sentence follows here."

    def test_arabic_question_mark_ends_sentence(self):
        text = "هل ذهبت إلى المدرسة اليوم صباحا؟ نعم ذهبت مع أخي الكبير."
        units = segment_text(text, SplitMode.SENTENCE)
        assert len(units) == 2
        assert units[0].endswith("؟")

    def test_bare_numbers_are_dropped(self):
        assert segment_text("42", SplitMode.SENTENCE) == []

    def test_newlines_are_flattened(self):
        units = segment_text("The report was\nfinished on time.")
        assert units == ["The report was finished on time."]

    def test_unknown_mode_means_sentence(self):
        text = "Dr. Smith went home. He was tired!"
        assert segment_text(text, "bogus") == segment_text(text, SplitMode.SENTENCE)


class TestWordMode:
    """Whitespace tokens with connector words attached forward."""

    def test_connector_merges_with_next_word(self):
        assert segment_text("the cat sat", SplitMode.WORD) == ["the cat", "sat"]

    def test_two_connectors_take_a_third_word(self):
        assert split_words("sat in the stadium today") == [
            "sat",
            "in the stadium",
            "today",
        ]

    def test_trailing_connector_stays_alone(self):
        assert split_words("look at") == ["look", "at"]

    def test_numbers_are_dropped(self):
        assert split_words("chapter 12 begins") == ["chapter", "begins"]

    def test_arabic_connector(self):
        assert split_words("ذهب إلى البيت") == ["ذهب", "إلى البيت"]

    def test_connector_match_ignores_punctuation_and_case(self):
        assert split_words("The, dog barked") == ["The, dog", "barked"]


class TestLineAndParagraphModes:
    def test_line_mode_trims_and_filters(self):
        text = "first line\n\n   second line  \n42\nthird"
        assert segment_text(text, SplitMode.LINE) == ["first line", "second line", "third"]

    def test_line_mode_normalises_line_endings(self):
        assert segment_text("one\r\ntwo\rthree", "line") == ["one", "two", "three"]

    def test_paragraph_rejoins_wrapped_lines(self):
        text = "The first paragraph wraps\nonto a second line.\n\nSecond paragraph."
        assert split_paragraphs(text) == [
            "The first paragraph wraps onto a second line.",
            "Second paragraph.",
        ]

    def test_paragraph_breaks_after_terminal_punctuation(self):
        text = "This line ends here.\nanother starts lower case"
        assert split_paragraphs(text) == [
            "This line ends here.",
            "another starts lower case",
        ]

    def test_paragraph_breaks_before_capital(self):
        text = "a heading without stop\nBody text starts here"
        assert split_paragraphs(text) == [
            "a heading without stop",
            "Body text starts here",
        ]

    def test_paragraph_collapses_whitespace_and_drops_numbers(self):
        text = "Some   spaced    words\n\n7\n\n"
        assert segment_text(text, SplitMode.PARAGRAPH) == ["Some spaced words"]


class TestSanitisation:
    """The export delimiter must never survive inside segment text."""

    def test_delimiter_is_stripped(self):
        units = segment_text(f"Hello{DELIMITER}world", SplitMode.LINE)
        assert units == ["Hello world"]

    @pytest.mark.parametrize("mode", list(SplitMode))
    def test_no_reserved_runs_in_any_mode(self, mode):
        text = f"Alpha >>> beta <<< gamma ||| delta.{DELIMITER}Epsilon is here."
        for unit in segment_text(text, mode):
            assert DELIMITER not in unit
            assert ">>" not in unit and "<<" not in unit and "||" not in unit

    def test_single_markers_are_kept(self):
        assert sanitise_text("a > b | c") == "a > b | c"


class TestDeterminism:
    @pytest.mark.parametrize("mode", list(SplitMode))
    def test_segmenting_twice_is_identical(self, mode):
        text = (
            "Mr. Brown met Prof. Green in Jan. last year.\n"
            "They spoke at length about the project.\n\n"
            "Nothing was decided on the day!"
        )
        assert segment_text(text, mode) == segment_text(text, mode)

    def test_empty_text_yields_nothing(self):
        assert segment_text("", SplitMode.SENTENCE) == []
        assert Segmenter().segment("   ") == []


class TestSegmenter:
    def test_indices_follow_reading_order(self):
        segments = Segmenter(SplitMode.LINE).segment("alpha\nbeta\ngamma")
        assert [segment.index for segment in segments] == [0, 1, 2]
        assert [segment.text for segment in segments] == ["alpha", "beta", "gamma"]

    def test_segment_rejects_empty_text(self):
        with pytest.raises(ValueError):
            Segment(text="  ", index=0)


class TestBatching:
    """Batches partition segments without overlap or loss."""

    def test_last_batch_may_be_shorter(self):
        segments = Segmenter(SplitMode.LINE).segment("a1\nb2x\nc3\nd4\ne5")
        batches = BatchBuilder(2).build(segments)
        assert [len(batch) for batch in batches] == [2, 2, 1]
        assert [batch.batch_id for batch in batches] == [1, 2, 3]

    def test_batches_partition_segments(self):
        segments = Segmenter(SplitMode.WORD).segment("one two three four five six seven")
        batches = BatchBuilder(3).build(segments)
        flattened = [segment for batch in batches for segment in batch.segments]
        assert flattened == segments

    def test_group_size_below_one_is_clamped(self):
        segments = Segmenter(SplitMode.LINE).segment("aaa\nbbb")
        assert len(BatchBuilder(0).build(segments)) == 2

    def test_batch_text_joins_with_newline(self):
        segments = Segmenter(SplitMode.LINE).segment("first\nsecond")
        assert BatchBuilder(5).build(segments)[0].text == "first\nsecond"

    def test_batch_strings_reconstruct_units(self):
        units = segment_text(
            "One sentence is here for you. Another sentence is here too. And a third one closes it.",
            SplitMode.SENTENCE,
        )
        for size in (1, 2, 3, 10):
            assert unbatch(batch_units(units, size)) == units
