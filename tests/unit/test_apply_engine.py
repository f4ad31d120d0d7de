"""
Unit tests for core/versioning/apply_engine.py
"""
import pytest

from core.models import Suggestion
from core.versioning.apply_engine import (
    NOT_FOUND,
    OVERLAP,
    apply_accepted_edits,
    iter_spans,
    locate_span,
    resolve_positions,
)

# 52 distinct characters: every slice is unique
BASE = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"


def span_suggestion(sid: str, start: int, end: int, replacement: str) -> Suggestion:
    return Suggestion(id=sid, original_text=BASE[start:end], improved_text=replacement)


class TestLocateSpan:
    """Test span resolution against the base text."""

    def test_exact_match(self):
        assert locate_span("hello brave world", "brave") == (6, 11)

    def test_first_occurrence_wins(self):
        assert locate_span("one two one", "one") == (0, 3)

    def test_whitespace_tolerant_fallback(self):
        text = "The quick  brown\nfox jumps."
        start, end = locate_span(text, "quick brown fox")
        assert text[start:end] == "quick  brown\nfox"

    def test_missing_text(self):
        assert locate_span("hello world", "goodbye") is None

    def test_blank_original(self):
        assert locate_span("hello world", "   ") is None
        assert locate_span("hello world", "") is None

    def test_every_occurrence_listed(self):
        text = "one two one  two one"
        assert list(iter_spans(text, "one")) == [(0, 3), (8, 11), (17, 20)]
        assert list(iter_spans(text, "one two")) == [(0, 7), (8, 16)]


class TestApplyAcceptedEdits:
    """Test applying accepted suggestions."""

    def test_overlapping_spans_by_descending_start(self):
        """Spans 10-20, 15-25, 30-40: 30 and 15 apply, 10 overlaps 15."""
        s10 = span_suggestion("s10", 10, 20, "A")
        s15 = span_suggestion("s15", 15, 25, "B")
        s30 = span_suggestion("s30", 30, 40, "C")

        edited, report = apply_accepted_edits(BASE, [s10, s15, s30])

        assert edited == BASE[:15] + "B" + BASE[25:30] + "C" + BASE[40:]
        assert report.applied_ids == ["s30", "s15"]
        assert report.unmatched_ids == ["s10"]
        assert report.unmatched_reasons["s10"] == OVERLAP
        assert report.applied_count == 2
        assert report.unmatched_count == 1

    def test_deterministic(self):
        """Same inputs give byte-identical output and the same report."""
        suggestions = [
            span_suggestion("a", 0, 5, "12345678"),
            span_suggestion("b", 3, 8, "x"),
            span_suggestion("c", 40, 45, ""),
        ]
        first = apply_accepted_edits(BASE, suggestions)
        second = apply_accepted_edits(BASE, suggestions)

        assert first[0] == second[0]
        assert first[1].to_dict() == second[1].to_dict()

    def test_non_overlapping_order_independent(self):
        """Swapping the order of non-overlapping edits gives the same text."""
        a = span_suggestion("a", 2, 6, "FIRST-EDIT")
        b = span_suggestion("b", 20, 28, "second")

        forward, _ = apply_accepted_edits(BASE, [a, b])
        backward, _ = apply_accepted_edits(BASE, [b, a])

        assert forward == backward
        assert forward == BASE[:2] + "FIRST-EDIT" + BASE[6:20] + "second" + BASE[28:]

    def test_unfound_text_is_reported(self):
        missing = Suggestion(id="m", original_text="not in the text", improved_text="x")
        edited, report = apply_accepted_edits(BASE, [missing])

        assert edited == BASE
        assert report.unmatched_ids == ["m"]
        assert report.unmatched_reasons["m"] == NOT_FOUND

    def test_equal_start_keeps_input_order(self):
        """Two edits of the same span: the first listed applies."""
        first = span_suggestion("first", 5, 10, "ONE")
        second = span_suggestion("second", 5, 10, "TWO")

        edited, report = apply_accepted_edits(BASE, [first, second])

        assert edited == BASE[:5] + "ONE" + BASE[10:]
        assert report.applied_ids == ["first"]
        assert report.unmatched_ids == ["second"]

    def test_repeated_text_uses_next_free_occurrence(self):
        """Identical originals each take their own occurrence."""
        text = "Hello world.\n\nHello world.\n\nBye."
        first = Suggestion(id="p0", original_text="Hello world.", improved_text="Bonjour le monde.")
        second = Suggestion(id="p1", original_text="Hello world.", improved_text="Bonjour le monde.")

        edited, report = apply_accepted_edits(text, [first, second])

        assert edited == "Bonjour le monde.\n\nBonjour le monde.\n\nBye."
        assert report.applied_count == 2
        assert report.unmatched_count == 0

    def test_repeated_text_beyond_occurrences_is_overlap(self):
        text = "Hi. Bye. Hi."
        edits = [
            Suggestion(id=str(i), original_text="Hi.", improved_text=f"Hey{i}.")
            for i in range(3)
        ]

        edited, report = apply_accepted_edits(text, edits)

        assert edited == "Hey0. Bye. Hey1."
        assert report.applied_ids == ["0", "1"]
        assert report.unmatched_reasons == {"2": OVERLAP}

    def test_repeated_text_skips_occurrence_claimed_by_other_edit(self):
        text = "ab ab ab"
        edits = [
            Suggestion(id="short", original_text="ab", improved_text="AB"),
            Suggestion(id="long", original_text="b ab", improved_text="B AB"),
        ]

        edited, report = apply_accepted_edits(text, edits)

        assert edited == "aB AB AB"
        assert report.applied_ids == ["long", "short"]
        assert report.unmatched_count == 0

    def test_adjacent_spans_both_apply(self):
        left = span_suggestion("left", 0, 5, "L")
        right = span_suggestion("right", 5, 10, "R")

        edited, report = apply_accepted_edits(BASE, [left, right])

        assert edited == "LR" + BASE[10:]
        assert report.unmatched_count == 0

    def test_longer_replacement_does_not_shift_other_edits(self):
        text = "alpha beta gamma"
        edits = [
            Suggestion(id="1", original_text="alpha", improved_text="a much longer alpha"),
            Suggestion(id="2", original_text="gamma", improved_text="G"),
        ]
        edited, report = apply_accepted_edits(text, edits)

        assert edited == "a much longer alpha beta G"
        assert report.applied_count == 2

    def test_whitespace_variant_is_applied(self):
        text = "Line one\nline two."
        edit = Suggestion(id="w", original_text="one line two", improved_text="one, line two")
        edited, report = apply_accepted_edits(text, [edit])

        assert edited == "Line one, line two."
        assert report.applied_ids == ["w"]

    def test_empty_input(self):
        edited, report = apply_accepted_edits(BASE, [])
        assert edited == BASE
        assert report.to_dict()["applied_count"] == 0


class TestResolvePositions:
    """Test {start, end} annotation for review."""

    def test_positions_added_when_found(self):
        found = Suggestion(id="f", original_text="KLM", improved_text="x")
        lost = Suggestion(id="l", original_text="???", improved_text="y")

        resolved = resolve_positions(BASE, [found, lost])

        assert resolved[0].position == {"start": 36, "end": 39}
        assert resolved[1].position is None

    def test_original_suggestion_unchanged(self):
        s = Suggestion(id="f", original_text="abc", improved_text="x")
        resolve_positions(BASE, [s])
        assert s.position is None
