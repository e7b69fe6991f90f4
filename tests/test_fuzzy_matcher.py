import unittest

from audio_dedup.config import MatchConfig
from audio_dedup.fuzzy import FuzzyMetadataMatcher

from fakes import make_record


class TestFieldNormalization(unittest.TestCase):
    def setUp(self) -> None:
        self.matcher = FuzzyMetadataMatcher()

    def test_artist_prefix_is_ignored(self) -> None:
        self.assertEqual(self.matcher.field_similarity("artist", "The Beatles", "Beatles"), 1.0)

    def test_album_edition_suffix_is_ignored(self) -> None:
        self.assertEqual(
            self.matcher.field_similarity("album", "Abbey Road (Deluxe Edition)", "Abbey Road"),
            1.0,
        )
        self.assertEqual(
            self.matcher.field_similarity("album", "Abbey Road [2019 Remaster]", "Abbey Road"),
            1.0,
        )

    def test_accents_and_case_are_folded(self) -> None:
        self.assertEqual(self.matcher.field_similarity("artist", "BEYONCÉ", "Beyonce"), 1.0)

    def test_featuring_clause_kept_by_default(self) -> None:
        score = self.matcher.field_similarity("title", "Song (feat. Guest)", "Song")
        self.assertLess(score, 1.0)

    def test_featuring_clause_stripped_when_enabled(self) -> None:
        matcher = FuzzyMetadataMatcher(MatchConfig.lenient())
        self.assertEqual(matcher.field_similarity("title", "Song (feat. Guest)", "Song"), 1.0)
        self.assertEqual(matcher.field_similarity("artist", "Artist ft. Other", "Artist"), 1.0)

    def test_word_order_insensitive_by_default(self) -> None:
        self.assertEqual(self.matcher.field_similarity("title", "Love Song", "Song Love"), 1.0)

    def test_word_order_sensitive_when_configured(self) -> None:
        matcher = FuzzyMetadataMatcher(MatchConfig(word_order_sensitive=True))
        self.assertLess(matcher.field_similarity("title", "Love Song", "Song Love"), 1.0)

    def test_missing_values_have_no_score(self) -> None:
        self.assertIsNone(self.matcher.field_similarity("title", None, "Song"))
        self.assertIsNone(self.matcher.field_similarity("title", "   ", "Song"))


class TestDuplicateDecision(unittest.TestCase):
    def setUp(self) -> None:
        self.matcher = FuzzyMetadataMatcher()

    def test_identical_metadata_is_duplicate(self) -> None:
        a = make_record(1, title="Song", artist="Artist", album="Album", duration_seconds=200)
        b = make_record(2, title="Song", artist="Artist", album="Album", duration_seconds=201)
        self.assertTrue(self.matcher.are_duplicates(a, b))
        self.assertAlmostEqual(self.matcher.similarity(a, b), 1.0)

    def test_non_duplicate_similarity_is_zero(self) -> None:
        a = make_record(1, title="Yesterday", artist="The Beatles")
        b = make_record(2, title="Paranoid", artist="Black Sabbath")
        self.assertFalse(self.matcher.are_duplicates(a, b))
        self.assertEqual(self.matcher.similarity(a, b), 0.0)

    def test_minimum_fields_gate(self) -> None:
        a = make_record(1, title="Song", artist="Artist")
        b = make_record(2, title="Song", artist="Completely Different")
        self.assertFalse(self.matcher.are_duplicates(a, b))
        lenient = FuzzyMetadataMatcher(MatchConfig(minimum_fields_to_match=1))
        self.assertTrue(lenient.are_duplicates(a, b))

    def test_missing_fields_never_count(self) -> None:
        a = make_record(1, title="Song")
        b = make_record(2, title="Song")
        self.assertFalse(self.matcher.are_duplicates(a, b))

    def test_threshold_is_inclusive(self) -> None:
        a = make_record(1, title="Midnight Train")
        b = make_record(2, title="Midnight Trains")
        score = self.matcher.field_similarity("title", a.title, b.title)
        self.assertLess(score, 1.0)
        at_boundary = FuzzyMetadataMatcher(MatchConfig(title_threshold=score, minimum_fields_to_match=1))
        self.assertTrue(at_boundary.are_duplicates(a, b))
        above = FuzzyMetadataMatcher(
            MatchConfig(title_threshold=min(1.0, score + 0.001), minimum_fields_to_match=1)
        )
        self.assertFalse(above.are_duplicates(a, b))

    def test_duration_outside_tolerance_disqualifies(self) -> None:
        a = make_record(1, title="Song", artist="Artist", duration_seconds=200)
        b = make_record(2, title="Song", artist="Artist", duration_seconds=260)
        self.assertFalse(self.matcher.are_duplicates(a, b))
        self.assertEqual(self.matcher.compare(a, b).disqualified, "duration outside tolerance")

    def test_duration_needs_both_tolerances(self) -> None:
        # 8 seconds apart is inside 10 s but is 7.7% of a 104 s mean.
        a = make_record(1, title="Song", artist="Artist", duration_seconds=100)
        b = make_record(2, title="Song", artist="Artist", duration_seconds=108)
        self.assertFalse(self.matcher.are_duplicates(a, b))

    def test_missing_duration_does_not_disqualify(self) -> None:
        a = make_record(1, title="Song", artist="Artist", duration_seconds=200)
        b = make_record(2, title="Song", artist="Artist")
        self.assertTrue(self.matcher.are_duplicates(a, b))

    def test_bitrate_difference_is_informational(self) -> None:
        a = make_record(1, title="Song", artist="Artist", bitrate=128)
        b = make_record(2, title="Song", artist="Artist", bitrate=320)
        breakdown = self.matcher.compare(a, b)
        self.assertTrue(breakdown.is_duplicate)
        self.assertEqual(breakdown.matched_count, 2)
        self.assertFalse(breakdown.get("bitrate").matched)

    def test_track_number_mismatch_when_required(self) -> None:
        matcher = FuzzyMetadataMatcher(MatchConfig(track_number_must_match=True))
        a = make_record(1, title="Song", artist="Artist", track_number=1)
        b = make_record(2, title="Song", artist="Artist", track_number=2)
        self.assertFalse(matcher.are_duplicates(a, b))
        self.assertTrue(self.matcher.are_duplicates(a, b))

    def test_missing_track_number_skipped_or_disqualifying(self) -> None:
        a = make_record(1, title="Song", artist="Artist", track_number=1)
        b = make_record(2, title="Song", artist="Artist")
        skipping = FuzzyMetadataMatcher(MatchConfig(track_number_must_match=True))
        self.assertTrue(skipping.are_duplicates(a, b))
        strict = FuzzyMetadataMatcher(
            MatchConfig(track_number_must_match=True, ignore_missing_track_number=False)
        )
        self.assertFalse(strict.are_duplicates(a, b))

    def test_explain_reports_fields_and_result(self) -> None:
        a = make_record(1, title="Song", artist="Artist", album="Album", duration_seconds=200)
        b = make_record(2, title="Song", artist="Artist", album="Other", duration_seconds=200)
        text = self.matcher.explain(a, b)
        self.assertTrue(text.startswith("Similarity Breakdown:"))
        self.assertIn("Title: 100.0%", text)
        self.assertIn("Fields matched: 3 (minimum: 2)", text)
        self.assertTrue(text.endswith("Result: DUPLICATE"))


if __name__ == "__main__":
    unittest.main()
