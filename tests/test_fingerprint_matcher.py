import unittest

from audio_dedup.cancel import CancelToken
from audio_dedup.errors import ScanCancelled
from audio_dedup.fingerprint import (
    DEFAULT_SIMILARITY_THRESHOLD,
    AcousticFingerprintMatcher,
    fingerprint_similarity,
    parse_fingerprint,
)

from fakes import encode, flip_bits, make_record, pattern


class TestParsing(unittest.TestCase):
    def test_masks_to_unsigned_and_zeroes_garbage(self) -> None:
        self.assertEqual(parse_fingerprint("1, -1,abc,,7"), (1, 0xFFFFFFFF, 0, 7))

    def test_empty(self) -> None:
        self.assertEqual(parse_fingerprint(None), ())
        self.assertEqual(AcousticFingerprintMatcher().parse("  "), ())
        self.assertEqual(parse_fingerprint(""), ())


class TestSimilarity(unittest.TestCase):
    def setUp(self) -> None:
        self.matcher = AcousticFingerprintMatcher()

    def test_identical_fingerprints(self) -> None:
        fp = encode(pattern(1))
        self.assertEqual(self.matcher.similarity(fp, fp), 1.0)

    def test_bit_errors_lower_similarity(self) -> None:
        base = pattern(2)
        # 4 of 32 bits differ at every position
        self.assertAlmostEqual(
            self.matcher.similarity(encode(base), encode(flip_bits(base, 4))), 1 - 4 / 32
        )

    def test_aligns_on_shorter_fingerprint(self) -> None:
        base = pattern(3, length=40)
        self.assertEqual(self.matcher.similarity(encode(base), encode(base[:20])), 1.0)

    def test_too_short_is_zero(self) -> None:
        base = pattern(4, length=9)
        self.assertEqual(fingerprint_similarity(base, base), 0.0)

    def test_missing_fingerprint(self) -> None:
        self.assertEqual(self.matcher.similarity(None, encode(pattern(5))), 0.0)
        a = make_record(1, fingerprint=None)
        b = make_record(2, fingerprint=encode(pattern(5)))
        self.assertFalse(self.matcher.are_similar(a, b))

    def test_threshold_is_inclusive(self) -> None:
        base = pattern(6)
        a = make_record(1, fingerprint=encode(base))
        b = make_record(2, fingerprint=encode(flip_bits(base, 4)))
        self.assertTrue(self.matcher.are_similar(a, b, threshold=1 - 4 / 32))
        self.assertFalse(self.matcher.are_similar(a, b, threshold=1 - 3 / 32))
        self.assertEqual(DEFAULT_SIMILARITY_THRESHOLD, 0.85)

    def test_explain(self) -> None:
        fp = encode(pattern(7))
        text = self.matcher.explain(fp, fp)
        self.assertIn("Overall similarity: 100.0%", text)
        self.assertIn("Verdict: DUPLICATE", text)
        self.assertIn("missing", self.matcher.explain(fp, None))


class TestFindSimilar(unittest.TestCase):
    def test_ranked_and_excludes_self(self) -> None:
        base = pattern(10)
        target = make_record(1, fingerprint=encode(base))
        close = make_record(2, fingerprint=encode(flip_bits(base, 1)))
        closer = make_record(3, fingerprint=encode(base))
        far = make_record(4, fingerprint=encode(pattern(99)))
        unprinted = make_record(5)
        matcher = AcousticFingerprintMatcher()
        results = matcher.find_similar(target, [target, close, closer, far, unprinted])
        self.assertEqual([item.record.id for item in results], [3, 2])
        self.assertEqual(results[0].similarity, 1.0)


class TestGroupAll(unittest.TestCase):
    def _chain(self):
        zeros = [0] * 20
        a = make_record(1, fingerprint=encode(zeros))
        b = make_record(2, fingerprint=encode([0b111] * 20))
        c = make_record(3, fingerprint=encode([0b111111] * 20))
        return a, b, c

    def test_anchor_only_clustering(self) -> None:
        a, b, c = self._chain()
        matcher = AcousticFingerprintMatcher(workers=1)
        # a~b and b~c are 3 bits apart, a~c is 6 bits apart.
        self.assertTrue(matcher.are_similar(a, b))
        self.assertTrue(matcher.are_similar(b, c))
        self.assertFalse(matcher.are_similar(a, c))
        clusters = matcher.group_all([a, b, c])
        self.assertEqual([[record.id for record in cluster] for cluster in clusters], [[1, 2]])

    def test_files_without_fingerprint_are_ignored(self) -> None:
        base = pattern(20)
        records = [
            make_record(1, fingerprint=encode(base)),
            make_record(2),
            make_record(3, fingerprint=encode(base)),
        ]
        clusters = AcousticFingerprintMatcher(workers=1).group_all(records)
        self.assertEqual([[record.id for record in cluster] for cluster in clusters], [[1, 3]])

    def test_parallel_matches_inline(self) -> None:
        records = []
        next_id = 1
        for seed in range(12):
            base = pattern(100 + seed)
            for copy in range(seed % 3 + 1):
                records.append(make_record(next_id, fingerprint=encode(flip_bits(base, copy))))
                next_id += 1
        inline = AcousticFingerprintMatcher(workers=1).group_all(records)
        parallel = AcousticFingerprintMatcher(workers=2, parallel_min_files=2, chunk_size=3).group_all(records)
        self.assertEqual(
            [[record.id for record in cluster] for cluster in inline],
            [[record.id for record in cluster] for cluster in parallel],
        )
        self.assertEqual(len(inline), 8)

    def test_progress_reports_rows_and_comparisons(self) -> None:
        base = pattern(30)
        records = [make_record(i, fingerprint=encode(base)) for i in range(1, 5)]
        seen = []
        AcousticFingerprintMatcher(workers=1).group_all(
            records, progress=lambda rows, comparisons: seen.append((rows, comparisons))
        )
        self.assertEqual(sum(rows for rows, _ in seen), 4)
        self.assertEqual(sum(comparisons for _, comparisons in seen), 6)

    def test_cancelled_token_stops_grouping(self) -> None:
        base = pattern(40)
        records = [make_record(i, fingerprint=encode(base)) for i in range(1, 5)]
        token = CancelToken()
        token.cancel()
        with self.assertRaises(ScanCancelled):
            AcousticFingerprintMatcher(workers=1).group_all(records, cancel=token)
        with self.assertRaises(ScanCancelled):
            AcousticFingerprintMatcher(workers=2, parallel_min_files=2).group_all(records, cancel=token)

    def test_group_similarities_against_anchor(self) -> None:
        base = pattern(50)
        records = [
            make_record(1, fingerprint=encode(base)),
            make_record(2, fingerprint=encode(flip_bits(base, 2))),
            make_record(3),
        ]
        similarities = AcousticFingerprintMatcher().group_similarities(records)
        self.assertEqual(similarities[0], 1.0)
        self.assertAlmostEqual(similarities[1], 1 - 2 / 32)
        self.assertIsNone(similarities[2])


if __name__ == "__main__":
    unittest.main()
