import tempfile
import unittest
from pathlib import Path

from audio_dedup.config import MatchConfig, Settings, find_config
from audio_dedup.errors import ConfigError


class TestMatchConfig(unittest.TestCase):
    def test_presets(self) -> None:
        strict = MatchConfig.preset("STRICT")
        self.assertEqual(strict.minimum_fields_to_match, 4)
        self.assertTrue(strict.track_number_must_match)
        self.assertTrue(MatchConfig.preset("lenient").ignore_featuring)
        self.assertEqual(MatchConfig.preset("balanced"), MatchConfig())

    def test_unknown_preset(self) -> None:
        with self.assertRaises(ConfigError):
            MatchConfig.preset("fuzzy")

    def test_percent_thresholds_are_converted(self) -> None:
        config = MatchConfig(title_threshold=85, artist_threshold="90")
        self.assertAlmostEqual(config.title_threshold, 0.85)
        self.assertAlmostEqual(config.artist_threshold, 0.90)

    def test_summary(self) -> None:
        text = MatchConfig().summary()
        self.assertIn("Fuzzy Search Configuration: Balanced", text)
        self.assertIn("Min Fields Match: 2/4", text)
        self.assertIn("AnyWordOrder", text)


class TestSettingsLoading(unittest.TestCase):
    def _write(self, tmpdir: str, text: str) -> Path:
        path = Path(tmpdir) / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_preset_with_overrides(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self._write(
                tmpdir,
                "library:\n  roots: [music]\n"
                "matching:\n  preset: lenient\n  minimum_fields_to_match: 3\n"
                "fingerprint:\n  backend: fpcalc\n",
            )
            settings = Settings.load(path)
        self.assertEqual(settings.matching.name, "Lenient")
        self.assertEqual(settings.matching.minimum_fields_to_match, 3)
        self.assertEqual(settings.fingerprint.backend, "fpcalc")
        self.assertTrue(settings.library.roots[0].is_absolute())

    def test_preset_name_only(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            settings = Settings.load(self._write(tmpdir, "matching: strict\n"))
        self.assertEqual(settings.matching.name, "Strict")

    def test_empty_file_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            settings = Settings.load(self._write(tmpdir, ""))
        self.assertEqual(settings.scan.cache_ttl_seconds, 60.0)
        self.assertEqual(settings.scan.group_batch_size, 25)

    def test_invalid_yaml(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                Settings.load(self._write(tmpdir, "library: [unclosed\n"))

    def test_invalid_values(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                Settings.load(self._write(tmpdir, "fingerprint:\n  backend: magic\n"))

    def test_missing_explicit_config(self) -> None:
        with self.assertRaises(ConfigError):
            find_config(Path("/definitely/not/config.yaml"))


if __name__ == "__main__":
    unittest.main()
