from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from szip.config import CONFIG_ENV, SzipConfig, config_path, load_config, save_config, set_value
from szip.errors import ValidationError


class ConfigTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_defaults_when_missing(self):
        def scenario(tmp: Path):
            cfg = load_config(str(tmp / "none.json"))
            self.assertEqual(cfg, SzipConfig())
            self.assertEqual(cfg.compression_level, 9)
            self.assertEqual(cfg.exists, "overwrite")

        self.run_with_tmpdir(scenario)

    def test_save_and_load(self):
        def scenario(tmp: Path):
            path = str(tmp / "nested" / "config.json")
            cfg = SzipConfig(compression_level=4, hash_algorithm="sha512", exclude=["*.pyc"], show_progress=False)
            save_config(cfg, path)
            self.assertEqual(load_config(path), cfg)
            self.assertFalse(os.path.exists(path + ".tmp"))

        self.run_with_tmpdir(scenario)

    def test_unknown_keys_ignored(self):
        def scenario(tmp: Path):
            path = tmp / "c.json"
            path.write_text(json.dumps({"compression_level": 2, "theme": "dark"}))
            self.assertEqual(load_config(str(path)).compression_level, 2)

        self.run_with_tmpdir(scenario)

    def test_corrupt_file(self):
        def scenario(tmp: Path):
            path = tmp / "c.json"
            path.write_text("{not json")
            with self.assertRaises(ValidationError):
                load_config(str(path))
            path.write_text("[1, 2]")
            with self.assertRaises(ValidationError):
                load_config(str(path))
            path.write_text(json.dumps({"compression_level": 12}))
            with self.assertRaises(ValidationError):
                load_config(str(path))

        self.run_with_tmpdir(scenario)

    def test_set_value_coerces_strings(self):
        cfg = set_value(SzipConfig(), "show_progress", "no")
        self.assertFalse(cfg.show_progress)
        cfg = set_value(cfg, "compression_level", "1")
        self.assertEqual(cfg.compression_level, 1)
        cfg = set_value(cfg, "exclude", "*.log, build ,")
        self.assertEqual(cfg.exclude, ["*.log", "build"])
        cfg = set_value(cfg, "hash_algorithm", "")
        self.assertIsNone(cfg.hash_algorithm)
        with self.assertRaises(ValidationError):
            set_value(cfg, "show_progress", "maybe")
        with self.assertRaises(ValidationError):
            set_value(cfg, "hash_algorithm", "crc32")
        with self.assertRaises(ValidationError):
            set_value(cfg, "colour", "1")

    def test_env_override(self):
        with mock.patch.dict(os.environ, {CONFIG_ENV: "/somewhere/else.json"}):
            self.assertEqual(config_path(), "/somewhere/else.json")
        with mock.patch.dict(os.environ, {CONFIG_ENV: ""}):
            self.assertTrue(config_path().endswith(os.path.join("szip", "config.json")))


if __name__ == "__main__":
    unittest.main()
