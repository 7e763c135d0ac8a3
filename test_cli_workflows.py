from __future__ import annotations

import hashlib
import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from szip.cli import format_size


def _build_fixture_tree(root: Path):
    (root / "docs" / "notes").mkdir(parents=True)
    (root / "docs" / "readme.txt").write_bytes(b"hello world\n" * 20)
    (root / "docs" / "notes" / "binary.bin").write_bytes(os.urandom(2048))
    (root / "docs" / "notes" / "empty.txt").write_text("")
    (root / "void").mkdir()


def _compare_trees(src: Path, dst: Path):
    for dirpath, dirnames, filenames in os.walk(src):
        rel = os.path.relpath(dirpath, src)
        other = dst / rel
        assert other.is_dir(), f"Missing directory: {other}"
        for f in filenames:
            with open(os.path.join(dirpath, f), "rb") as sf, open(other / f, "rb") as df:
                assert sf.read() == df.read(), f"File contents differ: {other / f}"


class CLIIntegrationTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.workspace = Path(self._tmp.name)
        self.config_file = self.workspace / "cfg" / "config.json"

    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None):
        cmd = [sys.executable, "-m", "szip.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        env["SZIP_CONFIG"] = str(self.config_file)
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def test_zip_unzip_roundtrip(self):
        src = self.workspace / "src"
        src.mkdir()
        _build_fixture_tree(src)
        archive = self.workspace / "archive.zip"
        proc = self.run_cli(["zip", str(src), str(archive), "--hash", "sha256"])
        self.assertIn("Created:", proc.stdout)
        self.assertIn(hashlib.sha256(archive.read_bytes()).hexdigest(), proc.stdout)

        listing = self.run_cli(["list", str(archive)])
        self.assertIn("src/docs/readme.txt", listing.stdout)
        self.assertIn("src/void/", listing.stdout)

        out = self.workspace / "out"
        proc = self.run_cli(["unzip", str(archive), "-o", str(out)])
        self.assertIn("Extracted", proc.stdout)
        _compare_trees(src, out / "src")

    def test_default_output_name(self):
        src = self.workspace / "bundle"
        src.mkdir()
        (src / "a.txt").write_text("alpha")
        self.run_cli(["-q", "zip", str(src)])
        self.assertTrue((self.workspace / "bundle.zip").is_file())

    def test_password_exit_codes(self):
        src = self.workspace / "s"
        src.mkdir()
        (src / "plan.txt").write_text("launch at dawn")
        archive = self.workspace / "s.zip"
        proc = self.run_cli(["zip", str(src), str(archive), "-p", "p@ss"])
        self.assertIn("Weak password", proc.stderr)

        out = self.workspace / "o"
        wrong = self.run_cli(["unzip", str(archive), "-o", str(out), "-p", "wrong"], expect=1)
        self.assertIn("Incorrect password", wrong.stderr)
        self.assertFalse(out.exists())

        missing = self.run_cli(["unzip", str(archive), "-o", str(out)], expect=2)
        self.assertIn("password protected", missing.stderr)
        self.assertFalse(out.exists())

        self.run_cli(["unzip", str(archive), "-o", str(out), "-p", "p@ss"])
        self.assertEqual((out / "s" / "plan.txt").read_text(), "launch at dawn")

    @unittest.skipUnless(os.name == "posix", "undecodable argv bytes need a POSIX host")
    def test_unencodable_password_exits_two(self):
        src = self.workspace / "s"
        src.mkdir()
        (src / "plan.txt").write_text("launch at dawn")
        archive = self.workspace / "s.zip"
        proc = self.run_cli(["zip", str(src), str(archive), "-p", "\udcff"], expect=2)
        self.assertIn("Error:", proc.stderr)
        self.assertFalse(archive.exists())

    def test_sunzip_entry_point(self):
        src = self.workspace / "s"
        src.mkdir()
        (src / "f.txt").write_text("x")
        archive = self.workspace / "s.zip"
        self.run_cli(["zip", str(src), str(archive)])
        out = self.workspace / "o"
        # sunzip takes the archive first, without the subcommand
        proc = subprocess.run(
            [sys.executable, "-c", "import sys; from szip.cli import unzip_main; unzip_main(sys.argv[1:])",
             "-q", str(archive), "-o", str(out)],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env={**os.environ, "PYTHONPATH": str(Path(__file__).resolve().parent), "SZIP_CONFIG": str(self.config_file)},
        )
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual((out / "s" / "f.txt").read_text(), "x")

    def test_exists_policy_flag(self):
        src = self.workspace / "d"
        src.mkdir()
        (src / "file.txt").write_text("alpha")
        archive = self.workspace / "d.zip"
        self.run_cli(["zip", str(src), str(archive)])
        out = self.workspace / "x"
        (out / "d").mkdir(parents=True)
        (out / "d" / "file.txt").write_text("beta")

        proc = self.run_cli(["unzip", str(archive), "-o", str(out), "--exists", "skip"])
        self.assertIn("skipped existing: 1", proc.stdout)
        self.assertEqual((out / "d" / "file.txt").read_text(), "beta")

        self.run_cli(["unzip", str(archive), "-o", str(out), "--exists", "rename"])
        self.assertEqual((out / "d" / "file (1).txt").read_text(), "alpha")

        self.run_cli(["unzip", str(archive), "-o", str(out), "--exists", "fail"], expect=2)

    def test_hash_and_verify(self):
        f = self.workspace / "data.bin"
        payload = os.urandom(10_000)
        f.write_bytes(payload)
        proc = self.run_cli(["hash", str(f), "-a", "sha256", "-a", "md5", "-j", "2"])
        self.assertIn(hashlib.sha256(payload).hexdigest(), proc.stdout)
        self.assertIn(hashlib.md5(payload).hexdigest(), proc.stdout)

        ok = self.run_cli(["hash", str(f), "--verify", hashlib.sha256(payload).hexdigest()])
        self.assertIn("OK", ok.stdout)
        bad = self.run_cli(["hash", str(f), "--verify", "00" * 32], expect=1)
        self.assertIn("MISMATCH", bad.stdout)

        self.run_cli(["hash", str(self.workspace / "missing.bin")], expect=2)

    def test_genpass(self):
        proc = self.run_cli(["genpass", "--length", "20", "--no-symbols"])
        pw = proc.stdout.strip()
        self.assertEqual(len(pw), 20)
        self.assertTrue(pw.isalnum())

    def test_config_commands(self):
        self.run_cli(["config", "set", "compression_level", "3"])
        shown = json.loads(self.run_cli(["config", "show"]).stdout)
        self.assertEqual(shown["compression_level"], 3)
        self.run_cli(["config", "set", "exists", "merge"], expect=2)
        self.run_cli(["config", "set", "no_such_key", "1"], expect=2)
        self.run_cli(["config", "reset"])
        shown = json.loads(self.run_cli(["config", "show"]).stdout)
        self.assertEqual(shown["compression_level"], 9)

    def test_config_exclude_applies_to_zip(self):
        self.run_cli(["config", "set", "exclude", "*.tmp,cache"])
        src = self.workspace / "p"
        (src / "cache").mkdir(parents=True)
        (src / "cache" / "c.bin").write_bytes(b"c")
        (src / "keep.txt").write_text("k")
        (src / "scratch.tmp").write_text("t")
        archive = self.workspace / "p.zip"
        self.run_cli(["zip", str(src), str(archive)])
        listing = self.run_cli(["list", str(archive)]).stdout
        self.assertIn("p/keep.txt", listing)
        self.assertNotIn("scratch.tmp", listing)
        self.assertNotIn("cache", listing)

    def test_errors_exit_two(self):
        self.run_cli(["unzip", str(self.workspace / "nope.zip")], expect=2)
        (self.workspace / "junk.zip").write_bytes(b"not a zip")
        proc = self.run_cli(["list", str(self.workspace / "junk.zip")], expect=2)
        self.assertIn("Error:", proc.stderr)


class FormatSizeTests(unittest.TestCase):
    def test_units(self):
        self.assertEqual(format_size(0), "0 B")
        self.assertEqual(format_size(1023), "1023 B")
        self.assertEqual(format_size(1024), "1.00 KB")
        self.assertEqual(format_size(5 * 1024 * 1024), "5.00 MB")


if __name__ == "__main__":
    unittest.main()
