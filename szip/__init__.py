"""
szip: a small ZIP archiver with a few guarantees a naive archiver lacks.

Features:

- Path-traversal protection on extraction: every entry is resolved against the
  output root and skipped (with a recorded warning) when it would escape it.
- Selectable integrity digests (SHA-2, BLAKE2b, legacy MD5/SHA-1) over the
  finished container, plus verification against an expected value.
- An archive-level password gate: a salted Argon2id credential is stored in the
  ZIP comment and checked before any entry is read. Entry data itself is not
  encrypted; other unzip tools will still read it.

The programmatic API lives in szip.writer (create_archive) and szip.reader
(extract_archive, ArchiveReader); szip.cli wraps both for the command line.
"""

import logging

__version__ = "0.1"

__all__ = [
    "constants",
    "credential",
    "hashutil",
    "pathutil",
    "reader",
    "writer",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
