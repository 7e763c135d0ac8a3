from __future__ import annotations

import fnmatch
import logging
import os
import re
import secrets
import stat
import threading
import zipfile
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from .codec import CODEC_FAULTS, Codec, check_level, get_codec
from .constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_COMPRESSION_LEVEL,
    DEFAULT_KDF,
    DEFAULT_METHOD,
    KIND_FILE,
    PASSWORD_MARKER,
)
from .credential import create_credential
from .entryutil import ArchiveEntry, entry_from_zipinfo
from .errors import (
    ArchiveIOError,
    CodecError,
    NotFoundError,
    OperationCancelled,
    ValidationError,
)
from .hashutil import DigestResult, ProgressSink, digest_file, new_hasher
from .passwords import check_strength
from .pathutil import norm_path


_log = logging.getLogger(__name__)

EntrySink = Callable[[ArchiveEntry, int], None]


@dataclass
class WriteOptions:
    password: Optional[str] = None
    compression_level: int = DEFAULT_COMPRESSION_LEVEL
    method: str = DEFAULT_METHOD
    hash_algorithm: Optional[str] = None
    exclude: Sequence[str] = ()
    include_hidden: bool = True
    kdf_algorithm: str = DEFAULT_KDF
    kdf_iterations: Optional[int] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE


@dataclass(frozen=True)
class ArchiveMetadata:
    output_path: str
    size: int
    source_size: int
    compression_ratio: float
    entry_count: int
    password_protected: bool = False
    digest: Optional[DigestResult] = None
    entries: Tuple[ArchiveEntry, ...] = field(default_factory=tuple)

    @property
    def directory(self) -> str:
        return os.path.dirname(self.output_path)


def compression_ratio(source_size: int, packed_size: int) -> float:
    """Percentage saved by compression; 0 for an empty source, negative when it grew."""
    if source_size <= 0:
        return 0.0
    return round((source_size - packed_size) / source_size * 100.0, 2)


class ArchiveWriter:
    """Packs a file or directory tree into a ZIP container.

    The container is built under a temporary name next to the output path and
    moved into place only after it has been closed successfully. Failed or
    cancelled runs remove the temporary file.
    """

    def __init__(
        self,
        source_path: str,
        output_path: str,
        options: Optional[WriteOptions] = None,
        *,
        logger: Optional[logging.Logger] = None,
        on_entry: Optional[EntrySink] = None,
        on_hash_progress: Optional[ProgressSink] = None,
        cancel: Optional[threading.Event] = None,
    ):
        self.source_path = source_path
        self.output_path = output_path
        self.options = options or WriteOptions()
        self.log = logger or _log
        self.on_entry = on_entry
        self.on_hash_progress = on_hash_progress
        self.cancel = cancel
        self.entries: List[ArchiveEntry] = []

    def create(self) -> ArchiveMetadata:
        src = os.path.abspath(self.source_path)
        out = os.path.abspath(self.output_path)
        if not os.path.lexists(src):
            raise NotFoundError(f"Source path does not exist: {src}")
        opts = self._validate_options(src, out)
        codec = get_codec(opts.method)

        credential = None
        if opts.password:
            strength = check_strength(opts.password)
            if not strength.is_strong:
                self.log.warning("Weak password: %s", ", ".join(strength.feedback[:2]))
            credential = create_credential(opts.password, opts.kdf_iterations, algorithm=opts.kdf_algorithm)
            self.log.info("Adding password protection (%s)", opts.kdf_algorithm)

        tmp = f"{out}.{secrets.token_hex(4)}.partial"
        committed = False
        self.entries = []
        try:
            try:
                zf = zipfile.ZipFile(
                    tmp,
                    "x",
                    compression=codec.compress_type,
                    compresslevel=codec.level_for(opts.compression_level),
                    allowZip64=True,
                )
            except OSError as exc:
                raise ArchiveIOError(f"Cannot create archive {out}: {exc}") from exc
            with zf:
                if credential is not None:
                    # Set before any entry; zipfile writes it in the end-of-central-directory record
                    zf.comment = (PASSWORD_MARKER + credential).encode("ascii")
                for arcname, fs_path in self._iter_sources(src, skip=(out, tmp)):
                    if self.cancel is not None and self.cancel.is_set():
                        raise OperationCancelled(f"Archive creation cancelled after {len(self.entries)} entries")
                    entry = self._add(zf, arcname, fs_path, codec, opts.compression_level)
                    self.entries.append(entry)
                    self.log.debug("added %s (%d -> %d bytes)", entry.path, entry.size, entry.compressed_size)
                    if self.on_entry is not None:
                        self.on_entry(entry, len(self.entries))
            try:
                os.replace(tmp, out)
            except OSError as exc:
                raise ArchiveIOError(f"Cannot move archive into place at {out}: {exc}") from exc
            committed = True
        except CODEC_FAULTS as exc:
            raise CodecError(f"Compression failed: {exc}") from exc
        except OSError as exc:
            raise ArchiveIOError(f"I/O error while writing {out}: {exc}") from exc
        finally:
            if not committed:
                try:
                    os.remove(tmp)
                except FileNotFoundError:
                    pass
                except OSError as exc:
                    self.log.warning("Could not remove partial archive %s: %s", tmp, exc)

        size = os.path.getsize(out)
        files = [e for e in self.entries if e.kind == KIND_FILE]
        source_size = sum(e.size for e in files)
        packed_size = sum(e.compressed_size for e in files)
        result_digest = None
        if opts.hash_algorithm:
            self.log.info("Generating %s hash...", opts.hash_algorithm.upper())
            result_digest = digest_file(out, opts.hash_algorithm, self.on_hash_progress, chunk_size=opts.chunk_size)
        return ArchiveMetadata(
            output_path=out,
            size=size,
            source_size=source_size,
            compression_ratio=compression_ratio(source_size, packed_size),
            entry_count=len(self.entries),
            password_protected=credential is not None,
            digest=result_digest,
            entries=tuple(self.entries),
        )

    # internals
    def _validate_options(self, src: str, out: str) -> WriteOptions:
        opts = self.options
        check_level(opts.compression_level)
        get_codec(opts.method)
        if opts.hash_algorithm:
            new_hasher(opts.hash_algorithm)
        if opts.password is not None and not isinstance(opts.password, str):
            raise ValidationError("Password must be a string")
        if opts.chunk_size <= 0:
            raise ValidationError("chunk_size must be positive")
        if os.path.normcase(src) == os.path.normcase(out):
            raise ValidationError("Output path must differ from the source path")
        if os.path.isdir(out):
            raise ValidationError(f"Output path is a directory: {out}")
        out_dir = os.path.dirname(out)
        if not os.path.isdir(out_dir):
            raise ArchiveIOError(f"Output directory does not exist: {out_dir}")
        return opts

    def _add(self, zf: zipfile.ZipFile, arcname: str, fs_path: str, codec: Codec, level: int) -> ArchiveEntry:
        try:
            zf.write(fs_path, arcname, compress_type=self._entry_method(fs_path, codec, level))
        except FileNotFoundError as exc:
            raise ArchiveIOError(f"Source entry vanished during archiving: {fs_path}") from exc
        except RuntimeError as exc:
            raise CodecError(f"Cannot compress {arcname}: {exc}") from exc
        return entry_from_zipinfo(zf.infolist()[-1])

    def _entry_method(self, fs_path: str, codec: Codec, level: int) -> int:
        # Small files that would grow under compression are stored as-is
        if os.path.isdir(fs_path) or os.path.getsize(fs_path) > self.options.chunk_size:
            return codec.compress_type
        with open(fs_path, "rb") as fh:
            data = fh.read()
        if codec.shrinks(data, level):
            return codec.compress_type
        return zipfile.ZIP_STORED

    def _arcname(self, base: str, rel: Optional[str] = None) -> Optional[str]:
        """Archive name for a host path, split only on the host separators.

        A backslash inside a POSIX filename has no portable ZIP spelling, so
        such entries are skipped with a warning.
        """
        parts = [base]
        if rel is not None:
            parts += re.split("[" + re.escape(os.sep + (os.altsep or "")) + "]", rel)
        if os.sep != "\\" and any("\\" in p for p in parts):
            self.log.warning("Skipping entry with a backslash in its name: %s", rel or base)
            return None
        try:
            return norm_path("/".join(parts))
        except ValueError:
            self.log.warning("Skipping entry with unrepresentable name: %s", rel or base)
            return None

    def _excluded(self, rel: str, name: str) -> bool:
        if not self.options.include_hidden and name.startswith("."):
            return True
        for pat in self.options.exclude:
            if fnmatch.fnmatch(rel, pat) or fnmatch.fnmatch(name, pat):
                return True
        return False

    def _iter_sources(self, src: str, skip: Sequence[str] = ()) -> Iterator[Tuple[str, str]]:
        """Yield ``(arcname, fs_path)`` pairs in deterministic order.

        A single file is stored under its basename. A directory contributes
        every descendant (directories included, so empty ones survive a round
        trip) under its own name; the top directory itself is not an entry.
        """
        skipped = {os.path.normcase(p) for p in skip}
        if not os.path.isdir(src):
            st = os.stat(src)
            if not stat.S_ISREG(st.st_mode):
                raise ValidationError(f"Source is not a regular file or directory: {src}")
            arc = self._arcname(os.path.basename(src))
            if arc is None:
                raise ValidationError(f"Source file name cannot be stored in a ZIP archive: {src}")
            yield arc, src
            return
        base = os.path.basename(src.rstrip(os.sep)) or "archive"
        for root, dirnames, filenames in os.walk(src):
            dirnames.sort()
            filenames.sort()
            rel_root = os.path.relpath(root, src)
            keep = []
            for d in dirnames:
                full = os.path.join(root, d)
                rel = d if rel_root == "." else os.path.join(rel_root, d)
                if os.path.islink(full):
                    self.log.warning("Skipping symlinked directory: %s", rel)
                    continue
                if self._excluded(rel.replace(os.sep, "/"), d):
                    continue
                arc = self._arcname(base, rel)
                if arc is None:
                    continue
                keep.append(d)
                yield arc + "/", full
            dirnames[:] = keep
            for f in filenames:
                full = os.path.join(root, f)
                rel = f if rel_root == "." else os.path.join(rel_root, f)
                if os.path.normcase(full) in skipped:
                    continue
                if self._excluded(rel.replace(os.sep, "/"), f):
                    continue
                try:
                    st = os.lstat(full)
                except OSError as exc:
                    self.log.warning("Skipping unreadable entry %s: %s", rel, exc)
                    continue
                if stat.S_ISLNK(st.st_mode):
                    self.log.warning("Skipping symlink: %s", rel)
                    continue
                if not stat.S_ISREG(st.st_mode):
                    self.log.warning("Skipping special file: %s", rel)
                    continue
                arc = self._arcname(base, rel)
                if arc is not None:
                    yield arc, full


def create_archive(
    source_path: str,
    output_path: str,
    options: Optional[WriteOptions] = None,
    *,
    logger: Optional[logging.Logger] = None,
    on_entry: Optional[EntrySink] = None,
    on_hash_progress: Optional[ProgressSink] = None,
    cancel: Optional[threading.Event] = None,
) -> ArchiveMetadata:
    """Create ``output_path`` from ``source_path``; see ArchiveWriter."""
    writer = ArchiveWriter(
        source_path,
        output_path,
        options,
        logger=logger,
        on_entry=on_entry,
        on_hash_progress=on_hash_progress,
        cancel=cancel,
    )
    return writer.create()
