from __future__ import annotations

import logging
import os
import threading
import zipfile
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, List, Optional

from .codec import CODEC_FAULTS
from .constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_EXISTS_POLICY,
    EXISTS_POLICIES,
    PASSWORD_MARKER,
)
from .credential import verify as verify_credential
from .entryutil import ArchiveEntry, entry_from_zipinfo
from .errors import (
    ArchiveIOError,
    CodecError,
    ExtractionError,
    IncorrectPasswordError,
    LimitExceededError,
    NotFoundError,
    OperationCancelled,
    PasswordRequiredError,
    UnsafePathSkipped,
    ValidationError,
)
from .pathutil import entry_target, unsafe_reason


_log = logging.getLogger(__name__)

EntrySink = Callable[[ArchiveEntry, int], None]


@dataclass(frozen=True)
class ExtractionLimits:
    """Optional decompression-bomb guards; a None field disables that check."""

    max_entries: Optional[int] = None
    max_total_size: Optional[int] = None
    max_ratio: Optional[float] = None


@dataclass
class ExtractionResult:
    directory: str
    written: List[ArchiveEntry] = field(default_factory=list)
    skipped: List[UnsafePathSkipped] = field(default_factory=list)
    existing_skipped: int = 0
    renamed: int = 0


def _credential_from_comment(comment: bytes) -> Optional[str]:
    """Return the stored credential text, "" for a damaged marker, None when unprotected."""
    text = comment.decode("utf-8", errors="replace") if comment else ""
    if PASSWORD_MARKER not in text:
        return None
    parts = text.split(PASSWORD_MARKER)
    if len(parts) != 2:
        return ""
    return parts[1].strip()


def _next_nonconflicting_path(path: str) -> str:
    if not os.path.lexists(path):
        return path
    base_dir = os.path.dirname(path)
    name = os.path.basename(path)
    root, ext = os.path.splitext(name)
    i = 1
    while True:
        candidate = os.path.join(base_dir, f"{root} ({i}){ext}")
        if not os.path.lexists(candidate):
            return candidate
        i += 1


class ArchiveReader:
    """Reads a ZIP container and extracts it behind the password gate.

    Only the central directory is parsed on open; entry data is streamed one
    entry at a time during extraction.
    """

    def __init__(self, path: str, password: Optional[str] = None, *, logger: Optional[logging.Logger] = None):
        self.path = path
        self.password = password
        self.log = logger or _log
        self.zf: Optional[zipfile.ZipFile] = None
        self.credential: Optional[str] = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.zf is not None:
            return
        path = os.path.abspath(self.path)
        if not os.path.isfile(path):
            raise NotFoundError(f"ZIP file does not exist: {path}")
        try:
            self.zf = zipfile.ZipFile(path, "r")
        except zipfile.BadZipFile as exc:
            raise CodecError(f"Not a valid ZIP archive: {path}: {exc}") from exc
        except OSError as exc:
            raise ArchiveIOError(f"Cannot open archive {path}: {exc}") from exc
        self.path = path
        self.credential = _credential_from_comment(self.zf.comment)

    def close(self):
        if self.zf is not None:
            self.zf.close()
            self.zf = None

    @property
    def requires_password(self) -> bool:
        return self.credential is not None

    def verify_password(self, password: Optional[str]) -> bool:
        """True for unprotected archives or when ``password`` matches the stored credential."""
        if self.credential is None:
            return True
        if not password:
            return False
        return verify_credential(password, self.credential)

    def list(self) -> List[ArchiveEntry]:
        if self.zf is None:
            raise RuntimeError("Archive not open")
        return [entry_from_zipinfo(info) for info in self.zf.infolist()]

    def check_access(self):
        """Enforce the password gate; must pass before any entry is read."""
        if self.credential is None:
            return
        if not self.password:
            raise PasswordRequiredError("Archive is password protected; a password is required")
        if not verify_credential(self.password, self.credential):
            raise IncorrectPasswordError("Incorrect password")
        self.log.info("Password verified")

    def extract(
        self,
        output_dir: Optional[str] = None,
        *,
        exists: str = DEFAULT_EXISTS_POLICY,
        limits: Optional[ExtractionLimits] = None,
        on_entry: Optional[EntrySink] = None,
        cancel: Optional[threading.Event] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> ExtractionResult:
        """
        Extracts every entry under ``output_dir``.

        Unsafe entry paths are skipped and reported on the result, extraction
        carries on. Decode faults on any entry abort the whole extraction with
        ExtractionError; entries already written stay on disk.
        """
        if self.zf is None:
            raise RuntimeError("Archive not open")
        if exists not in EXISTS_POLICIES:
            raise ValidationError(f"Unknown exists policy: {exists!r} (choose from {', '.join(EXISTS_POLICIES)})")
        self.check_access()

        root = os.path.abspath(output_dir) if output_dir else os.path.dirname(self.path)
        try:
            os.makedirs(root, exist_ok=True)
        except OSError as exc:
            raise ArchiveIOError(f"Cannot create output directory {root}: {exc}") from exc
        result = ExtractionResult(directory=root)
        infos = self.zf.infolist()
        if limits is not None:
            self._check_declared_limits(infos, limits)

        total_written = 0
        for info in infos:
            if cancel is not None and cancel.is_set():
                raise OperationCancelled(f"Extraction cancelled after {len(result.written)} entries")
            dst = entry_target(root, info.filename)
            if dst is None or (dst == root and not info.is_dir()):
                skip = UnsafePathSkipped(info.filename, unsafe_reason(root, info.filename) if dst is None else "entry resolves to the extraction root")
                result.skipped.append(skip)
                self.log.warning("%s", skip)
                continue
            entry = entry_from_zipinfo(info)
            if info.is_dir():
                try:
                    os.makedirs(dst, exist_ok=True)
                except OSError as exc:
                    raise ArchiveIOError(f"Cannot create directory {dst}: {exc}") from exc
            else:
                budget = None
                if limits is not None and limits.max_total_size is not None:
                    budget = limits.max_total_size - total_written
                written = self._extract_file(info, dst, result, exists, budget, chunk_size)
                if written is None:
                    continue
                total_written += written
            result.written.append(entry)
            self.log.debug("extracted %s", entry.path)
            if on_entry is not None:
                on_entry(entry, len(result.written))
        return result

    # internals
    def _check_declared_limits(self, infos: List[zipfile.ZipInfo], limits: ExtractionLimits):
        if limits.max_entries is not None and len(infos) > limits.max_entries:
            raise LimitExceededError(f"Archive has {len(infos)} entries; limit is {limits.max_entries}")
        declared = sum(i.file_size for i in infos)
        if limits.max_total_size is not None and declared > limits.max_total_size:
            raise LimitExceededError(f"Archive declares {declared} bytes; limit is {limits.max_total_size}")
        if limits.max_ratio is not None:
            packed = sum(i.compress_size for i in infos)
            if packed and declared / packed > limits.max_ratio:
                raise LimitExceededError(
                    f"Compression ratio {declared / packed:.1f} exceeds limit {limits.max_ratio}"
                )

    def _extract_file(
        self,
        info: zipfile.ZipInfo,
        dst: str,
        result: ExtractionResult,
        exists: str,
        budget: Optional[int],
        chunk_size: int,
    ) -> Optional[int]:
        try:
            os.makedirs(os.path.dirname(dst), exist_ok=True)
        except OSError as exc:
            raise ArchiveIOError(f"Cannot create directory for {dst}: {exc}") from exc
        if os.path.lexists(dst):
            if os.path.isdir(dst) and not os.path.islink(dst):
                raise ArchiveIOError(f"Cannot overwrite directory with file: {dst}")
            if exists == "skip":
                self.log.info("skipping: %s (exists)", info.filename)
                result.existing_skipped += 1
                return None
            if exists == "rename":
                dst = _next_nonconflicting_path(dst)
                self.log.info("renamed %s to %s", info.filename, dst)
                result.renamed += 1
            elif exists == "fail":
                raise ArchiveIOError(f"Destination exists: {dst}")
            else:
                # Replace the link itself, never write through it
                try:
                    os.remove(dst)
                except OSError as exc:
                    raise ArchiveIOError(f"Cannot replace {dst}: {exc}") from exc
        try:
            src = self.zf.open(info, "r")
        except (RuntimeError, *CODEC_FAULTS) as exc:
            raise ExtractionError(f"Failed to read entry {info.filename}: {exc}") from exc
        with src:
            try:
                out = open(dst, "xb")
            except OSError as exc:
                raise ArchiveIOError(f"Cannot create {dst}: {exc}") from exc
            try:
                with out:
                    return self._copy(src, out, info, budget, chunk_size)
            except (ExtractionError, ArchiveIOError):
                # Drop the truncated file; fully written entries stay
                try:
                    os.remove(dst)
                except OSError as exc:
                    self.log.warning("Could not remove partial file %s: %s", dst, exc)
                raise

    def _copy(self, src: BinaryIO, out: BinaryIO, info: zipfile.ZipInfo, budget: Optional[int], chunk_size: int) -> int:
        n = 0
        while True:
            try:
                buf = src.read(chunk_size)
            except CODEC_FAULTS as exc:
                raise ExtractionError(f"Failed to decompress entry {info.filename}: {exc}") from exc
            except OSError as exc:
                raise ExtractionError(f"Failed to read entry {info.filename}: {exc}") from exc
            if not buf:
                return n
            n += len(buf)
            if budget is not None and n > budget:
                raise LimitExceededError(f"Entry {info.filename} exceeds the extraction size limit")
            try:
                out.write(buf)
            except OSError as exc:
                raise ArchiveIOError(f"Failed to write {out.name}: {exc}") from exc


def is_password_protected(archive_path: str) -> bool:
    """Whether the archive carries a stored credential and needs a password."""
    with ArchiveReader(archive_path) as r:
        return r.requires_password


def list_entries(archive_path: str) -> List[ArchiveEntry]:
    with ArchiveReader(archive_path) as r:
        return r.list()


def extract_archive(
    archive_path: str,
    output_dir: Optional[str] = None,
    password: Optional[str] = None,
    *,
    logger: Optional[logging.Logger] = None,
    exists: str = DEFAULT_EXISTS_POLICY,
    limits: Optional[ExtractionLimits] = None,
    on_entry: Optional[EntrySink] = None,
    cancel: Optional[threading.Event] = None,
) -> ExtractionResult:
    """Extract ``archive_path`` into ``output_dir`` (default: the archive's directory)."""
    with ArchiveReader(archive_path, password=password, logger=logger) as r:
        return r.extract(output_dir, exists=exists, limits=limits, on_entry=on_entry, cancel=cancel)
