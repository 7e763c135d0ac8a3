from __future__ import annotations

import zipfile
from dataclasses import dataclass

from .constants import KIND_DIR, KIND_FILE


@dataclass(frozen=True)
class ArchiveEntry:
    path: str
    kind: str  # "file" or "dir"
    size: int = 0
    compressed_size: int = 0

    @property
    def is_dir(self) -> bool:
        return self.kind == KIND_DIR


def entry_from_zipinfo(info: zipfile.ZipInfo) -> ArchiveEntry:
    kind = KIND_DIR if info.is_dir() else KIND_FILE
    path = info.filename.rstrip("/") if kind == KIND_DIR else info.filename
    return ArchiveEntry(path=path, kind=kind, size=info.file_size, compressed_size=info.compress_size)
