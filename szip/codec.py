from __future__ import annotations

import bz2
import lzma
import zipfile
import zlib
from dataclasses import dataclass
from typing import Dict, Optional

from .constants import MAX_COMPRESSION_LEVEL, MIN_COMPRESSION_LEVEL
from .errors import ValidationError


# Faults raised by the zipfile codecs while compressing or decompressing
CODEC_FAULTS = (zlib.error, lzma.LZMAError, zipfile.BadZipFile, EOFError, NotImplementedError)


@dataclass(frozen=True)
class Codec:
    name: str
    compress_type: int
    accepts_level: bool

    def level_for(self, level: int) -> Optional[int]:
        # zipfile ignores compresslevel for stored and lzma entries
        return level if self.accepts_level else None

    def shrinks(self, data: bytes, level: int) -> bool:
        """Whether compressing ``data`` would make it smaller than storing it."""
        if self.compress_type == zipfile.ZIP_STORED:
            return False
        if self.compress_type == zipfile.ZIP_DEFLATED:
            c = zlib.compressobj(level, zlib.DEFLATED, -15)
            return len(c.compress(data) + c.flush()) < len(data)
        if self.compress_type == zipfile.ZIP_BZIP2:
            return len(bz2.compress(data, level)) < len(data)
        return True


CODECS: Dict[str, Codec] = {
    "store": Codec("store", zipfile.ZIP_STORED, False),
    "deflate": Codec("deflate", zipfile.ZIP_DEFLATED, True),
    "bzip2": Codec("bzip2", zipfile.ZIP_BZIP2, True),
    "lzma": Codec("lzma", zipfile.ZIP_LZMA, False),
}


def get_codec(name: str) -> Codec:
    codec = CODECS.get((name or "").lower())
    if codec is None:
        raise ValidationError(f"Unsupported compression method: {name!r} (choose from {', '.join(CODECS)})")
    return codec


def check_level(level: int) -> int:
    if isinstance(level, bool) or not isinstance(level, int):
        raise ValidationError(f"Compression level must be an integer, got {level!r}")
    if not MIN_COMPRESSION_LEVEL <= level <= MAX_COMPRESSION_LEVEL:
        raise ValidationError(
            f"Compression level must be between {MIN_COMPRESSION_LEVEL} and {MAX_COMPRESSION_LEVEL}, got {level}"
        )
    return level


def clamp_level(level: int) -> int:
    """Clamp a user-supplied level into the supported range."""
    return max(MIN_COMPRESSION_LEVEL, min(MAX_COMPRESSION_LEVEL, int(level)))
