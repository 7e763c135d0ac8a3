from __future__ import annotations

import concurrent.futures as _fut
import hashlib
import hmac
import os
import time
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Sequence

from .constants import DEFAULT_CHUNK_SIZE, DEFAULT_HASH_ALGORITHM
from .errors import DigestError, NotFoundError, ValidationError


ProgressSink = Callable[[int], None]

_FACTORIES: Dict[str, Callable[[], Any]] = {
    "md5": hashlib.md5,
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha384": hashlib.sha384,
    "sha512": hashlib.sha512,
    "blake2b256": lambda: hashlib.blake2b(digest_size=32),
    "blake2b512": lambda: hashlib.blake2b(digest_size=64),
}


@dataclass(frozen=True)
class DigestResult:
    algorithm: str
    hexdigest: str
    size: int
    duration: float
    name: Optional[str] = None


def supported_algorithms() -> List[str]:
    return list(_FACTORIES)


def new_hasher(algorithm: str):
    """Return a fresh incremental hasher for ``algorithm``.

    Raises:
        ValidationError: if the algorithm name is not supported.
    """
    factory = _FACTORIES.get((algorithm or "").lower())
    if factory is None:
        raise ValidationError(
            f"Unsupported hash algorithm: {algorithm!r} (choose from {', '.join(_FACTORIES)})"
        )
    return factory()


def hash_bytes(data: bytes, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    h = new_hasher(algorithm)
    h.update(data)
    return h.hexdigest()


def digest(
    stream: BinaryIO,
    algorithm: str = DEFAULT_HASH_ALGORITHM,
    progress: Optional[ProgressSink] = None,
    *,
    total: Optional[int] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    name: Optional[str] = None,
) -> DigestResult:
    """Digest a binary stream in fixed-size chunks.

    When ``total`` is known, ``progress`` receives an integer percentage after
    every chunk. Read failures raise DigestError; no partial result is ever
    returned.
    """
    h = new_hasher(algorithm)
    if chunk_size <= 0:
        raise ValidationError("chunk_size must be positive")
    t0 = time.perf_counter()
    processed = 0
    while True:
        try:
            buf = stream.read(chunk_size)
        except OSError as exc:
            raise DigestError(f"Failed to read stream for {algorithm} digest: {exc}") from exc
        if not buf:
            break
        h.update(buf)
        processed += len(buf)
        if progress is not None and total:
            progress(min(100, int(round(processed * 100 / total))))
    return DigestResult(
        algorithm=algorithm.lower(),
        hexdigest=h.hexdigest(),
        size=processed,
        duration=time.perf_counter() - t0,
        name=name,
    )


def digest_file(
    path: str,
    algorithm: str = DEFAULT_HASH_ALGORITHM,
    progress: Optional[ProgressSink] = None,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> DigestResult:
    new_hasher(algorithm)
    try:
        fh = open(path, "rb")
    except FileNotFoundError as exc:
        raise NotFoundError(f"File does not exist: {path}") from exc
    except OSError as exc:
        raise DigestError(f"Cannot open {path}: {exc}") from exc
    with fh:
        total = os.fstat(fh.fileno()).st_size
        return digest(
            fh,
            algorithm,
            progress,
            total=total,
            chunk_size=chunk_size,
            name=os.path.basename(path),
        )


def digest_many(path: str, algorithms: Sequence[str], *, jobs: int = 1) -> List[DigestResult]:
    """Compute several digests of one file, one pass per algorithm.

    With ``jobs > 1`` the passes run on a thread pool. Results follow the
    order of ``algorithms``.
    """
    for alg in algorithms:
        new_hasher(alg)
    if jobs <= 1 or len(algorithms) <= 1:
        return [digest_file(path, alg) for alg in algorithms]
    with _fut.ThreadPoolExecutor(max_workers=min(jobs, len(algorithms))) as ex:
        return list(ex.map(lambda alg: digest_file(path, alg), algorithms))


def verify_file_hash(path: str, expected: str, algorithm: str = DEFAULT_HASH_ALGORITHM) -> bool:
    result = digest_file(path, algorithm)
    return hmac.compare_digest(result.hexdigest.encode("ascii"), (expected or "").strip().lower().encode("utf-8"))
