from __future__ import annotations

import hashlib
import hmac
import os
import re
from dataclasses import dataclass
from typing import Dict, Optional

from argon2.exceptions import HashingError
from argon2.low_level import Type as ArgonType, hash_secret_raw

from .constants import (
    ARGON_DEFAULT_ITERATIONS,
    ARGON_DIGEST_SIZE,
    ARGON_MAX_ITERATIONS,
    ARGON_MEMORY_COST_KIB,
    ARGON_PARALLELISM,
    ARGON_SALT_SIZE,
    CREDENTIAL_SEPARATOR,
    DEFAULT_KDF,
    KDF_ARGON2ID,
    KDF_PBKDF2_SHA512,
    PBKDF2_DEFAULT_ITERATIONS,
    PBKDF2_DIGEST_SIZE,
    PBKDF2_MAX_ITERATIONS,
    PBKDF2_SALT_SIZE,
)
from .errors import ValidationError


@dataclass(frozen=True)
class Scheme:
    tag: str
    default_iterations: int
    max_iterations: int
    salt_size: int
    digest_size: int


SCHEMES: Dict[str, Scheme] = {
    KDF_ARGON2ID: Scheme(
        tag=KDF_ARGON2ID,
        default_iterations=ARGON_DEFAULT_ITERATIONS,
        max_iterations=ARGON_MAX_ITERATIONS,
        salt_size=ARGON_SALT_SIZE,
        digest_size=ARGON_DIGEST_SIZE,
    ),
    KDF_PBKDF2_SHA512: Scheme(
        tag=KDF_PBKDF2_SHA512,
        default_iterations=PBKDF2_DEFAULT_ITERATIONS,
        max_iterations=PBKDF2_MAX_ITERATIONS,
        salt_size=PBKDF2_SALT_SIZE,
        digest_size=PBKDF2_DIGEST_SIZE,
    ),
}

_ITERATIONS_RE = re.compile(r"[1-9][0-9]{0,9}")
_HEX_RE = re.compile(r"[0-9a-f]+")


@dataclass(frozen=True)
class Credential:
    algorithm: str
    iterations: int
    salt: bytes
    digest: bytes

    def encode(self) -> str:
        return encode(self.iterations, self.salt, self.digest, algorithm=self.algorithm)


def _scheme(algorithm: str) -> Scheme:
    scheme = SCHEMES.get(algorithm)
    if scheme is None:
        raise ValidationError(f"Unsupported credential algorithm: {algorithm!r}")
    return scheme


def derive(password: str, iterations: int, salt: bytes, algorithm: str = DEFAULT_KDF) -> bytes:
    """Stretch ``password`` into a fixed-length digest.

    Deterministic for identical inputs. The work factor is an explicit
    argument so it can be recorded next to the result and raised for new
    archives without breaking older ones.
    """
    scheme = _scheme(algorithm)
    if not isinstance(iterations, int) or isinstance(iterations, bool) or iterations < 1:
        raise ValidationError("Iteration count must be a positive integer")
    if iterations > scheme.max_iterations:
        raise ValidationError(f"Iteration count exceeds {scheme.max_iterations} for {algorithm}")
    try:
        secret = password.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise ValidationError("Password must be valid Unicode text") from exc
    if scheme.tag == KDF_ARGON2ID:
        try:
            return hash_secret_raw(
                secret,
                salt,
                time_cost=iterations,
                memory_cost=ARGON_MEMORY_COST_KIB,
                parallelism=ARGON_PARALLELISM,
                hash_len=scheme.digest_size,
                type=ArgonType.ID,
            )
        except HashingError as exc:
            raise ValidationError(f"Argon2 derivation failed: {exc}") from exc
    return hashlib.pbkdf2_hmac("sha512", secret, salt, iterations, dklen=scheme.digest_size)


def encode(iterations: int, salt: bytes, digest: bytes, algorithm: str = DEFAULT_KDF) -> str:
    """Serialize a credential as ``tag$iterations$salt-hex$digest-hex``."""
    _scheme(algorithm)
    return CREDENTIAL_SEPARATOR.join([algorithm, str(int(iterations)), salt.hex(), digest.hex()])


def decode(credential: str) -> Credential:
    """Strictly parse an encoded credential.

    Only the canonical form is accepted (lowercase hex of the exact expected
    lengths, decimal iterations without leading zeros) so any single-character
    change either fails to parse or yields a different credential.

    Raises:
        ValueError: when the string is not a well-formed credential.
    """
    if not isinstance(credential, str):
        raise ValueError("Credential must be a string")
    parts = credential.split(CREDENTIAL_SEPARATOR)
    if len(parts) != 4:
        raise ValueError("Credential must have four fields")
    tag, iter_s, salt_hex, digest_hex = parts
    scheme = SCHEMES.get(tag)
    if scheme is None:
        raise ValueError("Unknown credential algorithm")
    if not _ITERATIONS_RE.fullmatch(iter_s):
        raise ValueError("Malformed iteration count")
    iterations = int(iter_s)
    if iterations > scheme.max_iterations:
        raise ValueError("Iteration count out of range")
    if not _HEX_RE.fullmatch(salt_hex) or len(salt_hex) != scheme.salt_size * 2:
        raise ValueError("Malformed salt")
    if not _HEX_RE.fullmatch(digest_hex) or len(digest_hex) != scheme.digest_size * 2:
        raise ValueError("Malformed digest")
    return Credential(
        algorithm=tag,
        iterations=iterations,
        salt=bytes.fromhex(salt_hex),
        digest=bytes.fromhex(digest_hex),
    )


def _kdf_salt(cred: Credential) -> bytes:
    # pbkdf2_sha512 credentials salt the KDF with the hex text, not the raw bytes
    if cred.algorithm == KDF_PBKDF2_SHA512:
        return cred.salt.hex().encode("ascii")
    return cred.salt


def create_credential(password: str, iterations: Optional[int] = None, algorithm: str = DEFAULT_KDF) -> str:
    """Derive and encode a credential for ``password`` with a fresh random salt."""
    if not isinstance(password, str) or not password:
        raise ValidationError("Password must be a non-empty string")
    scheme = _scheme(algorithm)
    n = scheme.default_iterations if iterations is None else iterations
    cred = Credential(algorithm=algorithm, iterations=n, salt=os.urandom(scheme.salt_size), digest=b"")
    digest = derive(password, n, _kdf_salt(cred), algorithm=algorithm)
    return encode(n, cred.salt, digest, algorithm=algorithm)


def verify(password: str, credential: str) -> bool:
    """Check ``password`` against an encoded credential.

    Never raises. Malformed strings, unknown tags, out-of-range work factors
    and wrong passwords all give the same False.
    """
    if not isinstance(password, str):
        return False
    try:
        cred = decode(credential)
        actual = derive(password, cred.iterations, _kdf_salt(cred), algorithm=cred.algorithm)
    except ValueError:
        return False
    return hmac.compare_digest(actual, cred.digest)
