from __future__ import annotations

import math
import re
import secrets
import string
from dataclasses import dataclass, field
from typing import List

from .errors import ValidationError


_SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
_SIMILAR = set("il1Lo0O")


@dataclass
class PasswordStrength:
    score: int
    entropy: float
    feedback: List[str] = field(default_factory=list)

    @property
    def is_strong(self) -> bool:
        return self.score >= 7

    @property
    def is_very_strong(self) -> bool:
        return self.score >= 9


def _charset_size(password: str) -> int:
    size = 0
    if re.search(r"[a-z]", password):
        size += 26
    if re.search(r"[A-Z]", password):
        size += 26
    if re.search(r"[0-9]", password):
        size += 10
    if re.search(r"[^A-Za-z0-9]", password):
        size += 32
    return size


def check_strength(password: str) -> PasswordStrength:
    """Score a password on length, character variety and repetition.

    The score ranges 0..11; 7 and above counts as strong. Only used to warn,
    never to refuse a password.
    """
    feedback: List[str] = []
    score = 0
    n = len(password)

    if n >= 8:
        score += 1
    else:
        feedback.append("use at least 8 characters")
    if n >= 12:
        score += 1
    elif n >= 8:
        feedback.append("use at least 12 characters for better security")
    if n >= 16:
        score += 1

    if re.search(r"[A-Z]", password):
        score += 1
    else:
        feedback.append("add uppercase letters (A-Z)")
    if re.search(r"[a-z]", password):
        score += 1
    else:
        feedback.append("add lowercase letters (a-z)")
    if re.search(r"[0-9]", password):
        score += 1
    else:
        feedback.append("add digits (0-9)")
    if re.search(r"[^A-Za-z0-9]", password):
        score += 1
    else:
        feedback.append("add special characters (!@#$%^&*)")

    if not re.search(r"(.)\1{2,}", password):
        score += 1
    else:
        feedback.append("avoid repeated characters")
    if not re.fullmatch(r"(.{2,}?)\1+", password, flags=re.DOTALL):
        score += 1
    else:
        feedback.append("avoid repeated sequences")

    charset = _charset_size(password)
    entropy = n * math.log2(charset) if charset and n else 0.0
    if entropy >= 50:
        score += 1
    if entropy >= 75:
        score += 1

    return PasswordStrength(score=score, entropy=round(entropy, 2), feedback=feedback)


def generate_password(
    length: int = 16,
    *,
    uppercase: bool = True,
    lowercase: bool = True,
    digits: bool = True,
    symbols: bool = True,
    exclude_similar: bool = False,
) -> str:
    """Generate a random password from the selected character classes."""
    if length < 1:
        raise ValidationError("Password length must be positive")
    charset = ""
    if uppercase:
        charset += string.ascii_uppercase
    if lowercase:
        charset += string.ascii_lowercase
    if digits:
        charset += string.digits
    if symbols:
        charset += _SYMBOLS
    if exclude_similar:
        charset = "".join(c for c in charset if c not in _SIMILAR)
    if not charset:
        raise ValidationError("No character types selected for password generation")
    return "".join(secrets.choice(charset) for _ in range(length))
