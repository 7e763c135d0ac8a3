from __future__ import annotations

import os
import re
from typing import Optional

from .constants import MAX_FILENAME_LENGTH


_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WINDOWS_INVALID_CHARS = set('<>:"|?*')
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")
_WINDOWS_RESERVED = {"CON", "PRN", "AUX", "NUL"} | {f"COM{i}" for i in range(1, 10)} | {f"LPT{i}" for i in range(1, 10)}


def norm_path(p: str) -> str:
    """Normalize archive paths to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    p = p.replace("\\", "/").strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise ValueError("Path may not contain '..'")
    return "/".join(parts)


def has_control_chars(name: str) -> bool:
    return bool(_CONTROL_CHARS.search(name))


def is_safe_filename(name: str, *, windows: Optional[bool] = None) -> bool:
    """Check a single path component against per-OS filename rules.

    Control characters and over-long names are rejected everywhere. The
    Windows rules (reserved device names, ``<>:"|?*``, trailing dot or space)
    apply when the host is Windows, or when ``windows=True``.
    """
    if not isinstance(name, str) or not name:
        return False
    if len(name) > MAX_FILENAME_LENGTH:
        return False
    if has_control_chars(name):
        return False
    if windows is None:
        windows = os.name == "nt"
    if windows:
        if any(c in _WINDOWS_INVALID_CHARS for c in name):
            return False
        if name[-1] in (".", " ") and name not in (".", ".."):
            return False
        stem = name.split(".", 1)[0].upper()
        if stem in _WINDOWS_RESERVED:
            return False
    return True


def is_path_safe(candidate: str, allowed_root: str) -> bool:
    """Return True when ``candidate`` resolves inside ``allowed_root``.

    Both paths are made absolute and normalized lexically (symlinks are not
    followed), so ``..`` segments and absolute overrides are resolved before
    the prefix comparison. Malformed input is treated as unsafe.
    """
    if not isinstance(candidate, str) or not isinstance(allowed_root, str):
        return False
    if not candidate or not allowed_root:
        return False
    if has_control_chars(candidate) or has_control_chars(allowed_root):
        return False
    try:
        target = os.path.normcase(os.path.abspath(candidate))
        root = os.path.normcase(os.path.abspath(allowed_root))
    except (TypeError, ValueError):
        return False
    if target == root:
        return True
    # A root of "/" already ends with the separator
    prefix = root if root.endswith(os.sep) else root + os.sep
    return target.startswith(prefix)


def is_absolute_name(name: str) -> bool:
    """True for POSIX-absolute, UNC or drive-qualified entry names."""
    unified = name.replace("\\", "/")
    return unified.startswith("/") or bool(_DRIVE_PREFIX.match(unified))


def entry_target(root: str, name: str) -> Optional[str]:
    """Resolve an archive entry name to a destination path under ``root``.

    Returns None when the entry must not be written: control characters in
    the name, an absolute name (even one that points inside ``root``), a
    component that is unsafe on this host, or a destination that escapes
    the root.
    """
    if not isinstance(name, str) or not name:
        return None
    if has_control_chars(name):
        return None
    unified = name.replace("\\", "/")
    if is_absolute_name(unified):
        return None
    for part in unified.split("/"):
        if part in ("", ".", ".."):
            continue
        if not is_safe_filename(part):
            return None
    dst = os.path.abspath(os.path.join(root, unified))
    if not is_path_safe(dst, root):
        return None
    return dst


def unsafe_reason(root: str, name: str) -> str:
    """Short human-readable reason for a rejected entry name."""
    if not isinstance(name, str) or not name:
        return "empty name"
    if has_control_chars(name):
        return "control characters in name"
    unified = name.replace("\\", "/")
    if is_absolute_name(unified):
        return "absolute path"
    for part in unified.split("/"):
        if part in ("", ".", ".."):
            continue
        if not is_safe_filename(part):
            return f"unsafe filename component {part!r}"
    return "path escapes extraction root"
