from __future__ import annotations

import json
import os
import sys
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

from .codec import check_level
from .constants import DEFAULT_COMPRESSION_LEVEL, DEFAULT_EXISTS_POLICY, EXISTS_POLICIES
from .errors import ValidationError
from .hashutil import new_hasher


CONFIG_ENV = "SZIP_CONFIG"
CONFIG_FILENAME = "config.json"


@dataclass
class SzipConfig:
    compression_level: int = DEFAULT_COMPRESSION_LEVEL
    output_directory: Optional[str] = None
    hash_algorithm: Optional[str] = None
    show_progress: bool = True
    include_hidden: bool = True
    exclude: List[str] = field(default_factory=list)
    exists: str = DEFAULT_EXISTS_POLICY

    def validate(self) -> "SzipConfig":
        check_level(self.compression_level)
        if self.hash_algorithm:
            new_hasher(self.hash_algorithm)
        if self.exists not in EXISTS_POLICIES:
            raise ValidationError(f"Unknown exists policy in config: {self.exists!r}")
        if not isinstance(self.exclude, list) or not all(isinstance(p, str) for p in self.exclude):
            raise ValidationError("Config 'exclude' must be a list of strings")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def config_dir() -> str:
    home = os.path.expanduser("~")
    if sys.platform == "win32":
        return os.path.join(os.environ.get("APPDATA") or home, "szip")
    if sys.platform == "darwin":
        return os.path.join(home, "Library", "Application Support", "szip")
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(home, ".config")
    return os.path.join(base, "szip")


def config_path() -> str:
    return os.environ.get(CONFIG_ENV) or os.path.join(config_dir(), CONFIG_FILENAME)


def _coerce(name: str, raw: Any, current: Any) -> Any:
    if isinstance(current, bool):
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str) and raw.lower() in ("1", "true", "yes", "on", "0", "false", "no", "off"):
            return raw.lower() in ("1", "true", "yes", "on")
        raise ValidationError(f"Config '{name}' must be a boolean")
    if name == "compression_level":
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ValidationError("Config 'compression_level' must be an integer")
    if name == "exclude" and isinstance(raw, str):
        return [p for p in (s.strip() for s in raw.split(",")) if p]
    if raw in ("", None) and name in ("output_directory", "hash_algorithm"):
        return None
    return raw


def from_mapping(data: Dict[str, Any]) -> SzipConfig:
    """Merge ``data`` over the defaults; unknown keys are ignored."""
    cfg = SzipConfig()
    known = {f.name for f in fields(SzipConfig)}
    for key, raw in data.items():
        if key not in known:
            continue
        setattr(cfg, key, _coerce(key, raw, getattr(cfg, key)))
    return cfg.validate()


def load_config(path: Optional[str] = None) -> SzipConfig:
    """Load the user config, falling back to defaults when no file exists.

    Raises:
        ValidationError: if the file exists but cannot be read or parsed.
    """
    path = path or config_path()
    if not os.path.exists(path):
        return SzipConfig()
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        raise ValidationError(f"Cannot read config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError(f"Config {path} must contain a JSON object")
    return from_mapping(data)


def save_config(cfg: SzipConfig, path: Optional[str] = None) -> str:
    path = path or config_path()
    cfg.validate()
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as fh:
        json.dump(cfg.to_dict(), fh, indent=2, sort_keys=True)
        fh.write("\n")
    os.replace(tmp, path)
    return path


def set_value(cfg: SzipConfig, key: str, value: str) -> SzipConfig:
    known = {f.name for f in fields(SzipConfig)}
    if key not in known:
        raise ValidationError(f"Unknown config key: {key!r} (choose from {', '.join(sorted(known))})")
    data = cfg.to_dict()
    data[key] = value
    return from_mapping(data)
