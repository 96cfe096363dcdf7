"""
Defaults and optional JSON config for spritecut.

Precedence used by the CLI: command-line flag > config file > built-in default.
"""

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional

from .errors import ConfigError

log = logging.getLogger(__name__)


# ---------------------------
# Built-in defaults
# ---------------------------
DEFAULT_COLOR_DISTANCE = 30
DEFAULT_MAGENTA_TOLERANCE = 30
DEFAULT_GIF_DELAY_MS = 83  # 12 fps
DEFAULT_QUALITY = 0.92
DEFAULT_FLAT_WATERMARK_ALPHA = 0.35
DEFAULT_CONFIG_FILE = Path("spritecut.json")


@dataclass(frozen=True)
class Config:
    color_distance: int = DEFAULT_COLOR_DISTANCE
    magenta_tolerance: int = DEFAULT_MAGENTA_TOLERANCE
    expansion: Optional[int] = None  # None: per-mode default (0 white, 1 magenta)
    gif_delay_ms: int = DEFAULT_GIF_DELAY_MS
    quality: float = DEFAULT_QUALITY
    flat_watermark_alpha: float = DEFAULT_FLAT_WATERMARK_ALPHA
    watermark_48: Optional[str] = None
    watermark_96: Optional[str] = None

    def validate(self) -> "Config":
        for name in ("color_distance", "magenta_tolerance"):
            v = getattr(self, name)
            if not 0 <= v <= 255:
                raise ConfigError(f"{name} must be within 0..255, got {v}")
        if self.expansion is not None and self.expansion < 0:
            raise ConfigError(f"expansion must be >= 0, got {self.expansion}")
        if self.gif_delay_ms <= 0:
            raise ConfigError(f"gif_delay_ms must be > 0, got {self.gif_delay_ms}")
        if not 0.0 < self.quality <= 1.0:
            raise ConfigError(f"quality must be within (0, 1], got {self.quality}")
        if not 0.0 <= self.flat_watermark_alpha < 1.0:
            raise ConfigError(
                f"flat_watermark_alpha must be within [0, 1), got {self.flat_watermark_alpha}"
            )
        return self


# JSON type accepted per key; the bool flag marks keys that may be null.
_KEY_TYPES = {
    "color_distance": (int, False),
    "magenta_tolerance": (int, False),
    "expansion": (int, True),
    "gif_delay_ms": (int, False),
    "quality": (float, False),
    "flat_watermark_alpha": (float, False),
    "watermark_48": (str, True),
    "watermark_96": (str, True),
}


def _check_types(raw: dict, path: Path) -> None:
    for key, value in raw.items():
        kind, nullable = _KEY_TYPES[key]
        if value is None and nullable:
            continue
        if isinstance(value, bool):
            ok = False
        elif kind is float:
            ok = isinstance(value, (int, float))
        else:
            ok = isinstance(value, kind)
        if not ok:
            raise ConfigError(
                f"{key} in {path} must be {kind.__name__}, got {type(value).__name__} {value!r}"
            )


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load a JSON config, falling back to defaults if the file does not exist."""
    path = Path(config_path) if config_path else DEFAULT_CONFIG_FILE
    if not path.exists():
        if config_path:
            raise ConfigError(f"Config file not found: {path}")
        log.debug("No config file at %s, using built-in defaults", path)
        return Config()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be an object: {path}")

    known = {f.name for f in fields(Config)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(unknown)}")
    _check_types(raw, path)

    log.info("Loaded config from %s", path)
    return replace(Config(), **raw).validate()
