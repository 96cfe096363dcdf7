"""
Watermark removal by reverse alpha blending.

The overlay is a white logo composited as
    watermarked = alpha * 255 + (1 - alpha) * original
so, knowing alpha per pixel, the original is
    original = (watermarked - alpha * 255) / (1 - alpha)

Placement is fixed by image size: both sides > 1024 px → 96x96 logo with
64 px margins, otherwise 48x48 with 32 px margins, anchored bottom-right.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Mapping, Union

import numpy as np

from .buffer import load_rgba, validate_buffer
from .config import DEFAULT_FLAT_WATERMARK_ALPHA
from .errors import EngineNotInitializedError, InvalidBufferError

log = logging.getLogger(__name__)

ALPHA_THRESHOLD = 0.002  # below this the pixel is treated as unblended
MAX_ALPHA = 0.99  # keeps 1 - alpha away from zero
LOGO_VALUE = 255.0
LOGO_SIZES = (48, 96)

OverlayLoader = Callable[[int], np.ndarray]


@dataclass(frozen=True)
class WatermarkConfig:
    logo_size: int
    margin_right: int
    margin_bottom: int


@dataclass(frozen=True)
class WatermarkPosition:
    x: int
    y: int
    width: int
    height: int


def detect_config(width: int, height: int) -> WatermarkConfig:
    if width > 1024 and height > 1024:
        return WatermarkConfig(logo_size=96, margin_right=64, margin_bottom=64)
    return WatermarkConfig(logo_size=48, margin_right=32, margin_bottom=32)


def calculate_position(width: int, height: int, config: WatermarkConfig) -> WatermarkPosition:
    return WatermarkPosition(
        x=width - config.margin_right - config.logo_size,
        y=height - config.margin_bottom - config.logo_size,
        width=config.logo_size,
        height=config.logo_size,
    )


def alpha_map_from_overlay(overlay: np.ndarray) -> np.ndarray:
    """
    Alpha map from a capture of the logo over black: max(R, G, B) / 255.
    The returned array is read-only.
    """
    validate_buffer(overlay)
    amap = overlay[..., :3].max(axis=-1).astype(np.float32) / 255.0
    amap.setflags(write=False)
    return amap


def _reverse_blend(region: np.ndarray, alpha) -> None:
    """In-place reverse blend of region[..., :3]; alpha is a scalar or an (H, W) array."""
    a = np.asarray(alpha, dtype=np.float32)
    if a.ndim == 0:
        a = np.full(region.shape[:2], float(a), dtype=np.float32)
    active = a >= ALPHA_THRESHOLD
    if not active.any():
        return

    a = np.minimum(a, MAX_ALPHA)[..., None]
    blended = region[..., :3].astype(np.float32)
    original = (blended - a * LOGO_VALUE) / (1.0 - a)
    # half-up rounding, then clamp
    restored = np.clip(np.floor(original + 0.5), 0, 255).astype(np.uint8)
    region[..., :3][active] = restored[active]


def reverse_alpha_blend(buffer: np.ndarray, alpha_map: np.ndarray, position: WatermarkPosition) -> None:
    """
    Undo the overlay inside `position`, in place. The footprint is clipped to
    the buffer, so images smaller than the logo placement are handled.
    """
    width, height = validate_buffer(buffer)
    if alpha_map.shape != (position.height, position.width):
        raise InvalidBufferError(
            f"Alpha map shape {alpha_map.shape} does not match footprint "
            f"{position.width}x{position.height}"
        )

    x0, y0 = max(0, position.x), max(0, position.y)
    x1 = min(width, position.x + position.width)
    y1 = min(height, position.y + position.height)
    if x1 <= x0 or y1 <= y0:
        return

    amap = alpha_map[y0 - position.y:y1 - position.y, x0 - position.x:x1 - position.x]
    _reverse_blend(buffer[y0:y1, x0:x1], amap)


def remove_flat_watermark(buffer: np.ndarray, alpha: float = DEFAULT_FLAT_WATERMARK_ALPHA) -> None:
    """Constant-alpha white overlay over the whole image; same formula, no alpha map."""
    validate_buffer(buffer)
    if not 0.0 <= alpha < 1.0:
        raise ValueError(f"alpha must be within [0, 1), got {alpha}")
    _reverse_blend(buffer, alpha)


# ---------------------------
# Engine with lazily built alpha maps
# ---------------------------
class WatermarkEngine:
    """
    Holds one alpha map per logo size.

    `loader(size)` must return the size x size RGBA capture of the logo over
    black. Maps are built once by init(); after that the engine is read-only
    and can be shared between threads.
    """

    def __init__(self, loader: OverlayLoader):
        self._loader = loader
        self._alpha_maps: Dict[int, np.ndarray] = {}
        self._lock = threading.Lock()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def init(self) -> "WatermarkEngine":
        if self._initialized:
            return self
        with self._lock:
            if self._initialized:
                return self
            maps: Dict[int, np.ndarray] = {}
            for size in LOGO_SIZES:
                overlay = self._loader(size)
                w, h = validate_buffer(overlay)
                if (w, h) != (size, size):
                    raise InvalidBufferError(f"Overlay for size {size} is {w}x{h}")
                maps[size] = alpha_map_from_overlay(overlay)
            self._alpha_maps = maps
            self._initialized = True
            log.info("Watermark alpha maps ready for sizes %s", sorted(maps))
        return self

    def alpha_map(self, size: int) -> np.ndarray:
        if not self._initialized:
            raise EngineNotInitializedError("Engine not initialized. Call init() first.")
        try:
            return self._alpha_maps[size]
        except KeyError:
            raise InvalidBufferError(f"No alpha map for logo size {size}") from None

    def remove_watermark(self, buffer: np.ndarray) -> None:
        """Reverse the overlay at its standard position, in place."""
        if not self._initialized:
            raise EngineNotInitializedError("Engine not initialized. Call init() first.")
        width, height = validate_buffer(buffer)
        config = detect_config(width, height)
        position = calculate_position(width, height, config)
        reverse_alpha_blend(buffer, self.alpha_map(config.logo_size), position)
        log.debug("Watermark reversed at %s on %dx%d", position, width, height)

    def watermark_info(self, width: int, height: int) -> dict:
        config = detect_config(width, height)
        return {
            "size": config.logo_size,
            "position": calculate_position(width, height, config),
            "config": config,
        }


def overlay_loader_from_files(paths: Mapping[int, Union[str, Path]]) -> OverlayLoader:
    """Loader reading the logo captures from image files, keyed by logo size."""

    def load(size: int) -> np.ndarray:
        if size not in paths:
            raise InvalidBufferError(f"No watermark image configured for size {size}")
        return load_rgba(paths[size])

    return load
