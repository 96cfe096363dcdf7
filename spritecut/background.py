"""
Background removal by edge-connected flood fill.

The color test (predicate) and the connectivity mode (flood fill vs. global
replacement) are independent: any predicate works with either mode.

Pipeline for one call:
1) seed from matching border pixels, plus optional selection / eraser strokes
2) 4-connected flood fill over matching pixels (or take every matching pixel
   when flood fill is off)
3) expansion: grow the mask ring by ring, ignoring color (halo removal)
4) despill: clear background-tinted pixels touching the mask
5) neutralize: zero RGB under alpha 0
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageFilter

from .buffer import clone_buffer, trim_margins, validate_buffer
from .config import DEFAULT_COLOR_DISTANCE

log = logging.getLogger(__name__)


# ---------------------------
# Predicates
# ---------------------------
class WhitePredicate:
    """Background if R, G and B are all >= 255 - color_distance."""

    def __init__(self, color_distance: int = DEFAULT_COLOR_DISTANCE):
        self.color_distance = int(color_distance)

    def match(self, rgb: np.ndarray) -> np.ndarray:
        threshold = 255 - self.color_distance
        return np.all(rgb >= threshold, axis=-1)

    def __repr__(self) -> str:
        return f"WhitePredicate(color_distance={self.color_distance})"


def rgb_to_hsl(rgb: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Vectorised RGB (uint8) → HSL. Hue in degrees [0, 360), saturation and
    lightness in [0, 1]. Gray pixels get hue 0 and saturation 0.
    """
    a = rgb.astype(np.float32) / 255.0
    r, g, b = a[..., 0], a[..., 1], a[..., 2]
    vmax = np.maximum(np.maximum(r, g), b)
    vmin = np.minimum(np.minimum(r, g), b)
    d = vmax - vmin
    light = (vmax + vmin) / 2.0

    chromatic = d > 1e-6
    safe_d = np.where(chromatic, d, 1.0)
    denom = 1.0 - np.abs(2.0 * light - 1.0)
    sat = np.where(chromatic & (denom > 1e-6), d / np.where(denom > 1e-6, denom, 1.0), 0.0)

    hue = np.select(
        [vmax == r, vmax == g],
        [np.mod((g - b) / safe_d, 6.0), (b - r) / safe_d + 2.0],
        default=(r - g) / safe_d + 4.0,
    ) * 60.0
    hue = np.where(chromatic, np.mod(hue, 360.0), 0.0)
    return hue, np.clip(sat, 0.0, 1.0), light


class MagentaPredicate:
    """
    Hue-band test centered on magenta (300°).

    Works in HSL so JPEG-ish blocks of slightly-off magenta still match, which a
    fixed RGB distance to #ff00ff does not do well. All thresholds loosen as
    tolerance grows.
    """

    HUE_CENTER = 300.0

    def __init__(self, tolerance: int = 30):
        self.tolerance = int(tolerance)
        t = float(self.tolerance)
        self.hue_range = 25.0 + t / 2.0
        self.min_saturation = max(0.2, 0.6 - t / 255.0)
        self.min_lightness = max(0.1, 0.3 - t / 510.0)
        self.max_lightness = min(0.95, 0.7 + t / 510.0)

    def match(self, rgb: np.ndarray) -> np.ndarray:
        hue, sat, light = rgb_to_hsl(rgb)
        dh = np.abs(hue - self.HUE_CENTER)
        dh = np.minimum(dh, 360.0 - dh)
        return (
            (sat >= self.min_saturation)
            & (light >= self.min_lightness)
            & (light <= self.max_lightness)
            & (dh <= self.hue_range)
        )

    def __repr__(self) -> str:
        return f"MagentaPredicate(tolerance={self.tolerance})"


# ---------------------------
# Options and seeds
# ---------------------------
@dataclass(frozen=True)
class CleanupOptions:
    expansion_pixels: int = 0
    despill_threshold: int = 0
    neutralize_rgb: bool = False
    use_flood_fill: bool = True
    despill: bool = False
    expansion_connectivity: int = 4

    def __post_init__(self):
        if self.expansion_pixels < 0:
            raise ValueError(f"expansion_pixels must be >= 0, got {self.expansion_pixels}")
        if not 0 <= self.despill_threshold <= 255:
            raise ValueError(f"despill_threshold must be within 0..255, got {self.despill_threshold}")
        if self.expansion_connectivity not in (4, 8):
            raise ValueError(f"expansion_connectivity must be 4 or 8, got {self.expansion_connectivity}")


def default_magenta_cleanup(tolerance: int = 30) -> CleanupOptions:
    """Cleanup tuned for magenta sprite-sheet backgrounds."""
    return CleanupOptions(
        expansion_pixels=1,
        despill_threshold=max(16, 64 - int(tolerance) // 2),
        neutralize_rgb=True,
        use_flood_fill=True,
        despill=True,
        expansion_connectivity=8,
    )


@dataclass(frozen=True)
class Selection:
    """Rectangle in percent of the bitmap (0..100)."""
    x: float
    y: float
    w: float
    h: float

    def to_pixels(self, width: int, height: int) -> Tuple[int, int, int, int]:
        x0 = max(0, math.floor(self.x / 100.0 * width))
        y0 = max(0, math.floor(self.y / 100.0 * height))
        x1 = min(width, math.floor((self.x + self.w) / 100.0 * width))
        y1 = min(height, math.floor((self.y + self.h) / 100.0 * height))
        return x0, y0, x1, y1


@dataclass(frozen=True)
class EraserStroke:
    """Brush polyline. Points and radius are percentages; radius is relative to width."""
    points: Tuple[Tuple[float, float], ...] = field(default_factory=tuple)
    radius: float = 2.0


def _selection_mask(selection: Selection, width: int, height: int) -> np.ndarray:
    out = np.zeros((height, width), dtype=np.bool_)
    x0, y0, x1, y1 = selection.to_pixels(width, height)
    if x1 > x0 and y1 > y0:
        out[y0:y1, x0:x1] = True
    return out


def _stamp_circle(out: np.ndarray, cx: float, cy: float, r: float) -> None:
    h, w = out.shape
    x0, x1 = max(0, int(math.floor(cx - r))), min(w - 1, int(math.ceil(cx + r)))
    y0, y1 = max(0, int(math.floor(cy - r))), min(h - 1, int(math.ceil(cy + r)))
    if x1 < x0 or y1 < y0:
        return
    yy, xx = np.ogrid[y0:y1 + 1, x0:x1 + 1]
    out[y0:y1 + 1, x0:x1 + 1] |= (xx - cx) ** 2 + (yy - cy) ** 2 <= r * r


def stroke_mask(strokes: Sequence[EraserStroke], width: int, height: int) -> np.ndarray:
    """
    Rasterise brush strokes: a circle at each stroke point and at interpolated
    points in between, spaced at half the radius so consecutive circles overlap.
    """
    out = np.zeros((height, width), dtype=np.bool_)
    for stroke in strokes:
        if not stroke.points:
            continue
        r = max(0.5, stroke.radius / 100.0 * width)
        step = max(1.0, r / 2.0)
        pts = [(px / 100.0 * width, py / 100.0 * height) for px, py in stroke.points]

        _stamp_circle(out, pts[0][0], pts[0][1], r)
        for (ax, ay), (bx, by) in zip(pts, pts[1:]):
            n = max(1, int(math.ceil(math.hypot(bx - ax, by - ay) / step)))
            for k in range(1, n + 1):
                t = k / n
                _stamp_circle(out, ax + (bx - ax) * t, ay + (by - ay) * t, r)
    return out


def _border_mask(width: int, height: int) -> np.ndarray:
    out = np.zeros((height, width), dtype=np.bool_)
    out[0, :] = True
    out[-1, :] = True
    out[:, 0] = True
    out[:, -1] = True
    return out


# ---------------------------
# Mask passes
# ---------------------------
def flood_fill(match: np.ndarray, seeds: np.ndarray) -> np.ndarray:
    """
    4-connected BFS over `match` starting from matching seed pixels.

    The queue is a flat list of pixel indices consumed through a head pointer;
    nothing is ever popped from the front.
    """
    h, w = match.shape
    n = h * w
    allowed = match.ravel().tolist()
    visited = bytearray(n)

    queue: List[int] = np.flatnonzero(seeds & match).tolist()
    for i in queue:
        visited[i] = 1

    head = 0
    while head < len(queue):
        i = queue[head]
        head += 1
        x = i % w
        if x > 0:
            j = i - 1
            if not visited[j] and allowed[j]:
                visited[j] = 1
                queue.append(j)
        if x < w - 1:
            j = i + 1
            if not visited[j] and allowed[j]:
                visited[j] = 1
                queue.append(j)
        if i >= w:
            j = i - w
            if not visited[j] and allowed[j]:
                visited[j] = 1
                queue.append(j)
        j = i + w
        if j < n and not visited[j] and allowed[j]:
            visited[j] = 1
            queue.append(j)

    return np.frombuffer(bytes(visited), dtype=np.uint8).reshape(h, w).astype(np.bool_)


def dilate(mask: np.ndarray, connectivity: int = 4) -> np.ndarray:
    """One-pixel binary dilation with a cross (4) or square (8) neighbourhood."""
    if connectivity == 8 and mask.size:
        im = Image.fromarray(mask.astype(np.uint8) * 255)
        im = im.filter(ImageFilter.MaxFilter(3))
        return np.array(im, dtype=np.uint8) >= 128
    out = mask.copy()
    out[1:, :] |= mask[:-1, :]
    out[:-1, :] |= mask[1:, :]
    out[:, 1:] |= mask[:, :-1]
    out[:, :-1] |= mask[:, 1:]
    return out


def expand_mask(mask: np.ndarray, rounds: int, connectivity: int = 4) -> np.ndarray:
    """Grow mask outward by `rounds` rings, independent of color."""
    out = mask.copy()
    for _ in range(max(0, int(rounds))):
        grown = dilate(out, connectivity)
        if np.array_equal(grown, out):
            break
        out = grown
    return out


def despill_mask(rgb: np.ndarray, mask: np.ndarray, threshold: int) -> np.ndarray:
    """
    Pixels just outside `mask` (8-adjacent) still tinted by a magenta-like
    background: R and B high and close to each other, G clearly below them.
    """
    ring = dilate(mask, 8) & ~mask
    a = rgb.astype(np.int16)
    r, g, b = a[..., 0], a[..., 1], a[..., 2]
    spill = (
        (np.minimum(r, b) >= 96)
        & (np.abs(r - b) <= 40)
        & ((r + b) / 2.0 - g >= threshold)
    )
    return ring & spill


# ---------------------------
# Entry points
# ---------------------------
def remove_background(
    buffer: np.ndarray,
    predicate,
    *,
    selection: Optional[Selection] = None,
    strokes: Sequence[EraserStroke] = (),
    cleanup: CleanupOptions = CleanupOptions(),
) -> np.ndarray:
    """
    Make background pixels transparent, in place.

    Only alpha is written (plus RGB when neutralize_rgb is set). The predicate
    looks at RGB only, so running twice with the same arguments clears the same
    pixels. Returns the boolean mask of cleared pixels.
    """
    width, height = validate_buffer(buffer)
    if width == 0 or height == 0:
        return np.zeros((height, width), dtype=np.bool_)

    rgb = buffer[..., :3]
    match = predicate.match(rgb)

    if cleanup.use_flood_fill:
        seeds = _border_mask(width, height)
        if selection is not None:
            seeds |= _selection_mask(selection, width, height)
        if strokes:
            seeds |= stroke_mask(strokes, width, height)
        mask = flood_fill(match, seeds)
    else:
        mask = match.copy()
    filled = int(mask.sum())

    if cleanup.expansion_pixels > 0:
        mask = expand_mask(mask, cleanup.expansion_pixels, cleanup.expansion_connectivity)

    if cleanup.despill:
        mask |= despill_mask(rgb, mask, cleanup.despill_threshold)

    buffer[..., 3][mask] = 0

    if cleanup.neutralize_rgb:
        buffer[..., :3][buffer[..., 3] == 0] = 0

    log.debug(
        "%r on %dx%d: matched=%d filled=%d cleared=%d (flood_fill=%s)",
        predicate, width, height, int(match.sum()), filled, int(mask.sum()), cleanup.use_flood_fill,
    )
    return mask


def process_white_background(
    buffer: np.ndarray,
    color_distance: int = DEFAULT_COLOR_DISTANCE,
    *,
    trim: bool = True,
    padding: int = 0,
    selection: Optional[Selection] = None,
    expansion: int = 0,
) -> np.ndarray:
    """
    Copy → remove white background → optionally trim to content plus padding.
    The input buffer is left untouched.
    """
    out = clone_buffer(buffer)
    remove_background(
        out,
        WhitePredicate(color_distance),
        selection=selection,
        cleanup=CleanupOptions(expansion_pixels=expansion),
    )
    if not trim:
        return out
    return trim_margins(out, padding=padding)
