"""
Sprite sheets: grid slicing and the per-frame cleanup pipeline
(watermark → magenta background → center crop).
"""

import logging
import threading
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

import numpy as np

from .background import MagentaPredicate, default_magenta_cleanup, remove_background
from .buffer import clone_buffer, validate_buffer
from .config import DEFAULT_MAGENTA_TOLERANCE
from .crop import crop_from_center
from .errors import PipelineCancelled
from .watermark import WatermarkEngine

log = logging.getLogger(__name__)


def slice_grid(buffer: np.ndarray, rows: int, cols: int) -> List[List[np.ndarray]]:
    """
    Cut a sheet into rows x cols equal cells, returned as cells[row][col].

    Cell size is floor(width / cols) x floor(height / rows); leftover pixels at
    the right and bottom edges are dropped. Every cell is an independent copy.
    """
    width, height = validate_buffer(buffer)
    if rows <= 0 or cols <= 0:
        raise ValueError(f"rows and cols must be positive, got {rows}x{cols}")

    cell_w = width // cols
    cell_h = height // rows

    result: List[List[np.ndarray]] = []
    for r in range(rows):
        row_cells = []
        for c in range(cols):
            x0, y0 = c * cell_w, r * cell_h
            row_cells.append(buffer[y0:y0 + cell_h, x0:x0 + cell_w].copy())
        result.append(row_cells)
    return result


@dataclass(frozen=True)
class FrameOptions:
    width: Optional[int] = None
    height: Optional[int] = None
    tolerance: int = DEFAULT_MAGENTA_TOLERANCE
    remove_watermark: bool = False
    use_flood_fill: bool = True

    @property
    def has_target_size(self) -> bool:
        return bool(self.width) and bool(self.height)


def process_frame(
    frame: np.ndarray,
    options: FrameOptions = FrameOptions(),
    *,
    watermark_engine: Optional[WatermarkEngine] = None,
    use_flood_fill: Optional[bool] = None,
) -> np.ndarray:
    """
    Clean one frame without touching the input. `use_flood_fill` overrides
    options.use_flood_fill for this frame only.
    """
    out = clone_buffer(frame)

    if options.remove_watermark and watermark_engine is not None:
        watermark_engine.remove_watermark(out)

    flood = options.use_flood_fill if use_flood_fill is None else use_flood_fill
    cleanup = replace(default_magenta_cleanup(options.tolerance), use_flood_fill=flood)
    remove_background(out, MagentaPredicate(options.tolerance), cleanup=cleanup)

    if options.has_target_size:
        out = crop_from_center(out, options.width, options.height)
    return out


def process_frames(
    frames: Sequence[np.ndarray],
    options: FrameOptions = FrameOptions(),
    *,
    watermark_engine: Optional[WatermarkEngine] = None,
    per_frame_flood_fill: Optional[Sequence[bool]] = None,
    cancel: Optional[threading.Event] = None,
) -> List[np.ndarray]:
    """
    Run process_frame over every frame in order.

    per_frame_flood_fill[i], when present, overrides the flood-fill mode of
    frame i. `cancel` is checked before each frame; once set, the batch stops
    with PipelineCancelled.
    """
    out: List[np.ndarray] = []
    for idx, frame in enumerate(frames):
        if cancel is not None and cancel.is_set():
            raise PipelineCancelled(f"Cancelled after {idx} of {len(frames)} frames")
        flood = None
        if per_frame_flood_fill is not None and idx < len(per_frame_flood_fill):
            flood = per_frame_flood_fill[idx]
        out.append(process_frame(frame, options, watermark_engine=watermark_engine, use_flood_fill=flood))
    log.debug("Processed %d frames", len(out))
    return out
