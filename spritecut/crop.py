"""
Center crop / pad without resampling.
"""

import numpy as np

from .buffer import new_buffer, validate_buffer


def crop_from_center(buffer: np.ndarray, target_width: int, target_height: int) -> np.ndarray:
    """
    Place the center of `buffer` at the center of a target_width x target_height
    canvas.

    Larger sources are cropped evenly from both sides, smaller ones are padded
    with transparent pixels. If the size already matches, the same array is
    returned (no copy).
    """
    src_w, src_h = validate_buffer(buffer)
    if target_width < 0 or target_height < 0:
        raise ValueError(f"Negative target size {target_width}x{target_height}")
    if (src_w, src_h) == (target_width, target_height):
        return buffer

    out = new_buffer(target_width, target_height)

    crop_w = min(src_w, target_width)
    crop_h = min(src_h, target_height)
    sx = (src_w - crop_w) // 2
    sy = (src_h - crop_h) // 2
    dx = (target_width - crop_w) // 2
    dy = (target_height - crop_h) // 2

    out[dy:dy + crop_h, dx:dx + crop_w] = buffer[sy:sy + crop_h, sx:sx + crop_w]
    return out
