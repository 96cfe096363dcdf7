"""
PixelBuffer helpers.

A PixelBuffer is a numpy uint8 array of shape (height, width, 4) holding
non-premultiplied RGBA, row-major. Engines validate it up front and fail
fast: a malformed buffer is a caller bug, not something to recover from.
"""

from pathlib import Path
from typing import NamedTuple, Optional, Tuple, Union

import numpy as np
from PIL import Image

from .errors import InvalidBufferError


class TrimBounds(NamedTuple):
    x: int
    y: int
    width: int
    height: int


def validate_buffer(buffer: np.ndarray) -> Tuple[int, int]:
    """Check that buffer is an (H, W, 4) uint8 array. Returns (width, height)."""
    if not isinstance(buffer, np.ndarray):
        raise InvalidBufferError(f"Expected numpy.ndarray, got {type(buffer).__name__}")
    if buffer.ndim != 3 or buffer.shape[2] != 4:
        raise InvalidBufferError(f"Expected shape (H, W, 4), got {buffer.shape}")
    if buffer.dtype != np.uint8:
        raise InvalidBufferError(f"Expected dtype uint8, got {buffer.dtype}")
    h, w = buffer.shape[:2]
    return w, h


def from_bytes(data: Union[bytes, bytearray, memoryview], width: int, height: int) -> np.ndarray:
    """
    Wrap raw RGBA bytes (4 bytes/pixel, row-major) as a writable PixelBuffer copy.
    The byte length must equal width * height * 4.
    """
    if width < 0 or height < 0:
        raise InvalidBufferError(f"Negative dimensions {width}x{height}")
    expected = width * height * 4
    if len(data) != expected:
        raise InvalidBufferError(
            f"Buffer length {len(data)} does not match {width}x{height} RGBA ({expected} bytes)"
        )
    return np.frombuffer(bytes(data), dtype=np.uint8).reshape(height, width, 4).copy()


def new_buffer(width: int, height: int) -> np.ndarray:
    """Fully transparent buffer."""
    if width < 0 or height < 0:
        raise InvalidBufferError(f"Negative dimensions {width}x{height}")
    return np.zeros((height, width, 4), dtype=np.uint8)


def clone_buffer(buffer: np.ndarray) -> np.ndarray:
    validate_buffer(buffer)
    return buffer.copy()


# ---------------------------
# PIL bridge
# ---------------------------
def from_image(img: Image.Image) -> np.ndarray:
    return np.array(img.convert("RGBA"), dtype=np.uint8)


def to_image(buffer: np.ndarray) -> Image.Image:
    validate_buffer(buffer)
    return Image.fromarray(np.ascontiguousarray(buffer))


def load_rgba(path: Union[str, Path]) -> np.ndarray:
    with Image.open(path) as im:
        return from_image(im)


def save_rgba(buffer: np.ndarray, path: Union[str, Path]) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    to_image(buffer).save(p)
    return p


# ---------------------------
# Trim
# ---------------------------
def get_trim_bounds(buffer: np.ndarray) -> Optional[TrimBounds]:
    """Bounding box of pixels with alpha > 0, or None when everything is transparent."""
    validate_buffer(buffer)
    opaque = buffer[..., 3] > 0
    ys, xs = np.nonzero(opaque)
    if ys.size == 0:
        return None
    x0, x1 = int(xs.min()), int(xs.max())
    y0, y1 = int(ys.min()), int(ys.max())
    return TrimBounds(x0, y0, x1 - x0 + 1, y1 - y0 + 1)


def trim_margins(buffer: np.ndarray, padding: int = 0) -> np.ndarray:
    """
    Crop to the opaque bounding box, then pad every side with `padding`
    transparent pixels. A fully transparent input yields a 1x1 transparent buffer.
    """
    bounds = get_trim_bounds(buffer)
    if bounds is None:
        return new_buffer(1, 1)

    pad = max(0, int(padding))
    out = new_buffer(bounds.width + pad * 2, bounds.height + pad * 2)
    out[pad:pad + bounds.height, pad:pad + bounds.width] = buffer[
        bounds.y:bounds.y + bounds.height, bounds.x:bounds.x + bounds.width
    ]
    return out
