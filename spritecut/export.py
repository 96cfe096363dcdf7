"""
Encoding and packaging: per-tile image bytes, ZIP archives, animated GIFs.
"""

import io
import logging
import zipfile
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
from PIL import Image

from .buffer import to_image, validate_buffer
from .config import DEFAULT_GIF_DELAY_MS, DEFAULT_QUALITY
from .geometry import Region, SplitLine, compute_regions, grid_shape, tile_name

log = logging.getLogger(__name__)

FORMATS: Dict[str, str] = {"png": "PNG", "jpeg": "JPEG", "webp": "WEBP"}
EXTENSIONS: Dict[str, str] = {"png": "png", "jpeg": "jpg", "webp": "webp"}


@dataclass(frozen=True)
class ExportOptions:
    format: str = "png"
    quality: float = DEFAULT_QUALITY  # 0..1, ignored for PNG

    def __post_init__(self):
        if self.format not in FORMATS:
            raise ValueError(f"Unsupported format {self.format!r}; expected one of {sorted(FORMATS)}")


@dataclass(frozen=True)
class Tile:
    row: int  # 1-based
    col: int  # 1-based
    region: Region
    data: bytes


def file_extension(fmt: str) -> str:
    return EXTENSIONS[fmt]


def encode_buffer(buffer: np.ndarray, fmt: str = "png", quality: float = DEFAULT_QUALITY) -> bytes:
    """Encode one buffer. JPEG has no alpha, so transparent areas are flattened onto white."""
    img = to_image(buffer)
    out = io.BytesIO()
    if fmt == "png":
        img.save(out, "PNG")
    elif fmt == "jpeg":
        flat = Image.new("RGB", img.size, (255, 255, 255))
        flat.paste(img, mask=img.getchannel("A"))
        flat.save(out, "JPEG", quality=int(round(quality * 100)))
    elif fmt == "webp":
        img.save(out, "WEBP", quality=int(round(quality * 100)))
    else:
        raise ValueError(f"Unsupported format {fmt!r}")
    return out.getvalue()


def split_image(
    buffer: np.ndarray,
    lines: Sequence[SplitLine],
    options: ExportOptions = ExportOptions(),
) -> List[Tile]:
    """
    Encode every non-empty region, row-major. Zero-area regions (coincident
    lines) are skipped; the remaining tiles keep their real row/col.
    """
    width, height = validate_buffer(buffer)
    _, cols = grid_shape(lines)

    tiles: List[Tile] = []
    skipped = 0
    for idx, region in enumerate(compute_regions(width, height, lines)):
        if region.is_empty:
            skipped += 1
            continue
        cut = buffer[region.y:region.y + region.height, region.x:region.x + region.width]
        tiles.append(
            Tile(
                row=idx // cols + 1,
                col=idx % cols + 1,
                region=region,
                data=encode_buffer(cut, options.format, options.quality),
            )
        )
    log.debug("split_image: %d tiles, %d empty regions skipped", len(tiles), skipped)
    return tiles


def build_zip(
    tiles: Sequence[Tile],
    base_name: str,
    fmt: str = "png",
    custom_names: Optional[Sequence[str]] = None,
) -> bytes:
    """
    Pack tiles as {base}_r{row:02}_c{col:02}.{ext}. Custom names are used
    instead only when there is exactly one per tile.
    """
    ext = file_extension(fmt)
    use_custom = custom_names is not None and len(custom_names) == len(tiles)

    out = io.BytesIO()
    with zipfile.ZipFile(out, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for i, tile in enumerate(tiles):
            if use_custom:
                name = f"{custom_names[i]}.{ext}"
            else:
                name = tile_name(base_name, tile.row, tile.col, ext)
            zf.writestr(name, tile.data)
    return out.getvalue()


def fps_to_delay(fps: float) -> int:
    return int(round(1000.0 / fps))


def delay_to_fps(delay: float) -> int:
    return int(round(1000.0 / delay))


def create_gif(
    frames: Sequence[np.ndarray],
    delay: int = DEFAULT_GIF_DELAY_MS,
    loop: bool = True,
) -> bytes:
    """
    Encode RGBA frames as an animated GIF. Frames should share one size; the
    first frame sets the canvas.
    """
    if not frames:
        raise ValueError("create_gif needs at least one frame")
    images = [to_image(f) for f in frames]

    kwargs = {
        "format": "GIF",
        "save_all": True,
        "append_images": images[1:],
        "duration": int(delay),
        "disposal": 2,
    }
    if loop:
        kwargs["loop"] = 0

    out = io.BytesIO()
    images[0].save(out, **kwargs)
    log.debug("create_gif: %d frames, %d ms/frame, loop=%s", len(images), delay, loop)
    return out.getvalue()
