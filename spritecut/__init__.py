"""
spritecut: tile slicing, flat background removal and watermark reversal for
RGBA pixel buffers (numpy uint8 arrays of shape (H, W, 4)).
"""

from .background import (
    CleanupOptions,
    EraserStroke,
    MagentaPredicate,
    Selection,
    WhitePredicate,
    default_magenta_cleanup,
    process_white_background,
    remove_background,
)
from .buffer import clone_buffer, from_bytes, get_trim_bounds, load_rgba, save_rgba, trim_margins
from .crop import crop_from_center
from .errors import (
    ConfigError,
    EngineNotInitializedError,
    InvalidBufferError,
    PipelineCancelled,
    SpritecutError,
)
from .geometry import Orientation, Region, SplitLine, compute_regions, tile_name
from .sprite import FrameOptions, process_frame, process_frames, slice_grid
from .watermark import (
    WatermarkEngine,
    calculate_position,
    detect_config,
    remove_flat_watermark,
    reverse_alpha_blend,
)

__version__ = "0.1.0"
