"""
Exceptions raised by spritecut.

Pixel engines fail fast on malformed input; empty masks and zero-area
regions are valid results and never raise.
"""


class SpritecutError(Exception):
    """Base class for every error raised by this package."""


class InvalidBufferError(SpritecutError, ValueError):
    """A pixel buffer has the wrong shape, dtype or dimensions."""


class EngineNotInitializedError(SpritecutError, RuntimeError):
    """The watermark engine was used before init() finished."""


class PipelineCancelled(SpritecutError):
    """A frame batch was cancelled before it completed."""


class ConfigError(SpritecutError, ValueError):
    """A config file or command-line value is unusable."""
