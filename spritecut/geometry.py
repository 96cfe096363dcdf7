"""
Tile geometry: turn split lines into rectangular regions.

Regions are emitted row-major (top-to-bottom, left-to-right), the same order
the exporter uses to number tiles.
"""

import math
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Sequence, Tuple


class Orientation(Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"

    @classmethod
    def parse(cls, value: str) -> "Orientation":
        v = value.strip().lower()
        if v in ("h", "horizontal"):
            return cls.HORIZONTAL
        if v in ("v", "vertical"):
            return cls.VERTICAL
        raise ValueError(f"Unknown split line orientation: {value!r}")


@dataclass(frozen=True)
class SplitLine:
    orientation: Orientation
    position: float  # percent of the axis, 0..100
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class Region:
    x: int
    y: int
    width: int
    height: int

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    @property
    def area(self) -> int:
        return self.width * self.height


def parse_split_line(text: str) -> SplitLine:
    """
    Parse "h:50" / "v:33.3" / "horizontal:25" into a SplitLine.
    """
    kind, sep, pos = text.partition(":")
    if not sep:
        raise ValueError(f"Expected ORIENTATION:PERCENT, got {text!r}")
    return SplitLine(Orientation.parse(kind), float(pos))


def _breaks(positions: Iterable[float], length: int) -> List[int]:
    # Half-up rounding to whole pixels, clamped so out-of-range lines collapse
    # onto the edges instead of producing negative sizes.
    px = sorted(min(length, max(0, math.floor(p / 100.0 * length + 0.5))) for p in positions)
    return [0] + px + [length]


def compute_regions(width: int, height: int, lines: Sequence[SplitLine]) -> List[Region]:
    """
    Slice a width x height bitmap along split lines.

    Every (row interval x column interval) pair becomes one Region, row-major.
    Coincident lines give zero-size regions; they are returned, not dropped,
    so row/column numbering stays stable.
    """
    y_breaks = _breaks((l.position for l in lines if l.orientation is Orientation.HORIZONTAL), height)
    x_breaks = _breaks((l.position for l in lines if l.orientation is Orientation.VERTICAL), width)

    regions: List[Region] = []
    for i in range(len(y_breaks) - 1):
        for j in range(len(x_breaks) - 1):
            regions.append(
                Region(
                    x=x_breaks[j],
                    y=y_breaks[i],
                    width=x_breaks[j + 1] - x_breaks[j],
                    height=y_breaks[i + 1] - y_breaks[i],
                )
            )
    return regions


def grid_shape(lines: Sequence[SplitLine]) -> Tuple[int, int]:
    """(rows, cols) produced by a set of split lines."""
    h = sum(1 for l in lines if l.orientation is Orientation.HORIZONTAL)
    v = sum(1 for l in lines if l.orientation is Orientation.VERTICAL)
    return h + 1, v + 1


def tile_name(base: str, row: int, col: int, ext: str) -> str:
    """Export name for a tile; row and col are 1-based."""
    return f"{base}_r{row:02d}_c{col:02d}.{ext}"
