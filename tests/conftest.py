import numpy as np
import pytest

WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)
MAGENTA = (255, 0, 255, 255)


def solid(width, height, color):
    buf = np.zeros((height, width, 4), dtype=np.uint8)
    buf[...] = color
    return buf


@pytest.fixture
def make_buffer():
    return solid


@pytest.fixture
def white_with_black_square():
    """100x100 white, 40x40 black square centered."""
    buf = solid(100, 100, WHITE)
    buf[30:70, 30:70] = BLACK
    return buf


@pytest.fixture
def magenta_island():
    """Magenta sheet, black frame, magenta island inside the frame."""
    buf = solid(20, 20, MAGENTA)
    buf[4:16, 4:16] = BLACK
    buf[8:12, 8:12] = MAGENTA
    return buf
