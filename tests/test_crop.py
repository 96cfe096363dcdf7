import numpy as np
import pytest

from spritecut.crop import crop_from_center

from conftest import solid


def test_same_size_is_identity():
    buf = np.arange(6 * 4 * 4, dtype=np.uint8).reshape(4, 6, 4)
    out = crop_from_center(buf, 6, 4)
    assert out is buf
    assert np.array_equal(out, np.arange(6 * 4 * 4, dtype=np.uint8).reshape(4, 6, 4))


def test_padding_is_centered_and_transparent():
    src = solid(10, 10, (200, 10, 10, 255))
    out = crop_from_center(src, 20, 20)
    assert out.shape == (20, 20, 4)
    assert (out[5:15, 5:15] == src).all()
    border = np.ones((20, 20), dtype=bool)
    border[5:15, 5:15] = False
    assert (out[border] == 0).all()


def test_shrink_crops_evenly():
    src = np.zeros((10, 10, 4), dtype=np.uint8)
    src[..., 0] = np.arange(10)[None, :]
    src[..., 1] = np.arange(10)[:, None]
    out = crop_from_center(src, 4, 6)
    assert out.shape == (6, 4, 4)
    assert out[0, 0, 0] == 3 and out[0, 0, 1] == 2
    assert out[-1, -1, 0] == 6 and out[-1, -1, 1] == 7


def test_mixed_axes():
    src = solid(8, 2, (1, 2, 3, 255))
    out = crop_from_center(src, 4, 6)
    assert out.shape == (6, 4, 4)
    assert (out[2:4, :, 3] == 255).all()
    assert (out[:2, :, 3] == 0).all() and (out[4:, :, 3] == 0).all()


def test_input_is_not_modified():
    src = solid(10, 10, (5, 5, 5, 255))
    out = crop_from_center(src, 4, 4)
    out[...] = 0
    assert (src == 5).sum() == 300


def test_negative_target_rejected():
    with pytest.raises(ValueError):
        crop_from_center(solid(2, 2, (0, 0, 0, 0)), -1, 2)
