import threading

import numpy as np
import pytest

from spritecut.errors import EngineNotInitializedError, InvalidBufferError
from spritecut.watermark import (
    WatermarkConfig,
    WatermarkEngine,
    WatermarkPosition,
    alpha_map_from_overlay,
    calculate_position,
    detect_config,
    overlay_loader_from_files,
    remove_flat_watermark,
    reverse_alpha_blend,
)
from spritecut.buffer import save_rgba


def overlay(size, peak=127):
    """Radial logo capture over black, brightest at the center."""
    yy, xx = np.mgrid[0:size, 0:size]
    c = (size - 1) / 2.0
    d = np.hypot(xx - c, yy - c) / (size / 2.0)
    v = np.clip((1.0 - d) * peak, 0, peak).astype(np.uint8)
    buf = np.zeros((size, size, 4), dtype=np.uint8)
    buf[..., 0] = v
    buf[..., 1] = v
    buf[..., 2] = v
    buf[..., 3] = 255
    return buf


def counting_loader(calls):
    def load(size):
        calls.append(size)
        return overlay(size)
    return load


def forward_blend(original, alpha, position):
    out = original.copy()
    p = position
    region = out[p.y:p.y + p.height, p.x:p.x + p.width, :3].astype(np.float64)
    a = alpha.astype(np.float64)[..., None]
    blended = a * 255.0 + (1.0 - a) * region
    out[p.y:p.y + p.height, p.x:p.x + p.width, :3] = np.clip(np.round(blended), 0, 255).astype(np.uint8)
    return out


def random_image(width, height, seed=0):
    rng = np.random.default_rng(seed)
    buf = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    buf[..., 3] = 255
    return buf


def test_detect_config():
    assert detect_config(1025, 1025) == WatermarkConfig(96, 64, 64)
    assert detect_config(1024, 2048) == WatermarkConfig(48, 32, 32)
    assert detect_config(512, 512) == WatermarkConfig(48, 32, 32)


def test_position_is_bottom_right():
    pos = calculate_position(200, 150, detect_config(200, 150))
    assert pos == WatermarkPosition(x=120, y=70, width=48, height=48)


def test_alpha_map_is_max_channel_and_read_only():
    ov = np.zeros((2, 2, 4), dtype=np.uint8)
    ov[0, 0, :3] = (255, 0, 0)
    ov[1, 1, :3] = (10, 51, 20)
    amap = alpha_map_from_overlay(ov)
    assert amap.dtype == np.float32
    assert amap[0, 0] == pytest.approx(1.0)
    assert amap[1, 1] == pytest.approx(0.2)
    assert amap[0, 1] == 0.0
    with pytest.raises(ValueError):
        amap[0, 0] = 0.5


def test_remove_before_init_fails():
    engine = WatermarkEngine(counting_loader([]))
    with pytest.raises(EngineNotInitializedError):
        engine.remove_watermark(random_image(100, 100))


def test_round_trip_small_image():
    original = random_image(200, 150)
    engine = WatermarkEngine(counting_loader([])).init()
    pos = calculate_position(200, 150, detect_config(200, 150))
    marked = forward_blend(original, engine.alpha_map(48), pos)

    engine.remove_watermark(marked)

    diff = np.abs(marked.astype(np.int16) - original.astype(np.int16))
    assert diff.max() <= 1
    # outside the footprint nothing changed
    outside = np.ones((150, 200), dtype=bool)
    outside[pos.y:pos.y + 48, pos.x:pos.x + 48] = False
    assert (diff[outside] == 0).all()


def test_round_trip_large_image_uses_96_map():
    original = random_image(1100, 1030, seed=1)
    engine = WatermarkEngine(counting_loader([])).init()
    pos = calculate_position(1100, 1030, detect_config(1100, 1030))
    assert pos.width == 96
    marked = forward_blend(original, engine.alpha_map(96), pos)

    engine.remove_watermark(marked)
    assert np.abs(marked.astype(np.int16) - original.astype(np.int16)).max() <= 1


def test_tiny_alpha_is_left_alone():
    buf = np.full((4, 4, 4), 200, dtype=np.uint8)
    alpha = np.full((4, 4), 0.001, dtype=np.float32)
    reverse_alpha_blend(buf, alpha, WatermarkPosition(0, 0, 4, 4))
    assert (buf == 200).all()


def test_opaque_alpha_is_capped_and_clamped():
    buf = np.full((2, 2, 4), 255, dtype=np.uint8)
    buf[0, 0, :3] = 100
    alpha = np.ones((2, 2), dtype=np.float32)
    reverse_alpha_blend(buf, alpha, WatermarkPosition(0, 0, 2, 2))
    # (255 - 0.99*255) / 0.01 = 255; (100 - 252.45) / 0.01 < 0 → 0
    assert buf[1, 1, :3].tolist() == [255, 255, 255]
    assert buf[0, 0, :3].tolist() == [0, 0, 0]
    assert (buf[..., 3] == 255).all()


def test_footprint_clipped_on_small_images():
    engine = WatermarkEngine(counting_loader([])).init()
    buf = random_image(60, 40)
    engine.remove_watermark(buf)  # x = -20, y = -40: must not raise
    assert buf.shape == (40, 60, 4)


def test_alpha_map_shape_mismatch():
    with pytest.raises(InvalidBufferError):
        reverse_alpha_blend(random_image(10, 10), np.zeros((3, 3), np.float32), WatermarkPosition(0, 0, 4, 4))


def test_init_is_idempotent_across_threads():
    calls = []
    engine = WatermarkEngine(counting_loader(calls))
    threads = [threading.Thread(target=engine.init) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    engine.init()
    assert sorted(calls) == [48, 96]
    assert engine.initialized


def test_loader_with_wrong_size_is_rejected():
    engine = WatermarkEngine(lambda size: overlay(size + 1))
    with pytest.raises(InvalidBufferError):
        engine.init()
    assert not engine.initialized


def test_watermark_info():
    engine = WatermarkEngine(counting_loader([]))
    info = engine.watermark_info(2000, 2000)
    assert info["size"] == 96
    assert info["position"] == WatermarkPosition(1840, 1840, 96, 96)


def test_loader_from_files(tmp_path):
    p48 = save_rgba(overlay(48), tmp_path / "wm48.png")
    p96 = save_rgba(overlay(96), tmp_path / "wm96.png")
    engine = WatermarkEngine(overlay_loader_from_files({48: p48, 96: p96})).init()
    assert np.allclose(engine.alpha_map(48), alpha_map_from_overlay(overlay(48)))


def test_flat_watermark_round_trip():
    original = random_image(32, 32, seed=5)
    a = 0.35
    marked = original.copy()
    marked[..., :3] = np.round(a * 255.0 + (1 - a) * original[..., :3].astype(np.float64)).astype(np.uint8)
    remove_flat_watermark(marked, a)
    assert np.abs(marked.astype(np.int16) - original.astype(np.int16)).max() <= 1


def test_flat_watermark_rejects_bad_alpha():
    with pytest.raises(ValueError):
        remove_flat_watermark(random_image(4, 4), 1.0)
