#!/usr/bin/env python3
"""
Test script for the dual-fisheye stitching pipeline.

Covers whole-image scenarios (uniform sources, coverage fallback, round
trip through a synthetic dual-fisheye frame), chunked and parallel
execution, cancellation, image export and the command line tool.

Run with pytest, or directly:
    python -m dualfish.test_stitcher
"""

import contextlib
import io
import os
import sys
import tempfile
import threading

import numpy as np
import pytest
from PIL import Image

from dualfish.config import StitchConfig
from dualfish.geometry import direction_grid
from dualfish.image_io import (
    export_filename, prepare_export, read_image, to_rgba, write_image,
)
from dualfish.projection import LensProjector
from dualfish.stitch_cli import main as cli_main
from dualfish.stitcher import DualFisheyeStitcher, StitchCancelled, stitch
from dualfish.synthetic import make_test_panorama, render_dual_fisheye


def _solid(width, height, color):
    image = np.empty((height, width, 4), dtype=np.uint8)
    image[..., :3] = color
    image[..., 3] = 255
    return image


def _split_red_blue(width=400, height=200):
    image = _solid(width, height, (255, 0, 0))
    image[:, width // 2:, :3] = (0, 0, 255)
    return image


# ---- Whole-image scenarios ----

def test_uniform_source_gives_uniform_panorama():
    color = (200, 120, 37)
    result = stitch(_solid(1000, 500, color), StitchConfig(fov_deg=200))

    assert result.shape == (500, 1000, 4)
    assert result.dtype == np.uint8
    assert np.all(result[..., :3] == color)
    assert np.all(result[..., 3] == 255)


def test_narrow_fov_uses_fallback_without_gaps():
    config = StitchConfig(fov_deg=170)
    source = _solid(400, 200, (10, 220, 90))

    # the seam band around +-Y is outside both lenses
    left = LensProjector.from_config(config, 'left', 400, 200)
    right = LensProjector.from_config(config, 'right', 400, 200)
    v = direction_grid(400, 200)
    uncovered = ~(left.project(v).covered | right.project(v).covered)
    assert np.any(uncovered)

    result = stitch(source, config)
    assert np.all(result[..., 3] == 255)
    assert np.all(result[..., :3] == (10, 220, 90))


def test_narrow_fov_fallback_picks_lens_by_hemisphere():
    config = StitchConfig(fov_deg=120)
    result = stitch(_split_red_blue(), config)
    assert result.shape == (200, 400, 4)

    # columns 290 and 310 on the equator sit at longitude 82.8 and 97.2
    # degrees, outside both 60 degree half-fields
    left = LensProjector.from_config(config, 'left', 400, 200)
    right = LensProjector.from_config(config, 'right', 400, 200)
    v = direction_grid(400, 200, 100, 101)[0, [290, 310]]
    assert not np.any(left.project(v).covered | right.project(v).covered)

    # x > 0 goes to the right lens (blue half), x < 0 to the left lens (red half)
    assert tuple(result[100, 290, :3]) == (0, 0, 255)
    assert tuple(result[100, 310, :3]) == (255, 0, 0)
    assert np.all(result[..., 3] == 255)


def _round_trip_error(config, width=720):
    panorama = make_test_panorama(width)
    source = render_dual_fisheye(panorama, (width, width // 2), config)
    result = stitch(source, config)

    assert result.shape == panorama.shape

    # leave out the polar regions (|latitude| > 60 degrees)
    height = width // 2
    band = slice(height // 6, height - height // 6)
    error = np.abs(result[band, :, :3].astype(int) - panorama[band, :, :3].astype(int))
    return error


def test_round_trip_through_synthetic_dual_fisheye():
    error = _round_trip_error(StitchConfig())
    assert error.mean() < 2.0
    assert error.max() < 10


def test_round_trip_with_lens_misalignment():
    config = StitchConfig(
        roll_deg={'left': 3.0, 'right': -2.0},
        global_yaw_deg=45.0,
        centers={'left': (0.26, 0.49), 'right': (0.745, 0.505)},
        radius_scale=0.95,
    )
    error = _round_trip_error(config)
    assert error.mean() < 2.0
    assert error.max() < 10


def test_output_dimensions_follow_scale():
    source = _solid(300, 150, (1, 2, 3))
    for scale in (0.5, 1.0, 1.3):
        result = stitch(source, StitchConfig(scale=scale))
        height, width = result.shape[:2]
        assert width == 2 * height
        assert abs(width - 300 * scale) <= 1


def test_hard_seam_when_blend_disabled():
    source = _split_red_blue()

    blended = stitch(source, StitchConfig(blend_enable=True))
    mixed = (blended[..., 0] > 0) & (blended[..., 2] > 0)
    assert np.any(mixed)

    hard = stitch(source, StitchConfig(blend_enable=False))
    red = np.all(hard[..., :3] == (255, 0, 0), axis=-1)
    blue = np.all(hard[..., :3] == (0, 0, 255), axis=-1)
    assert np.all(red | blue)


def test_hard_seam_with_flat_weights_follows_nearer_lens():
    # gamma 0 gives both lenses weight 1 across the whole overlap
    hard = stitch(_split_red_blue(), StitchConfig(blend_enable=False, blend_gamma=0.0))

    # longitude 94.5 deg: 85.5 deg off the left axis, 94.5 off the right
    assert tuple(hard[100, 305, :3]) == (255, 0, 0)
    # longitude 85.5 deg: the right lens is nearer
    assert tuple(hard[100, 295, :3]) == (0, 0, 255)


def test_rgb_source_is_accepted():
    rgb = np.full((100, 200, 3), 77, dtype=np.uint8)
    result = stitch(rgb)
    assert result.shape == (100, 200, 4)
    assert np.all(result[..., :3] == 77)


# ---- Source validation ----

@pytest.mark.parametrize('shape', [(0, 10, 4), (10, 0, 4), (1, 10, 4), (10, 1, 4), (10, 10), (10, 10, 2)])
def test_bad_source_is_rejected(shape):
    with pytest.raises(ValueError):
        stitch(np.zeros(shape, dtype=np.uint8))


def test_source_and_output_must_be_distinct():
    source = _solid(20, 10, (5, 5, 5))
    stitcher = DualFisheyeStitcher()
    with pytest.raises(ValueError):
        list(stitcher.iter_chunks(source, output=source))


def test_output_shape_is_checked():
    stitcher = DualFisheyeStitcher()
    with pytest.raises(ValueError):
        list(stitcher.iter_chunks(_solid(20, 10, (5, 5, 5)),
                                  output=np.zeros((4, 4, 4), dtype=np.uint8)))


def test_invalid_execution_settings():
    with pytest.raises(ValueError):
        DualFisheyeStitcher(chunk_rows=0)
    with pytest.raises(ValueError):
        DualFisheyeStitcher(workers=0)


# ---- Chunked and parallel execution ----

def test_chunks_cover_all_rows_in_order():
    source = make_test_panorama(160)
    source = render_dual_fisheye(source, (160, 80))
    stitcher = DualFisheyeStitcher(chunk_rows=7)

    ranges = []
    output = None
    for row_start, row_end, output in stitcher.iter_chunks(source):
        ranges.append((row_start, row_end))

    assert ranges[0][0] == 0
    assert ranges[-1][1] == output.shape[0]
    for (_, end), (start, _) in zip(ranges, ranges[1:]):
        assert end == start

    assert np.array_equal(output, DualFisheyeStitcher().stitch(source))


def test_parallel_workers_match_single_thread():
    source = render_dual_fisheye(make_test_panorama(200), (200, 100))
    single = DualFisheyeStitcher(chunk_rows=8).stitch(source)
    parallel = DualFisheyeStitcher(chunk_rows=8, workers=3).stitch(source)
    assert np.array_equal(single, parallel)


def test_progress_reports_every_chunk():
    calls = []
    DualFisheyeStitcher(chunk_rows=10).stitch(
        _solid(100, 50, (0, 0, 0)), progress=lambda done, total: calls.append((done, total))
    )
    assert calls == [(10, 50), (20, 50), (30, 50), (40, 50), (50, 50)]


def test_cancel_before_start():
    event = threading.Event()
    event.set()
    with pytest.raises(StitchCancelled):
        DualFisheyeStitcher().stitch(_solid(100, 50, (0, 0, 0)), cancel_event=event)


def test_cancel_between_chunks():
    event = threading.Event()
    calls = []

    def on_progress(done, total):
        calls.append(done)
        event.set()

    with pytest.raises(StitchCancelled):
        DualFisheyeStitcher(chunk_rows=5).stitch(
            _solid(100, 50, (0, 0, 0)), cancel_event=event, progress=on_progress
        )
    assert calls == [5]


def test_cancel_parallel():
    event = threading.Event()
    event.set()
    with pytest.raises(StitchCancelled):
        DualFisheyeStitcher(workers=2).stitch(_solid(100, 50, (0, 0, 0)), cancel_event=event)


# ---- Synthetic frames ----

def test_synthetic_frame_crops_lens_circles():
    frame = render_dual_fisheye(make_test_panorama(200), (200, 100), crop_circle=True)
    assert frame.shape == (100, 200, 4)
    assert np.all(frame[0, 0, :3] == 0)
    assert np.all(frame[-1, -1, :3] == 0)
    assert np.any(frame[50, 50, :3] > 0)


# ---- Image I/O and export ----

def test_to_rgba_promotes_channels():
    gray = np.full((3, 4), 9, dtype=np.uint8)
    rgba = to_rgba(gray)
    assert rgba.shape == (3, 4, 4)
    assert np.all(rgba[..., :3] == 9)
    assert np.all(rgba[..., 3] == 255)

    rgb = np.zeros((3, 4, 3), dtype=np.float32) + 300.0
    assert np.all(to_rgba(rgb)[..., :3] == 255)


def test_png_keeps_pixels_and_alpha():
    image = make_test_panorama(40)
    image[0, 0, 3] = 0

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, 'pano.png')
        write_image(path, image)
        assert np.array_equal(read_image(path), image)


def test_jpeg_fills_transparent_areas_white():
    image = np.zeros((16, 32, 4), dtype=np.uint8)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, 'pano.jpg')
        write_image(path, image, quality=0.9)
        with Image.open(path) as img:
            assert img.format == 'JPEG'
            assert img.mode == 'RGB'
        loaded = read_image(path)
        assert loaded[..., :3].min() > 240


def test_export_rotation_and_downscale():
    image = np.zeros((10, 20, 4), dtype=np.uint8)
    image[..., 3] = 255
    image[0, 0, :3] = (255, 255, 255)

    turned = np.array(prepare_export(image, rotate_180=True))
    assert tuple(turned[-1, -1, :3]) == (255, 255, 255)
    assert tuple(turned[0, 0, :3]) == (0, 0, 0)

    assert prepare_export(image, scale=0.5).size == (10, 5)
    assert prepare_export(image, scale=0.001).size == (1, 1)

    with pytest.raises(ValueError):
        prepare_export(image, scale=0)


def test_write_image_returns_saved_size():
    image = np.zeros((10, 20, 4), dtype=np.uint8)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, 'small.png')
        assert write_image(path, image, scale=0.5) == (10, 5)
        with Image.open(path) as img:
            assert img.size == (10, 5)


def test_write_image_errors():
    image = np.zeros((4, 8, 4), dtype=np.uint8)
    with pytest.raises(ValueError):
        write_image('out.gif', image, fmt='gif')
    with pytest.raises(IOError):
        write_image(os.path.join(tempfile.gettempdir(), 'missing-dir', 'x', 'out.png'), image)
    with pytest.raises(IOError):
        read_image(os.path.join(tempfile.gettempdir(), 'no-such-image.png'))


def test_export_filenames():
    assert export_filename('room.jpg', 'png') == 'room-stitched.png'
    assert export_filename('shots/room.jpg', 'jpeg') == 'room-stitched.jpg'
    assert export_filename('room', 'jpeg', 0.5) == 'room-stitched-50pct.jpg'
    assert export_filename('room', 'png', 0.5) == 'room-stitched.png'


# ---- Command line ----

def test_cli_demo_run():
    with tempfile.TemporaryDirectory() as tmp:
        out = os.path.join(tmp, 'demo.png')
        assert cli_main(['--demo', '64', '-o', out, '--fov', '195', '--workers', '2']) == 0
        with Image.open(out) as img:
            assert img.size == (64, 32)


def test_cli_stitches_file_with_config_file():
    with tempfile.TemporaryDirectory() as tmp:
        src = os.path.join(tmp, 'frame.png')
        write_image(src, _solid(120, 60, (40, 80, 160)))

        cfg_path = os.path.join(tmp, 'params.json')
        StitchConfig(fov_deg=190, scale=0.5).to_json(cfg_path)

        out = os.path.join(tmp, 'out.jpg')
        code = cli_main([src, '--config', cfg_path, '--scale', '1.0',
                         '-o', out, '--export-scale', '0.5', '--rotate-180'])
        assert code == 0
        with Image.open(out) as img:
            assert img.format == 'JPEG'
            assert img.size == (60, 30)


def test_cli_reports_saved_size_after_export_scale():
    with tempfile.TemporaryDirectory() as tmp:
        src = os.path.join(tmp, 'frame.png')
        write_image(src, _solid(120, 60, (40, 80, 160)))

        out = os.path.join(tmp, 'out.png')
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            assert cli_main([src, '-o', out, '--export-scale', '0.5']) == 0

        text = stdout.getvalue()
        assert 'Stitched size: 120x60' in text
        assert 'Saved size: 60x30' in text


def test_cli_default_output_name():
    with tempfile.TemporaryDirectory() as tmp:
        src = os.path.join(tmp, 'frame.png')
        write_image(src, _solid(40, 20, (1, 2, 3)))
        assert cli_main([src]) == 0
        assert os.path.exists(os.path.join(tmp, 'frame-stitched.png'))


def test_cli_rejects_bad_input():
    assert cli_main(['--demo', '64', '--fov', '400']) == 1
    assert cli_main([os.path.join(tempfile.gettempdir(), 'no-such-frame.jpg')]) == 1
    assert cli_main([]) == 1


def main():
    """Run all tests."""
    print("\n")
    print("╔" + "="*58 + "╗")
    print("║" + "  DUAL-FISHEYE STITCHING - TEST SUITE".center(58) + "║")
    print("╚" + "="*58 + "╝")

    tests = [(name, fn) for name, fn in sorted(globals().items())
             if name.startswith('test_') and callable(fn)
             and not hasattr(fn, 'pytestmark')]

    results = []
    for name, fn in tests:
        try:
            fn()
            results.append((name, True))
        except Exception as e:
            print(f"❌ {name} FAILED: {type(e).__name__}: {e}")
            results.append((name, False))

    # Summary
    print("\n" + "="*60)
    print("TEST SUMMARY")
    print("="*60)

    for test_name, passed in results:
        status = "✅ PASSED" if passed else "❌ FAILED"
        print(f"{test_name}: {status}")

    all_passed = all(passed for _, passed in results)
    print("\n" + "="*60)
    print("🎉 ALL TESTS PASSED!" if all_passed else "⚠️  SOME TESTS FAILED")
    print("="*60 + "\n")

    return 0 if all_passed else 1


if __name__ == '__main__':
    sys.exit(main())
