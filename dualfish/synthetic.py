"""
Synthetic dual-fisheye frames rendered from equirectangular panoramas.

This is the inverse of the stitcher: every source pixel is mapped back to
a view direction through the equidistant lens model and the panorama is
sampled there. Useful for checking a stitch end to end and for trying
lens parameters without a camera.
"""

import numpy as np
from scipy.ndimage import map_coordinates

from .config import StitchConfig
from .geometry import direction_to_pixel, pixel_to_direction
from .image_io import to_rgba
from .projection import LensProjector


def make_test_panorama(width):
    """
    Smooth equirectangular test image.

    Each channel varies linearly with one component of the view
    direction, so the image is continuous across the longitude seam.

    Args:
        width: Panorama width (height is width // 2)

    Returns:
        uint8 RGBA array (width // 2 x width x 4)
    """
    height = width // 2
    rows = np.arange(height, dtype=np.float64)[:, np.newaxis]
    cols = np.arange(width, dtype=np.float64)[np.newaxis, :]
    v = pixel_to_direction(cols, rows, width, height)

    rgb = 127.5 + 100.0 * v
    return to_rgba(np.rint(rgb))


def lens_directions(projector, x, y):
    """
    View directions of source pixels through one lens.

    Inverts the equidistant projection: theta = d / f, and the azimuth
    is measured from "up" toward "right" as in LensProjector. Exact only
    for frames without yaw bias, where up and right are perpendicular
    to the axis.

    Args:
        projector: LensProjector
        x: Source x coordinates (array)
        y: Source y coordinates (array)

    Returns:
        Unit directions (x.shape + (3,))
    """
    dx = np.asarray(x, dtype=np.float64) - projector.cx
    dy = np.asarray(y, dtype=np.float64) - projector.cy

    theta = np.hypot(dx, dy) / projector.focal
    alpha = np.arctan2(dx, -dy)

    basis = projector.basis
    sin_theta = np.sin(theta)[..., np.newaxis]
    radial = (np.cos(alpha)[..., np.newaxis] * basis.up
              + np.sin(alpha)[..., np.newaxis] * basis.right)

    return np.cos(theta)[..., np.newaxis] * basis.axis + sin_theta * radial


def render_dual_fisheye(equirect, size, config=None, crop_circle=False):
    """
    Render a side-by-side dual-fisheye frame from a panorama.

    Args:
        equirect: Equirectangular image (H x 2H x C)
        size: (width, height) of the dual-fisheye frame
        config: StitchConfig describing the lenses (defaults when None)
        crop_circle: Paint pixels outside the lens circles black, like a
            real sensor; otherwise they are rendered from the lens model

    Returns:
        uint8 RGBA array (height x width x 4)
    """
    config = config if config is not None else StitchConfig()
    src_w, src_h = size

    pano = to_rgba(equirect).astype(np.float64)
    pano_h, pano_w = pano.shape[:2]

    left = LensProjector.from_config(config, 'left', src_w, src_h)
    right = LensProjector.from_config(config, 'right', src_w, src_h)

    y, x = np.mgrid[0:src_h, 0:src_w].astype(np.float64)

    # each pixel belongs to the nearer lens center
    d_left = (x - left.cx) ** 2 + (y - left.cy) ** 2
    d_right = (x - right.cx) ** 2 + (y - right.cy) ** 2
    use_right = d_right < d_left

    v = np.where(use_right[..., np.newaxis],
                 lens_directions(right, x, y),
                 lens_directions(left, x, y))

    px, py = direction_to_pixel(v, pano_w, pano_h, config.global_yaw)
    py = np.clip(py, 0, pano_h - 1)

    out = np.empty((src_h, src_w, 3), dtype=np.float64)
    for c in range(3):
        out[..., c] = map_coordinates(pano[..., c], [py, px], order=1, mode='grid-wrap')

    if crop_circle:
        outside = np.minimum(d_left, d_right) > left.radius * left.radius
        out[outside] = 0.0

    return to_rgba(np.rint(out))
