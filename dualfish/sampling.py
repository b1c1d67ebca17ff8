"""
Bilinear resampling of source rasters at fractional coordinates.
"""

import numpy as np


def bilinear_sample(image, x, y):
    """
    Bilinear interpolation with a border-clamped 2x2 footprint.

    The base pixel is clamped to [0, w-2] x [0, h-2], so coordinates near
    or past the border saturate instead of reading outside the image.

    Args:
        image: Source image (H x W x C) or (H x W), at least 2x2
        x: X coordinates, scalar or array
        y: Y coordinates, same shape as x

    Returns:
        Interpolated values as float64, shape x.shape + (C,) for color
        images and x.shape for grayscale
    """
    h, w = image.shape[:2]
    if h < 2 or w < 2:
        raise ValueError(f"Bilinear sampling needs at least a 2x2 image, got {w}x{h}")

    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)

    # Get integer coordinates
    x0 = np.clip(np.floor(x), 0, w - 2).astype(np.intp)
    y0 = np.clip(np.floor(y), 0, h - 2).astype(np.intp)
    x1 = x0 + 1
    y1 = y0 + 1

    # Get fractional parts; past the border they saturate at the edge pixel
    fx = np.clip(x - x0, 0.0, 1.0)
    fy = np.clip(y - y0, 0.0, 1.0)

    w00 = (1 - fx) * (1 - fy)
    w01 = (1 - fx) * fy
    w10 = fx * (1 - fy)
    w11 = fx * fy

    if image.ndim == 3:
        w00 = w00[..., np.newaxis]
        w01 = w01[..., np.newaxis]
        w10 = w10[..., np.newaxis]
        w11 = w11[..., np.newaxis]

    I00 = image[y0, x0].astype(np.float64)
    I01 = image[y1, x0].astype(np.float64)
    I10 = image[y0, x1].astype(np.float64)
    I11 = image[y1, x1].astype(np.float64)

    return w00 * I00 + w01 * I01 + w10 * I10 + w11 * I11


def sample_rgb(image, x, y):
    """Bilinear RGB color(s) from an RGBA or RGB source; alpha is ignored."""
    return bilinear_sample(image[..., :3], x, y)
