"""
Spherical geometry for dual-fisheye stitching.

World frame: +Z up, the right lens looks along +X and the left lens
along -X. All functions broadcast over NumPy arrays, so a single
direction of shape (3,) and a grid of shape (H, W, 3) are handled alike.
"""

import math
from collections import namedtuple

import numpy as np


LensBasis = namedtuple('LensBasis', ['axis', 'up', 'right'])
LensBasis.__doc__ = """Lens frame: optical axis, image "up", image "right" (orthonormal without yaw bias)."""

WORLD_UP = np.array([0.0, 0.0, 1.0])

# Canonical frames; the left lens mirrors "right" so azimuth grows the
# same way in both images.
_CANONICAL = {
    'right': (np.array([1.0, 0.0, 0.0]), np.array([0.0, 1.0, 0.0])),
    'left': (np.array([-1.0, 0.0, 0.0]), np.array([0.0, -1.0, 0.0])),
}


def rotate_around_axis(v, axis, angle):
    """
    Rotate vector(s) around a unit axis (Rodrigues' formula).

    Args:
        v: Vector(s) to rotate (..., 3)
        axis: Unit rotation axis (3,)
        angle: Rotation angle in radians

    Returns:
        Rotated vector(s), same shape as v
    """
    v = np.asarray(v, dtype=np.float64)
    axis = np.asarray(axis, dtype=np.float64)
    c = math.cos(angle)
    s = math.sin(angle)
    dot = np.sum(v * axis, axis=-1, keepdims=True)
    return v * c + np.cross(axis, v) * s + axis * dot * (1.0 - c)


def build_lens_basis(config, lens):
    """
    Build the frame of one lens from the stitch config.

    Yaw bias turns up/right about the world vertical while the optical
    axis stays fixed, so the frame is only orthogonal when the bias is
    zero. Roll then turns up/right about the axis.

    Args:
        config: StitchConfig
        lens: 'left' or 'right'

    Returns:
        LensBasis
    """
    if lens not in _CANONICAL:
        raise ValueError(f"lens must be 'left' or 'right', got {lens!r}")

    axis, right = _CANONICAL[lens]
    up = WORLD_UP.copy()
    axis = axis.copy()
    right = right.copy()

    yaw_bias = math.radians(config.yaw_bias_deg[lens])
    if yaw_bias != 0.0:
        up = rotate_around_axis(up, WORLD_UP, yaw_bias)
        right = rotate_around_axis(right, WORLD_UP, yaw_bias)

    roll = math.radians(config.roll_deg[lens])
    if roll != 0.0:
        up = rotate_around_axis(up, axis, roll)
        right = rotate_around_axis(right, axis, roll)

    for vec in (axis, up, right):
        vec.setflags(write=False)

    return LensBasis(axis, up, right)


def pixel_to_direction(px, py, width, height, global_yaw=0.0):
    """
    Unit view direction of an equirectangular pixel.

    Row 0 is latitude -pi/2, column 0 is longitude -pi (plus global yaw).

    Args:
        px: Column(s), scalar or array
        py: Row(s), scalar or array broadcastable with px
        width: Panorama width W
        height: Panorama height H
        global_yaw: Longitude offset in radians

    Returns:
        Direction(s) of shape broadcast(px, py) + (3,)
    """
    px = np.asarray(px, dtype=np.float64)
    py = np.asarray(py, dtype=np.float64)

    lat = (py / height) * np.pi - np.pi / 2
    lon = (px / width) * 2 * np.pi - np.pi + global_yaw

    lat, lon = np.broadcast_arrays(lat, lon)
    cos_lat = np.cos(lat)

    return np.stack([
        cos_lat * np.cos(lon),
        cos_lat * np.sin(lon),
        np.sin(lat),
    ], axis=-1)


def direction_grid(width, height, row_start=0, row_end=None, global_yaw=0.0):
    """
    Directions for a band of panorama rows.

    Returns:
        Array (row_end - row_start, width, 3)
    """
    if row_end is None:
        row_end = height
    rows = np.arange(row_start, row_end, dtype=np.float64)[:, np.newaxis]
    cols = np.arange(width, dtype=np.float64)[np.newaxis, :]
    return pixel_to_direction(cols, rows, width, height, global_yaw)


def direction_to_pixel(v, width, height, global_yaw=0.0):
    """
    Equirectangular pixel coordinates of unit direction(s).

    Inverse of pixel_to_direction: x = W(lon + pi) / 2pi,
    y = H(lat + pi/2) / pi, with x wrapped into [0, W).

    Returns:
        (x, y) arrays
    """
    v = np.asarray(v, dtype=np.float64)
    lon = np.arctan2(v[..., 1], v[..., 0]) - global_yaw
    lat = np.arcsin(np.clip(v[..., 2], -1.0, 1.0))

    x = np.mod(width * (lon + np.pi) / (2 * np.pi), width)
    y = height * (lat + np.pi / 2) / np.pi
    return x, y
