"""
Dual-fisheye to equirectangular panorama stitching.

This package converts a side-by-side dual-fisheye frame (two overlapping
hemispherical lens images) into a 2:1 equirectangular panorama using
NumPy, SciPy, and Pillow.

Main components:
- StitchConfig: Immutable lens geometry and blend parameters
- Geometry: Lens frames and panorama pixel <-> direction mapping
- LensProjector: Equidistant fisheye projection (r = f * theta)
- FeatherBlender: Weighted overlap blend with coverage fallback
- DualFisheyeStitcher: Chunked, cancellable stitching pipeline

Example usage:
    from dualfish.image_io import read_image, write_image
    from dualfish.stitcher import DualFisheyeStitcher
    from dualfish.config import StitchConfig

    source = read_image('dual_fisheye.jpg')
    stitcher = DualFisheyeStitcher(StitchConfig(fov_deg=200))
    panorama = stitcher.stitch(source)
    write_image('panorama.png', panorama)
"""

__version__ = '1.0.0'

from .config import StitchConfig, ConfigError
from .geometry import LensBasis, build_lens_basis, pixel_to_direction, direction_to_pixel
from .projection import LensProjector, LensSample
from .sampling import bilinear_sample
from .blending import FeatherBlender
from .stitcher import DualFisheyeStitcher, StitchCancelled, stitch
from .image_io import read_image, write_image, to_rgba

__all__ = [
    'StitchConfig',
    'ConfigError',
    'LensBasis',
    'build_lens_basis',
    'pixel_to_direction',
    'direction_to_pixel',
    'LensProjector',
    'LensSample',
    'bilinear_sample',
    'FeatherBlender',
    'DualFisheyeStitcher',
    'StitchCancelled',
    'stitch',
    'read_image',
    'write_image',
    'to_rgba',
]
