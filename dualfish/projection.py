"""
Equidistant fisheye projection (r = f * theta) of view directions into
one lens of a dual-fisheye source image.
"""

from collections import namedtuple

import numpy as np

from .geometry import build_lens_basis


LensSample = namedtuple('LensSample', ['sx', 'sy', 'weight', 'covered'])
LensSample.__doc__ = """Source coordinates, feather weight and coverage mask for one lens."""


def lens_radius(src_width, src_height, radius_scale):
    """Accepted lens circle radius for a side-by-side dual-fisheye frame."""
    return min(src_width * 0.25, src_height * 0.5) * radius_scale


class LensProjector:
    """
    Projects unit view directions into one lens's source-pixel coordinates.

    All constants (basis, center, radius, focal scale) are fixed at
    construction; project() is a pure function of the directions.
    """

    def __init__(self, basis, center, radius, half_fov, gamma=1.0, name=None):
        """
        Initialize Lens Projector.

        Args:
            basis: LensBasis of the lens
            center: (cx, cy) optical center in source pixels
            radius: Lens circle radius in source pixels
            half_fov: Half field of view in radians
            gamma: Feather falloff exponent
            name: Optional lens name for logging
        """
        self.basis = basis
        self.cx, self.cy = float(center[0]), float(center[1])
        self.radius = float(radius)
        self.half_fov = float(half_fov)
        self.focal = self.radius / self.half_fov
        self.gamma = float(gamma)
        self.name = name

    @classmethod
    def from_config(cls, config, lens, src_width, src_height):
        """Build the projector of 'left' or 'right' lens for a source size."""
        nx, ny = config.centers[lens]
        return cls(
            basis=build_lens_basis(config, lens),
            center=(src_width * nx, src_height * ny),
            radius=lens_radius(src_width, src_height, config.radius_scale),
            half_fov=config.half_fov,
            gamma=config.blend_gamma,
            name=lens,
        )

    def __repr__(self):
        return (f"LensProjector(name={self.name!r}, center=({self.cx:.1f}, {self.cy:.1f}), "
                f"radius={self.radius:.1f}, half_fov={self.half_fov:.4f})")

    def incidence_angle(self, v):
        """Angle between direction(s) and the optical axis, in radians."""
        dot = np.asarray(v, dtype=np.float64) @ self.basis.axis
        return np.arccos(np.clip(dot, -1.0, 1.0))

    def feather_weight(self, theta):
        """
        Blend weight max(0, 1 - theta/half_fov) ** gamma.

        1 on the optical axis, 0 at the edge of the field of view.
        """
        w = np.maximum(0.0, 1.0 - np.asarray(theta, dtype=np.float64) / self.half_fov)
        return np.power(w, self.gamma)

    def _to_source(self, v, theta):
        v = np.asarray(v, dtype=np.float64)
        # alpha = 0 along "up", growing toward "right"
        alpha = np.arctan2(v @ self.basis.right, v @ self.basis.up)
        dist = self.focal * theta
        sx = self.cx + dist * np.sin(alpha)
        sy = self.cy - dist * np.cos(alpha)
        return sx, sy

    def project(self, v):
        """
        Project direction(s) into this lens.

        Directions outside the field of view or outside the lens circle
        are reported as not covered; their weight is 0.

        Args:
            v: Unit direction(s) (..., 3)

        Returns:
            LensSample of arrays with shape v.shape[:-1]
        """
        theta = self.incidence_angle(v)
        sx, sy = self._to_source(v, theta)

        dx = sx - self.cx
        dy = sy - self.cy
        covered = (theta <= self.half_fov) & (dx * dx + dy * dy <= self.radius * self.radius)

        weight = np.where(covered, self.feather_weight(theta), 0.0)
        return LensSample(sx, sy, weight, covered)

    def project_unclamped(self, v):
        """
        Source coordinates without field-of-view or lens-circle rejection.

        Returns:
            (sx, sy) arrays
        """
        return self._to_source(v, self.incidence_angle(v))
