"""
Feather blending of the two lens contributions into panorama pixels.
"""

import numpy as np

from .sampling import sample_rgb


class FeatherBlender:
    """
    Combines left and right lens samples into final RGBA pixels.

    Where both lenses see a direction the colors are averaged by their
    feather weights, so the seam fades out toward each lens's edge.
    Directions that neither lens claims fall back to the lens on the
    same side of the X axis, projected without the lens-circle crop.
    """

    def __init__(self, enable=True):
        """
        Initialize Feather Blender.

        Args:
            enable: Weighted overlap blend; when False the lens whose
                optical axis is nearer wins (hard seam)
        """
        self.enable = enable

    def composite(self, source, directions, left, right, left_sample, right_sample):
        """
        Blend one block of panorama pixels.

        Args:
            source: Source RGBA image (H x W x 4)
            directions: View directions of the block (..., 3)
            left: LensProjector of the left lens
            right: LensProjector of the right lens
            left_sample: LensSample of the left lens for directions
            right_sample: LensSample of the right lens for directions

        Returns:
            uint8 RGBA pixels, shape directions.shape[:-1] + (4,)
        """
        w_left = left_sample.weight
        w_right = right_sample.weight

        if not self.enable:
            # nearer optical axis wins, so ties at gamma = 0 split at the midline
            both = (w_left > 0) & (w_right > 0)
            use_right = np.where(both,
                                 right.incidence_angle(directions) <= left.incidence_angle(directions),
                                 w_right > 0)
            w_right = np.where(use_right, w_right, 0.0)
            w_left = np.where(use_right, 0.0, w_left)

        color_left = sample_rgb(source, left_sample.sx, left_sample.sy)
        color_right = sample_rgb(source, right_sample.sx, right_sample.sy)

        wsum = w_left + w_right
        blended = color_left * w_left[..., np.newaxis] + color_right * w_right[..., np.newaxis]

        covered = wsum > 0
        rgb = np.zeros(blended.shape, dtype=np.float64)
        rgb[covered] = blended[covered] / wsum[covered][..., np.newaxis]

        uncovered = ~covered
        if np.any(uncovered):
            rgb[uncovered] = self._fallback(source, directions[uncovered], left, right)

        return self._to_rgba(rgb)

    def _fallback(self, source, directions, left, right):
        """
        Colors for directions with no usable lens weight.

        The lens is chosen by hemisphere (right lens for x >= 0) and the
        direction is projected without the lens-circle crop, so the
        whole sphere gets a color even when the lenses do not overlap.
        """
        use_right = directions[..., 0] >= 0

        sx_r, sy_r = right.project_unclamped(directions)
        sx_l, sy_l = left.project_unclamped(directions)
        sx = np.where(use_right, sx_r, sx_l)
        sy = np.where(use_right, sy_r, sy_l)

        return sample_rgb(source, sx, sy)

    @staticmethod
    def _to_rgba(rgb):
        out = np.empty(rgb.shape[:-1] + (4,), dtype=np.uint8)
        out[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
        out[..., 3] = 255
        return out
