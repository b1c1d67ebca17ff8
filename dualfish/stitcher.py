"""
Dual-fisheye to equirectangular stitching pipeline.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from .blending import FeatherBlender
from .config import StitchConfig
from .geometry import direction_grid
from .projection import LensProjector


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_ROWS = 32


class StitchCancelled(Exception):
    """Raised when a stitch is cancelled between row chunks."""


def validate_source(source):
    """
    Check that an array can be used as a dual-fisheye source.

    Raises:
        ValueError: On an empty, too small or badly shaped raster
    """
    if not isinstance(source, np.ndarray):
        raise ValueError(f"Source raster must be a numpy array, got {type(source).__name__}")
    if source.ndim != 3 or source.shape[2] not in (3, 4):
        raise ValueError(f"Source raster must be H x W x 3 or H x W x 4, got shape {source.shape}")

    h, w = source.shape[:2]
    if h == 0 or w == 0:
        raise ValueError(f"Source raster is empty ({w}x{h})")
    if h < 2 or w < 2:
        raise ValueError(f"Source raster must be at least 2x2 pixels, got {w}x{h}")


class DualFisheyeStitcher:
    """
    Complete dual-fisheye stitching pipeline.

    This class coordinates all components:
    1. Lens frames from the config (yaw bias, roll)
    2. Panorama pixel -> view direction
    3. Equidistant projection into each lens
    4. Bilinear sampling and feather blending

    Rows are processed in chunks. iter_chunks() hands control back to the
    caller after every chunk; stitch() drives it to completion.
    """

    def __init__(self, config=None, chunk_rows=DEFAULT_CHUNK_ROWS, workers=1):
        """
        Initialize Dual Fisheye Stitcher.

        Args:
            config: StitchConfig (defaults when None)
            chunk_rows: Panorama rows rendered per step
            workers: Number of threads rendering disjoint row chunks
        """
        if chunk_rows < 1:
            raise ValueError(f"chunk_rows must be >= 1, got {chunk_rows}")
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")

        self.config = config if config is not None else StitchConfig()
        self.chunk_rows = int(chunk_rows)
        self.workers = int(workers)
        self.blender = FeatherBlender(enable=self.config.blend_enable)

    def prepare(self, source):
        """
        Validate the source and derive per-call constants.

        Returns:
            (left, right, output) projectors and an empty output raster
        """
        validate_source(source)
        src_h, src_w = source.shape[:2]
        pano_w, pano_h = self.config.output_size(src_w)

        left = LensProjector.from_config(self.config, 'left', src_w, src_h)
        right = LensProjector.from_config(self.config, 'right', src_w, src_h)

        output = np.zeros((pano_h, pano_w, 4), dtype=np.uint8)
        return left, right, output

    def render_rows(self, source, output, left, right, row_start, row_end):
        """
        Render panorama rows [row_start, row_end) into output.

        Each pixel depends only on the source and the projectors, so
        disjoint row ranges can be rendered in any order or concurrently.
        """
        if np.shares_memory(source, output):
            raise ValueError("Source and output rasters must be distinct buffers")

        pano_h, pano_w = output.shape[:2]
        directions = direction_grid(pano_w, pano_h, row_start, row_end,
                                    self.config.global_yaw)

        left_sample = left.project(directions)
        right_sample = right.project(directions)

        output[row_start:row_end] = self.blender.composite(
            source, directions, left, right, left_sample, right_sample
        )

    def iter_chunks(self, source, output=None, cancel_event=None):
        """
        Stitch chunk by chunk, yielding after each finished chunk.

        Args:
            source: Source RGB(A) image (H x W x C)
            output: Optional preallocated output (pano_h x pano_w x 4, uint8)
            cancel_event: Optional threading.Event checked between chunks

        Yields:
            (row_start, row_end, output) for each completed chunk; rows
            before row_end are final
        """
        left, right, fresh = self.prepare(source)
        if output is None:
            output = fresh
        elif output.shape != fresh.shape or output.dtype != np.uint8:
            raise ValueError(
                f"Output raster must be uint8 with shape {fresh.shape}, got "
                f"{output.dtype} {output.shape}"
            )

        pano_h = output.shape[0]
        for row_start in range(0, pano_h, self.chunk_rows):
            if cancel_event is not None and cancel_event.is_set():
                raise StitchCancelled(f"Stitch cancelled at row {row_start}/{pano_h}")

            row_end = min(row_start + self.chunk_rows, pano_h)
            self.render_rows(source, output, left, right, row_start, row_end)
            logger.debug("Rows %d-%d of %d done", row_start, row_end, pano_h)
            yield row_start, row_end, output

    def stitch(self, source, cancel_event=None, progress=None):
        """
        Stitch a dual-fisheye image into an equirectangular panorama.

        Args:
            source: Source RGB(A) image (H x W x C), left lens on the left
            cancel_event: Optional threading.Event; setting it stops the
                stitch at the next chunk boundary
            progress: Optional callback progress(rows_done, total_rows)

        Returns:
            Panorama as uint8 RGBA array (H x 2H x 4)

        Raises:
            StitchCancelled: If cancel_event was set before completion
        """
        logger.info("Stitch params: %s", self.config.to_dict())
        start_time = time.time()

        if self.workers > 1:
            output = self._stitch_parallel(source, cancel_event, progress)
        else:
            output = None
            for _, row_end, output in self.iter_chunks(source, cancel_event=cancel_event):
                if progress is not None:
                    progress(row_end, output.shape[0])

        logger.info("Stitching complete: %dx%d in %.2f seconds",
                    output.shape[1], output.shape[0], time.time() - start_time)
        return output

    def _stitch_parallel(self, source, cancel_event, progress):
        left, right, output = self.prepare(source)
        pano_h = output.shape[0]
        chunks = [(start, min(start + self.chunk_rows, pano_h))
                  for start in range(0, pano_h, self.chunk_rows)]

        def run_one(chunk):
            if cancel_event is not None and cancel_event.is_set():
                return False
            self.render_rows(source, output, left, right, *chunk)
            return True

        rows_done = 0
        with ThreadPoolExecutor(max_workers=self.workers) as ex:
            for chunk, finished in zip(chunks, ex.map(run_one, chunks)):
                if not finished:
                    continue
                rows_done += chunk[1] - chunk[0]
                if progress is not None:
                    progress(rows_done, pano_h)

        if rows_done < pano_h:
            raise StitchCancelled(f"Stitch cancelled after {rows_done}/{pano_h} rows")

        return output


def stitch(source, config=None, **kwargs):
    """
    Convert a dual-fisheye image to an equirectangular panorama.

    Shortcut for DualFisheyeStitcher(config, **kwargs).stitch(source).
    """
    return DualFisheyeStitcher(config, **kwargs).stitch(source)
