"""
Difference Computer

This module computes the registered per-pixel intensity difference
(left - right) inside every ROI on the displayed slice of one side, caches it
on the ROI record, and produces the 8-bit overlay raster handed to the
renderer.

A cached DiffData is reused only while the image identities it was computed
from match both sides' current images and its points match the ROI polygon
point for point.

Inputs:
    - ROI records of the current slice (from ViewportState)
    - Pixel windows sampled from both sides through the rendering collaborator
    - Both sides' viewport transforms and offsets

Outputs:
    - uint8 raster (image height, image width), zero outside ROIs
    - DiffData cached on each RoiRecord
    - A deferred statistics request after every overlay with ROIs

Requirements:
    - numpy for window arithmetic
    - core.image_resampler for spacing-ratio resampling
"""

from typing import Callable, Dict, Optional

import numpy as np

from core.compare_models import LEFT, DiffData, DiffPoint, RoiRecord, other_side
from core.coordinate_mapper import build_translate_points, calculate_scale_ratio
from core.geometry import get_bounding_box, points_equal, polygon_mask, rescale_bounding_box
from core.image_resampler import ImageResampler
from core.renderer_interface import ElementNotEnabledError, RenderingCollaborator
from core.viewport_state import ViewportState
from utils.debug_log import debug_log, sync_debug


class DiffComputer:
    """
    Cache-validated difference overlay for one or both sides.

    Responsibilities:
    - Decide per ROI whether the cached DiffData is still valid
    - Sample, map, resample and mask both sides' windows on a cache miss
    - Normalize differences into the overlay raster
    - Request a statistics pass after each overlay that contains ROIs
    """

    def __init__(self, renderer: RenderingCollaborator, states: Dict[str, ViewportState],
                 resampler: Optional[ImageResampler] = None,
                 request_stats_update: Optional[Callable[[], None]] = None):
        """
        Initialize the difference computer.

        Args:
            renderer: Rendering collaborator providing pixels and image identity
            states: Side -> ViewportState map
            resampler: Window resampling backend (bilinear PIL by default)
            request_stats_update: Called once per overlay that contains ROIs;
                the caller is expected to defer the statistics pass
        """
        self.renderer = renderer
        self.states = states
        self.resampler = resampler if resampler is not None else ImageResampler()
        self.request_stats_update = request_stats_update
        self.recompute_count = 0

    def is_cache_valid(self, side: str, record: RoiRecord) -> bool:
        """
        Check whether a record's cached difference can be reused.

        Args:
            side: Side owning the record
            record: ROI record to check

        Returns:
            True if both image identities and the polygon still match
        """
        diff_data = record.diff_data
        if diff_data is None:
            return False
        if diff_data.source_image_id != self.renderer.get_image_identity(side):
            return False
        if diff_data.other_image_id != self.renderer.get_image_identity(other_side(side)):
            return False
        return points_equal(diff_data.points, record.points)

    def invalidate(self) -> int:
        """
        Drop every cached difference on both sides.

        Used when the alignment between the sides changes (manual nudge or
        registration), which the image identity and polygon do not capture.

        Returns:
            Number of records whose cache was dropped
        """
        dropped = 0
        for state in self.states.values():
            for roi_map in state.roi_by_stack.values():
                for record in roi_map.values():
                    if record.diff_data is not None:
                        record.diff_data = None
                        dropped += 1
        return dropped

    def compute_overlay(self, side: str) -> np.ndarray:
        """
        Build the difference overlay raster for one side.

        Args:
            side: Side whose overlay is produced

        Returns:
            uint8 array of shape (image height, image width)
        """
        try:
            width, height = self.renderer.get_image_size(side)
        except ElementNotEnabledError:
            return np.zeros((0, 0), dtype=np.uint8)

        raster = np.zeros((height, width), dtype=np.uint8)
        roi_map = self.states[side].current_stack_points()
        if not roi_map:
            return raster

        for record in list(roi_map.values()):
            if not self.is_cache_valid(side, record):
                try:
                    record.diff_data = self._compute_diff(side, record, width, height)
                except ElementNotEnabledError:
                    sync_debug(f"diff skipped for {record.uuid}: {other_side(side)} not enabled")
                    continue
            self._paint(raster, record)

        if self.request_stats_update is not None:
            self.request_stats_update()
        return raster

    def _compute_diff(self, side: str, record: RoiRecord, image_width: int,
                      image_height: int) -> DiffData:
        """Recompute one ROI's difference data from freshly sampled windows."""
        self.recompute_count += 1
        image_id = self.renderer.get_image_identity(side)
        other_image_id = self.renderer.get_image_identity(other_side(side))
        if len(record.points) < 3:
            return DiffData([], 0.0, 0.0, 0.0, record.points, image_id, other_image_id)

        target_side = other_side(side)
        bbox = get_bounding_box(record.points)
        if bbox.width <= 0 or bbox.height <= 0:
            return DiffData([], 0.0, 0.0, 0.0, record.points, image_id, other_image_id)

        own_window = self.resampler.to_window(
            self.renderer.sample_pixels(side, bbox), (bbox.width, bbox.height)
        )

        own_viewport = self.renderer.get_viewport_transform(side)
        other_viewport = self.renderer.get_viewport_transform(target_side)
        translate = build_translate_points(
            self.states[side], self.states[target_side], own_viewport, other_viewport
        )
        other_bbox = rescale_bounding_box(bbox, translate)
        if other_bbox.width <= 0 or other_bbox.height <= 0:
            return DiffData([], 0.0, 0.0, 0.0, record.points, image_id, other_image_id)

        other_pixels = self.renderer.sample_pixels(target_side, other_bbox)
        ratio = calculate_scale_ratio(own_viewport, other_viewport)
        other_size = (other_bbox.width, other_bbox.height)
        if ratio != 1 or other_size != (bbox.width, bbox.height):
            other_window = self.resampler.resample(other_pixels, other_size, (bbox.width, bbox.height))
        else:
            other_window = self.resampler.to_window(other_pixels, other_size)

        if side == LEFT:
            left_window, right_window = own_window, other_window
        else:
            left_window, right_window = other_window, own_window
        diff_window = left_window - right_window

        mask = polygon_mask(record.points, bbox)
        ys, xs = np.nonzero(mask)
        xs = xs + bbox.left
        ys = ys + bbox.top
        in_image = (xs >= 0) & (xs < image_width) & (ys >= 0) & (ys < image_height)
        rows = ys[in_image] - bbox.top
        cols = xs[in_image] - bbox.left
        xs = xs[in_image]
        ys = ys[in_image]

        diffs = diff_window[rows, cols].astype(np.float64)
        lefts = left_window[rows, cols].astype(np.float64)
        rights = right_window[rows, cols].astype(np.float64)

        if diffs.size == 0:
            debug_log(
                "diff_computer.py:_compute_diff",
                "ROI covers no image pixels",
                {"side": side, "uuid": record.uuid},
                hypothesis_id="diff-degenerate",
            )
            return DiffData([], 0.0, 0.0, 0.0, record.points, image_id, other_image_id)

        if not np.all(np.isfinite(diffs)):
            print(f"Warning: non-finite pixel values in ROI {record.uuid} on {side}; skipping")
            debug_log(
                "diff_computer.py:_compute_diff",
                "non-finite difference values",
                {"side": side, "uuid": record.uuid},
                hypothesis_id="diff-degenerate",
            )
            return DiffData([], 0.0, 0.0, 0.0, record.points, image_id, other_image_id)

        array = [
            DiffPoint(int(x), int(y), float(lv), float(rv), int(y) * image_width + int(x))
            for x, y, lv, rv in zip(xs, ys, lefts, rights)
        ]
        sync_debug(f"diff recomputed for {record.uuid} on {side}: {len(array)} pixel(s)")
        return DiffData(
            array,
            float(diffs.min()),
            float(diffs.max()),
            float(diffs.sum()),
            record.points,
            image_id,
            other_image_id,
        )

    def _paint(self, raster: np.ndarray, record: RoiRecord) -> None:
        """Write one ROI's normalized differences into the raster."""
        diff_data = record.diff_data
        if diff_data is None or diff_data.is_empty():
            return
        value_range = diff_data.max - diff_data.min
        if value_range == 0:
            # Uniform difference: nothing to normalize against
            debug_log(
                "diff_computer.py:_paint",
                "uniform difference range, ROI not painted",
                {"uuid": record.uuid, "value": diff_data.min},
                hypothesis_id="diff-degenerate",
            )
            return

        height, width = raster.shape
        for point in diff_data.array:
            if 0 <= point.x < width and 0 <= point.y < height:
                value = int(np.floor((point.diff - diff_data.min) / value_range * 255))
                raster[point.y, point.x] = min(max(value, 0), 255)
