"""
In-memory rendering collaborator for engine tests.

Holds one stack of numpy images per side, per-slice annotation lists, viewport
transforms, and counters for every call the engine makes. Slice loads can be
delayed by a number of index queries to mimic asynchronous loading.
"""

import os
import sys
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from core.compare_models import LEFT, RIGHT, SIDES
from core.geometry import BBox, polygon_mask, get_bounding_box
from core.renderer_interface import (
    AnnotationData,
    ElementNotEnabledError,
    RenderingCollaborator,
    ViewportTransform,
)


def square(left: float, top: float, right: float, bottom: float) -> List[Tuple[float, float]]:
    return [(left, top), (right, top), (right, bottom), (left, bottom)]


class FakeRenderer(RenderingCollaborator):
    """RenderingCollaborator backed by plain dictionaries."""

    def __init__(self, width: int = 64, height: int = 64, stack_size: int = 10,
                 spacing: Optional[Dict[str, float]] = None):
        spacing = spacing or {}
        self.enabled = {LEFT: True, RIGHT: True}
        self.stacks: Dict[str, List[np.ndarray]] = {
            side: [np.zeros((height, width), dtype=np.float32) for _ in range(stack_size)]
            for side in SIDES
        }
        self.image_versions: Dict[str, Dict[int, int]] = {side: {} for side in SIDES}
        self.current_index = {LEFT: 0, RIGHT: 0}
        self.viewports = {
            side: ViewportTransform(
                column_pixel_spacing=spacing.get(side, 1.0),
                row_pixel_spacing=spacing.get(side, 1.0),
                displayed_width=width,
                displayed_height=height,
            )
            for side in SIDES
        }
        self.annotations: Dict[str, Dict[int, List[AnnotationData]]] = {side: {} for side in SIDES}

        # Number of index queries before a requested slice becomes current
        self.load_latency = {LEFT: 0, RIGHT: 0}
        self._pending: Dict[str, Tuple[int, int]] = {}
        self.never_load = {LEFT: False, RIGHT: False}

        self.sample_calls: List[Tuple[str, BBox]] = []
        self.slice_requests: List[Tuple[str, int]] = []
        self.viewport_sets: List[str] = []
        self.redraws: List[str] = []
        self.overlays: Dict[str, dict] = {}
        self.cursor_syncs: List[Tuple[str, str]] = []
        self.stats_refreshes: List[Tuple[str, str]] = []
        self.replaced_images: List[Tuple[str, int, object]] = []
        self.visibility_changes: List[Tuple[str, str, bool]] = []

    # Helpers for tests

    def _check(self, side: str) -> None:
        if not self.enabled[side]:
            raise ElementNotEnabledError(f"{side} viewport is not enabled")

    def fill(self, side: str, value: float, index: Optional[int] = None) -> None:
        indices = range(len(self.stacks[side])) if index is None else [index]
        for i in indices:
            self.stacks[side][i][:, :] = value

    def current_image(self, side: str) -> np.ndarray:
        return self.stacks[side][self.current_index[side]]

    def annotation_list(self, side: str) -> List[AnnotationData]:
        return self.annotations[side].setdefault(self.current_index[side], [])

    def draw(self, side: str, data: AnnotationData) -> AnnotationData:
        """Simulate the drawing tool adding or replacing a ROI on the current slice."""
        rois = self.annotation_list(side)
        rois[:] = [roi for roi in rois if roi.uuid != data.uuid]
        rois.append(data)
        return data

    def find(self, side: str, uuid: str) -> Optional[AnnotationData]:
        for roi in self.annotation_list(side):
            if roi.uuid == uuid:
                return roi
        return None

    # Viewport

    def get_viewport_transform(self, side: str) -> ViewportTransform:
        self._check(side)
        return self.viewports[side].copy()

    def set_viewport_transform(self, side: str, transform: ViewportTransform) -> None:
        self._check(side)
        self.viewports[side] = transform.copy()
        self.viewport_sets.append(side)

    # Stack

    def get_current_slice_index(self, side: str) -> int:
        self._check(side)
        pending = self._pending.get(side)
        if pending is not None:
            index, remaining = pending
            if remaining <= 1:
                self.current_index[side] = index
                del self._pending[side]
            else:
                self._pending[side] = (index, remaining - 1)
        return self.current_index[side]

    def get_stack_size(self, side: str) -> int:
        self._check(side)
        return len(self.stacks[side])

    def request_slice_index(self, side: str, index: int) -> None:
        self._check(side)
        self.slice_requests.append((side, index))
        if self.never_load[side]:
            return
        if self.load_latency[side] <= 0:
            self.current_index[side] = index
        else:
            self._pending[side] = (index, self.load_latency[side])

    def replace_stack_image(self, side: str, index: int, image_ref: object) -> None:
        self.replaced_images.append((side, index, image_ref))
        versions = self.image_versions[side]
        versions[index] = versions.get(index, 0) + 1

    # Annotations

    def get_annotation_set(self, side: str) -> Optional[List[AnnotationData]]:
        self._check(side)
        rois = self.annotations[side].get(self.current_index[side])
        return list(rois) if rois else None

    def add_annotation(self, side: str, data: AnnotationData) -> None:
        self.annotation_list(side).append(data)

    def remove_annotation(self, side: str, uuid: str) -> None:
        for rois in self.annotations[side].values():
            rois[:] = [roi for roi in rois if roi.uuid != uuid]

    def clear_annotations(self, side: str) -> None:
        self.annotations[side][self.current_index[side]] = []

    def set_annotation_visibility(self, side: str, uuid: str, visible: bool) -> None:
        self.visibility_changes.append((side, uuid, visible))
        roi = self.find(side, uuid)
        if roi is not None:
            roi.visible = visible

    def refresh_annotation_stats(self, side: str, data: AnnotationData) -> None:
        self.stats_refreshes.append((side, data.uuid))
        bbox = get_bounding_box(data.points)
        mask = polygon_mask(data.points, bbox)
        window = np.asarray(self.sample_window(side, bbox))
        values = window[mask]
        data.count = int(values.size)
        data.mean = float(values.mean()) if values.size else 0.0
        data.variance = float(values.var()) if values.size else 0.0

    def sync_cursor_handle(self, source_side: str, target_side: str) -> None:
        self.cursor_syncs.append((source_side, target_side))

    # Pixels

    def sample_window(self, side: str, bbox: BBox) -> np.ndarray:
        image = self.current_image(side)
        height, width = image.shape
        window = np.zeros((max(bbox.height, 0), max(bbox.width, 0)), dtype=np.float32)
        for row in range(window.shape[0]):
            y = bbox.top + row
            if not 0 <= y < height:
                continue
            for col in range(window.shape[1]):
                x = bbox.left + col
                if 0 <= x < width:
                    window[row, col] = image[y, x]
        return window

    def sample_pixels(self, side: str, bbox: BBox) -> Sequence[float]:
        self._check(side)
        self.sample_calls.append((side, bbox))
        return self.sample_window(side, bbox).ravel().tolist()

    def get_image_identity(self, side: str) -> Optional[str]:
        if not self.enabled[side]:
            return None
        index = self.current_index[side]
        return f"{side}:{index}:{self.image_versions[side].get(index, 0)}"

    def get_image_size(self, side: str) -> Tuple[int, int]:
        self._check(side)
        height, width = self.current_image(side).shape
        return width, height

    def get_image_pixels(self, side: str) -> np.ndarray:
        self._check(side)
        return self.current_image(side).copy()

    # Output

    def set_overlay(self, side: str, raster: np.ndarray, opacity: float, colormap: str,
                    visible: bool) -> None:
        self.overlays[side] = {
            "raster": raster,
            "opacity": opacity,
            "colormap": colormap,
            "visible": visible,
        }

    def request_redraw(self, side: str) -> None:
        self.redraws.append(side)


class ManualScheduler:
    """Collects deferred callbacks so tests can run them explicitly."""

    def __init__(self):
        self.calls: List[Tuple[int, object]] = []

    def __call__(self, delay_ms: int, callback) -> None:
        self.calls.append((delay_ms, callback))

    def run_all(self, limit: int = 1000) -> int:
        """Run queued callbacks (including ones they enqueue); returns how many ran."""
        ran = 0
        while self.calls and ran < limit:
            _, callback = self.calls.pop(0)
            callback()
            ran += 1
        return ran
