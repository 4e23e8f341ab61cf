"""
Rendering Collaborator Interface

This module defines the contract between the comparison engine and the
external rendering/annotation library that paints both viewports, owns the
freehand drawing tool and loads slices.

Inputs:
    - Side identifiers ("left" / "right")

Outputs:
    - ViewportTransform and AnnotationData snapshots
    - Abstract RenderingCollaborator that concrete renderers implement

Requirements:
    - numpy for pixel buffers
    - core.geometry for polygon area and bounding boxes
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import numpy as np

from core.geometry import BBox, Point, copy_points, polygon_area


class ElementNotEnabledError(RuntimeError):
    """Raised by a collaborator when a side has no enabled element or stack yet."""


class ViewportTransform:
    """
    Snapshot of one viewport's display transform.

    translation is in image pixels; displayed_width/height are the extent of
    the displayed area (its bottom-right corner).
    """

    def __init__(self, scale: float = 1.0, translation_x: float = 0.0, translation_y: float = 0.0,
                 rotation: float = 0.0, column_pixel_spacing: float = 1.0,
                 row_pixel_spacing: float = 1.0, displayed_width: float = 0.0,
                 displayed_height: float = 0.0):
        self.scale = scale
        self.translation_x = translation_x
        self.translation_y = translation_y
        self.rotation = rotation
        self.column_pixel_spacing = column_pixel_spacing
        self.row_pixel_spacing = row_pixel_spacing
        self.displayed_width = displayed_width
        self.displayed_height = displayed_height

    def copy(self) -> "ViewportTransform":
        return ViewportTransform(
            scale=self.scale,
            translation_x=self.translation_x,
            translation_y=self.translation_y,
            rotation=self.rotation,
            column_pixel_spacing=self.column_pixel_spacing,
            row_pixel_spacing=self.row_pixel_spacing,
            displayed_width=self.displayed_width,
            displayed_height=self.displayed_height,
        )


class AnnotationData:
    """
    Snapshot of one freehand ROI as held by the drawing tool.

    Args:
        uuid: Identifier assigned by the drawing tool (or the reconciler for copies)
        points: Polygon handles as (x, y) tuples
        area: Polygon area reported by the tool; computed when omitted
        can_complete: True when the tool flags the polygon as closable
        visible: Whether the polygon is drawn
        count/mean/variance: Intensity statistics cached by the tool
    """

    def __init__(self, uuid: str, points: Sequence[Point], area: Optional[float] = None,
                 can_complete: bool = False, visible: bool = True, count: int = 0,
                 mean: float = 0.0, variance: float = 0.0):
        self.uuid = uuid
        self.points = copy_points(points)
        self.area = polygon_area(self.points) if area is None else float(area)
        self.can_complete = can_complete
        self.visible = visible
        self.count = count
        self.mean = mean
        self.variance = variance

    def stats(self) -> dict:
        return {"count": self.count, "mean": self.mean, "variance": self.variance, "area": self.area}

    def qualifies(self, area_epsilon: float) -> bool:
        """A ROI is complete enough to report once it has real area or is closable."""
        return self.area >= area_epsilon or self.can_complete

    def copy_with(self, uuid: str, points: Sequence[Point], visible: bool) -> "AnnotationData":
        return AnnotationData(
            uuid=uuid,
            points=points,
            area=self.area,
            can_complete=self.can_complete,
            visible=visible,
            count=self.count,
            mean=self.mean,
            variance=self.variance,
        )


class RenderingCollaborator(ABC):
    """
    Operations the engine consumes from the rendering/annotation library.

    Slice and viewport queries raise ElementNotEnabledError while a side is
    not enabled; the engine treats that as "indeterminate".
    """

    # Viewport

    @abstractmethod
    def get_viewport_transform(self, side: str) -> ViewportTransform:
        """Return the current display transform of a side."""

    @abstractmethod
    def set_viewport_transform(self, side: str, transform: ViewportTransform) -> None:
        """Apply a display transform to a side (fires a render notification)."""

    # Stack

    @abstractmethod
    def get_current_slice_index(self, side: str) -> int:
        """Return the slice index currently displayed on a side."""

    @abstractmethod
    def get_stack_size(self, side: str) -> int:
        """Return the number of slices in a side's stack."""

    @abstractmethod
    def request_slice_index(self, side: str, index: int) -> None:
        """Start loading a slice; completion is observed by polling."""

    @abstractmethod
    def replace_stack_image(self, side: str, index: int, image_ref: object) -> None:
        """Swap the image at a stack position (registered image from the service)."""

    # Annotations

    @abstractmethod
    def get_annotation_set(self, side: str) -> Optional[List[AnnotationData]]:
        """Snapshot of the freehand ROIs on a side; None when the tool has no state."""

    @abstractmethod
    def add_annotation(self, side: str, data: AnnotationData) -> None:
        """Add a ROI to a side's drawing tool state."""

    @abstractmethod
    def remove_annotation(self, side: str, uuid: str) -> None:
        """Remove a ROI from a side's drawing tool state."""

    @abstractmethod
    def clear_annotations(self, side: str) -> None:
        """Remove every ROI from a side's drawing tool state."""

    @abstractmethod
    def set_annotation_visibility(self, side: str, uuid: str, visible: bool) -> None:
        """Show or hide one ROI."""

    @abstractmethod
    def refresh_annotation_stats(self, side: str, data: AnnotationData) -> None:
        """Ask the drawing tool to recompute its cached stats for a ROI."""

    @abstractmethod
    def sync_cursor_handle(self, source_side: str, target_side: str) -> None:
        """Copy the drawing tool's in-progress handle state between sides."""

    # Pixels

    @abstractmethod
    def sample_pixels(self, side: str, bbox: BBox) -> Sequence[float]:
        """Row-major pixel values of a box (bbox.width * bbox.height values)."""

    @abstractmethod
    def get_image_identity(self, side: str) -> Optional[str]:
        """Opaque identity of the image currently displayed on a side."""

    @abstractmethod
    def get_image_size(self, side: str) -> Tuple[int, int]:
        """(width, height) of the image currently displayed on a side."""

    @abstractmethod
    def get_image_pixels(self, side: str) -> np.ndarray:
        """Full 2D pixel array of the image currently displayed on a side."""

    # Output

    @abstractmethod
    def set_overlay(self, side: str, raster: np.ndarray, opacity: float, colormap: str,
                    visible: bool) -> None:
        """Hand an 8-bit difference raster to the renderer as an overlay layer."""

    @abstractmethod
    def request_redraw(self, side: str) -> None:
        """Schedule a repaint of a side."""
