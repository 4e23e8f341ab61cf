"""
Cross-Viewport Coordinate Mapping

This module maps image coordinates from one viewport into the other. The
mapping composes the physical pixel-spacing ratio with each side's cumulative
manual/registration offset, measured about the centre of the displayed area.

Inputs:
    - ViewportTransform snapshots of both sides
    - ViewportState offsets (dx, dy) of both sides

Outputs:
    - Spacing ratio (target spacing / source spacing)
    - Point transform callable (source point -> target point)

Requirements:
    - core.geometry for the Point type
"""

from typing import Callable

from core.geometry import Point
from core.renderer_interface import ViewportTransform
from core.viewport_state import ViewportState


def calculate_scale_ratio(source_viewport: ViewportTransform,
                          target_viewport: ViewportTransform) -> float:
    """
    Ratio of physical pixel spacing between two viewports.

    Args:
        source_viewport: Transform of the side the value comes from
        target_viewport: Transform of the side the value goes to

    Returns:
        target column spacing / source column spacing (1.0 if either is unset)
    """
    source_spacing = source_viewport.column_pixel_spacing
    target_spacing = target_viewport.column_pixel_spacing
    if not source_spacing or not target_spacing:
        return 1.0
    return target_spacing / source_spacing


def build_translate_points(source_state: ViewportState, target_state: ViewportState,
                           source_viewport: ViewportTransform,
                           target_viewport: ViewportTransform) -> Callable[[Point], Point]:
    """
    Build the source -> target point transform.

    Each side's offset is applied in its own frame, so building the transform
    with the roles swapped yields the exact inverse.

    Args:
        source_state: State of the side the points come from
        target_state: State of the side the points go to
        source_viewport: Transform of the source side
        target_viewport: Transform of the target side

    Returns:
        Callable mapping an (x, y) source point to target image coordinates
    """
    ratio = calculate_scale_ratio(source_viewport, target_viewport)
    source_cx = source_viewport.displayed_width / 2.0
    source_cy = source_viewport.displayed_height / 2.0
    target_cx = target_viewport.displayed_width / 2.0
    target_cy = target_viewport.displayed_height / 2.0
    source_dx, source_dy = source_state.dx, source_state.dy
    target_dx, target_dy = target_state.dx, target_state.dy

    def translate(point: Point) -> Point:
        x, y = point
        return (
            (x - source_cx + source_dx) / ratio + target_cx - target_dx,
            (y - source_cy + source_dy) / ratio + target_cy - target_dy,
        )

    return translate
