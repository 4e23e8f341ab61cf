"""
Polygon Geometry

This module provides the 2D geometry helpers used by ROI synchronization and
difference computation: integer bounding boxes, point-in-polygon tests, and
mapping of boxes through an arbitrary coordinate transform.

Inputs:
    - Polygon points as (x, y) tuples in image pixel coordinates
    - Optional precomputed bounding boxes
    - Coordinate transform callables (point -> point)

Outputs:
    - BBox instances (floor/ceil rounded so they contain the polygon)
    - Inside/outside decisions, per point or as a numpy mask

Requirements:
    - numpy for the vectorized polygon mask
"""

import math
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

Point = Tuple[float, float]


class BBox:
    """
    Integer bounding box.

    left/top are floored and right/bottom are ceiled so the box always
    contains its source polygon, even with fractional coordinates.
    """

    def __init__(self, left: int, top: int, right: int, bottom: int):
        self.left = left
        self.top = top
        self.right = right
        self.bottom = bottom
        self.width = right - left
        self.height = bottom - top

    def __eq__(self, other) -> bool:
        if not isinstance(other, BBox):
            return NotImplemented
        return (self.left, self.top, self.right, self.bottom) == (
            other.left, other.top, other.right, other.bottom
        )

    def __repr__(self) -> str:
        return (f"BBox(left={self.left}, top={self.top}, right={self.right}, "
                f"bottom={self.bottom}, width={self.width}, height={self.height})")

    def contains(self, point: Point) -> bool:
        x, y = point
        return self.left <= x <= self.right and self.top <= y <= self.bottom


def get_bounding_box(points: Sequence[Point]) -> BBox:
    """
    Get the integer bounding box of a polygon.

    Args:
        points: Polygon vertices as (x, y) tuples

    Returns:
        BBox with floor(min) left/top and ceil(max) right/bottom

    Raises:
        ValueError: If points is empty
    """
    if not points:
        raise ValueError("Cannot compute bounding box of an empty polygon")
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return BBox(
        int(math.floor(min(xs))),
        int(math.floor(min(ys))),
        int(math.ceil(max(xs))),
        int(math.ceil(max(ys))),
    )


def point_in_polygon(polygon: Sequence[Point], point: Point,
                     bbox: Optional[BBox] = None) -> bool:
    """
    Ray-casting parity test.

    Args:
        polygon: Polygon vertices as (x, y) tuples
        point: Point to test
        bbox: Optional precomputed bounding box of the polygon

    Returns:
        True if the point lies inside the polygon
    """
    if not polygon:
        return False
    box = bbox if bbox is not None else get_bounding_box(polygon)
    if not box.contains(point):
        return False

    px, py = point
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i]
        xj, yj = polygon[j]
        if (yi > py) != (yj > py) and px < (xj - xi) * (py - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def polygon_mask(polygon: Sequence[Point], bbox: BBox) -> np.ndarray:
    """
    Vectorized point_in_polygon over every integer pixel of a bounding box.

    Pixel (x, y) maps to mask[y - bbox.top, x - bbox.left] for
    bbox.left <= x < bbox.left + bbox.width (same for y).

    Args:
        polygon: Polygon vertices as (x, y) tuples
        bbox: Box whose pixel grid is tested

    Returns:
        Boolean array of shape (bbox.height, bbox.width)
    """
    height = max(0, bbox.height)
    width = max(0, bbox.width)
    mask = np.zeros((height, width), dtype=bool)
    if not polygon or height == 0 or width == 0:
        return mask

    y_indices, x_indices = np.mgrid[bbox.top:bbox.top + height, bbox.left:bbox.left + width]
    px = x_indices.astype(np.float64)
    py = y_indices.astype(np.float64)

    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i]
        xj, yj = polygon[j]
        j = i
        if yi == yj:
            # Horizontal edges never straddle a scanline
            continue
        straddles = (yi > py) != (yj > py)
        crossing_x = (xj - xi) * (py - yi) / (yj - yi) + xi
        mask ^= straddles & (px < crossing_x)
    return mask


def rescale_bounding_box(bbox: BBox, translate: Callable[[Point], Point]) -> BBox:
    """
    Map a bounding box through an arbitrary coordinate transform.

    All four corners are transformed, so non-uniform or mirrored transforms
    still yield a box containing the mapped region.

    Args:
        bbox: Box in source coordinates
        translate: Callable mapping a source point to destination coordinates

    Returns:
        Floor/ceil rounded BBox in destination coordinates
    """
    corners = [
        translate((bbox.left, bbox.top)),
        translate((bbox.right, bbox.top)),
        translate((bbox.left, bbox.bottom)),
        translate((bbox.right, bbox.bottom)),
    ]
    return get_bounding_box(corners)


def polygon_area(points: Sequence[Point]) -> float:
    """Shoelace area of a polygon (0.0 for fewer than three points)."""
    if len(points) < 3:
        return 0.0
    total = 0.0
    j = len(points) - 1
    for i in range(len(points)):
        total += (points[j][0] + points[i][0]) * (points[j][1] - points[i][1])
        j = i
    return abs(total) / 2.0


def points_equal(a: Optional[Sequence[Point]], b: Optional[Sequence[Point]]) -> bool:
    """Point-wise equality of two point lists; None only equals None."""
    if a is None or b is None:
        return a is None and b is None
    if len(a) != len(b):
        return False
    return all(p[0] == q[0] and p[1] == q[1] for p, q in zip(a, b))


def copy_points(points: Sequence[Point]) -> List[Point]:
    """Detached copy of a point list as plain float tuples."""
    return [(float(p[0]), float(p[1])) for p in points]
