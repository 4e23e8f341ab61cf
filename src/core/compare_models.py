"""
Comparison Data Model

This module defines the records shared by the synchronization and difference
engine: side and histogram-region identifiers, synchronization toggles, ROI
records owned by a viewport, and the cached per-pixel difference data.

Inputs:
    - Annotation snapshots reported by the rendering collaborator
    - Sampled pixel values from both viewports

Outputs:
    - RoiRecord, DiffData and DiffPoint instances
    - SyncConfig toggles read by the synchronizers

Requirements:
    - core.geometry for point copies
"""

from typing import Dict, List, Optional

from core.geometry import Point, copy_points

LEFT = "left"
RIGHT = "right"
SIDES = (LEFT, RIGHT)

# Histogram / clear scopes
REGION_LAST_ROI = "last_roi"
REGION_STACK_POSITION = "stack_position"
REGION_VOLUME = "volume"
REGIONS = (REGION_LAST_ROI, REGION_STACK_POSITION, REGION_VOLUME)


def other_side(side: str) -> str:
    """Return the opposite side identifier."""
    if side == LEFT:
        return RIGHT
    if side == RIGHT:
        return LEFT
    raise ValueError(f"Unknown side: {side!r}")


class SyncConfig:
    """
    Process-wide synchronization toggles set by the UI layer.

    delta_stack_index is the slice offset left - right, written only by
    stack calibration while synchronization is active.
    """

    def __init__(self, synchronize_roi: bool = True, synchronize_stack: bool = True,
                 delta_stack_index: int = 0):
        self.synchronize_roi = synchronize_roi
        self.synchronize_stack = synchronize_stack
        self.delta_stack_index = delta_stack_index

    @property
    def roi_sync_enabled(self) -> bool:
        # ROI mirroring only makes sense while both stacks move together
        return self.synchronize_roi and self.synchronize_stack


class DiffPoint:
    """One sampled pixel inside a ROI polygon."""

    __slots__ = ("x", "y", "left", "right", "diff", "index")

    def __init__(self, x: int, y: int, left: float, right: float, index: int):
        self.x = x
        self.y = y
        self.left = left
        self.right = right
        self.diff = left - right
        self.index = index

    def __repr__(self) -> str:
        return (f"DiffPoint(x={self.x}, y={self.y}, left={self.left}, "
                f"right={self.right}, diff={self.diff}, index={self.index})")


class DiffData:
    """
    Cached difference computation for one ROI.

    Valid only while source_image_id and points match the owning ROI's
    current image identity and polygon, and other_image_id matches the image
    displayed on the opposite side.
    """

    def __init__(self, array: List[DiffPoint], min_value: float, max_value: float,
                 sum_value: float, points: List[Point], source_image_id: Optional[str],
                 other_image_id: Optional[str] = None):
        self.array = array
        self.min = min_value
        self.max = max_value
        self.sum = sum_value
        self.points = copy_points(points)
        self.source_image_id = source_image_id
        self.other_image_id = other_image_id

    def is_empty(self) -> bool:
        return len(self.array) == 0


class RoiRecord:
    """
    ROI polygon owned by one ViewportState at one slice index.

    stats holds the intensity statistics reported by the drawing tool:
    count, mean, variance and area.
    """

    def __init__(self, uuid: str, points: List[Point], stats: Optional[Dict[str, float]] = None,
                 diff_data: Optional[DiffData] = None):
        self.uuid = uuid
        self.points = copy_points(points)
        self.stats: Dict[str, float] = dict(stats) if stats else {
            "count": 0, "mean": 0.0, "variance": 0.0, "area": 0.0
        }
        self.diff_data = diff_data

    def has_diff_data(self) -> bool:
        return self.diff_data is not None and not self.diff_data.is_empty()

    def __repr__(self) -> str:
        return f"RoiRecord(uuid={self.uuid!r}, points={len(self.points)}, area={self.stats.get('area')})"
