"""
Statistics Aggregator

This module aggregates difference statistics over a histogram region (the
last edited ROI, the current slice, or the whole volume) from the cached
DiffData of both sides, plus each side's own intensity statistics from the
values reported by the drawing tool.

Inputs:
    - Both ViewportStates (ROI records with diff data)
    - Histogram region and the uuids of the last edited ROI and its copy
    - Selected side (the side that produced the last edit)

Outputs:
    - Stats dictionary (diff/left/right aggregates, own stats, areas)
    - Histogram bin data for the merged points

Requirements:
    - numpy for the aggregate computations
"""

import math
from typing import Collection, Dict, List, Optional, Tuple

import numpy as np

from core.compare_models import LEFT, REGION_LAST_ROI, REGIONS, RIGHT, DiffPoint, RoiRecord
from core.viewport_state import ViewportState
from utils.debug_log import sync_debug


def _round(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return round(float(value), 1)


class StatsAggregator:
    """
    Region/volume statistics over both sides' difference data.

    In "last_roi" scope only the selected side's points are merged, and both
    reported areas come from that side.
    """

    def __init__(self, states: Dict[str, ViewportState], region: str = REGION_LAST_ROI):
        self.states = states
        self.selected_region = region
        self.selected_side = LEFT
        self.volume_stats: Optional[Dict[str, Optional[float]]] = None
        self.diff_points: List[DiffPoint] = []

    def set_selected_side(self, side: str) -> None:
        """Record the side that produced the last ROI edit."""
        if side not in (LEFT, RIGHT):
            raise ValueError(f"Unknown side: {side!r}")
        self.selected_side = side

    def update_histogram_region(self, region: str,
                                last_roi_uuids: Collection[str] = ()) -> Optional[Dict[str, Optional[float]]]:
        """
        Switch the aggregation scope and recompute.

        Args:
            region: "last_roi", "stack_position" or "volume"
            last_roi_uuids: uuids of the last edited ROI and its cross-side copy

        Returns:
            The recomputed statistics (or the previous ones if nothing qualifies)
        """
        if region not in REGIONS:
            raise ValueError(f"Unknown histogram region: {region!r}")
        self.selected_region = region
        return self.update_volume_stats(last_roi_uuids)

    def reset(self) -> None:
        self.volume_stats = None
        self.diff_points = []

    @staticmethod
    def merge_points(records: List[RoiRecord]) -> List[DiffPoint]:
        """
        Merge diff points, deduplicated by (x, y); later entries win.

        Args:
            records: Records in merge order

        Returns:
            Deduplicated points in first-seen order
        """
        merged: Dict[Tuple[int, int], DiffPoint] = {}
        for record in records:
            for point in record.diff_data.array:
                merged[(point.x, point.y)] = point
        return list(merged.values())

    @staticmethod
    def own_stats(records: List[RoiRecord]) -> Dict[str, Optional[float]]:
        """
        Side intensity statistics from the drawing tool's per-ROI stats.

        Args:
            records: One side's records in scope

        Returns:
            Dict with area, mean and std (None when the pixel count is zero)
        """
        count = 0.0
        total = 0.0
        variance_sum = 0.0
        area = 0.0
        for record in records:
            stats = record.stats
            roi_count = stats.get("count", 0) or 0
            total += stats.get("mean", 0.0) * roi_count
            variance_sum += stats.get("variance", 0.0) * roi_count
            count += roi_count
            area += stats.get("area", 0.0) or 0.0

        if count > 0:
            mean = total / count
            std = math.sqrt(max(variance_sum / count, 0.0))
        else:
            mean = None
            std = None
        return {"area": area, "mean": mean, "std": std}

    def update_volume_stats(self, last_roi_uuids: Collection[str] = ()) -> Optional[Dict[str, Optional[float]]]:
        """
        Recompute aggregate statistics for the selected region.

        Args:
            last_roi_uuids: uuids of the last edited ROI and its cross-side copy

        Returns:
            Stats dict, or the previous stats (possibly None) when no record in
            scope has diff data
        """
        region = self.selected_region
        left_records = self.states[LEFT].get_data(region, last_roi_uuids)
        right_records = self.states[RIGHT].get_data(region, last_roi_uuids)
        if not left_records and not right_records:
            return self.volume_stats

        only_side = None
        if region == REGION_LAST_ROI:
            only_side = self.selected_side
            base_records = left_records if only_side == LEFT else right_records
        else:
            base_records = left_records + right_records

        diff_points = self.merge_points(base_records)
        if not diff_points:
            sync_debug(f"stats: no diff points in scope {region}")
            return self.volume_stats

        diffs = np.array([p.diff for p in diff_points], dtype=np.float64)
        lefts = np.array([p.left for p in diff_points], dtype=np.float64)
        rights = np.array([p.right for p in diff_points], dtype=np.float64)

        left_own = self.own_stats(left_records)
        right_own = self.own_stats(right_records)
        if only_side == LEFT:
            area_left = area_right = left_own["area"]
        elif only_side == RIGHT:
            area_left = area_right = right_own["area"]
        else:
            area_left = left_own["area"]
            area_right = right_own["area"]

        stats = {
            "count": len(diff_points),
            "sum": float(diffs.sum()),
            "min": float(diffs.min()),
            "max": float(diffs.max()),
            "mean": _round(np.mean(diffs)),
            "std": _round(np.std(diffs)),
            "sum_left": float(lefts.sum()),
            "min_left": float(lefts.min()),
            "max_left": float(lefts.max()),
            "mean_left": _round(np.mean(lefts)),
            "std_left": _round(np.std(lefts)),
            "sum_right": float(rights.sum()),
            "min_right": float(rights.min()),
            "max_right": float(rights.max()),
            "mean_right": _round(np.mean(rights)),
            "std_right": _round(np.std(rights)),
            "area_left": _round(area_left),
            "area_right": _round(area_right),
            "mean_left_own": _round(left_own["mean"]),
            "std_left_own": _round(left_own["std"]),
            "mean_right_own": _round(right_own["mean"]),
            "std_right_own": _round(right_own["std"]),
        }
        self.diff_points = diff_points
        self.volume_stats = stats
        return stats

    def compute_histograms(self, bins: int = 256) -> Dict[str, Tuple[np.ndarray, np.ndarray]]:
        """
        Histogram data for the last merged points (chart drawing happens elsewhere).

        Args:
            bins: Number of bins per histogram

        Returns:
            Dict "diff"/"left"/"right" -> (counts, bin centers); empty when no points
        """
        if not self.diff_points:
            return {}
        result = {}
        for key in ("diff", "left", "right"):
            values = np.array([getattr(p, key) for p in self.diff_points], dtype=np.float64)
            hist, edges = np.histogram(values, bins=bins)
            result[key] = (hist, (edges[:-1] + edges[1:]) / 2.0)
        return result
