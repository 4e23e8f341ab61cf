"""
Tests for StatsAggregator (core.stats_aggregator).

Covers region scoping, (x, y) deduplication, the last_roi area rule, own
intensity statistics, rounding and the "nothing in scope" fallbacks.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.dirname(__file__))

from core.compare_models import (
    LEFT,
    REGION_LAST_ROI,
    REGION_STACK_POSITION,
    REGION_VOLUME,
    RIGHT,
    SIDES,
    DiffData,
    DiffPoint,
)
from core.diff_computer import DiffComputer
from core.renderer_interface import AnnotationData
from core.stats_aggregator import StatsAggregator
from core.viewport_state import ViewportState
from fake_renderer import FakeRenderer, square


def attach_diff(record, values):
    """Attach diff data built from (x, y, left, right) tuples."""
    array = [DiffPoint(x, y, left, right, y * 64 + x) for x, y, left, right in values]
    diffs = [p.diff for p in array]
    record.diff_data = DiffData(array, min(diffs), max(diffs), sum(diffs), record.points, "id")
    return record


class TestIdenticalImages(unittest.TestCase):
    """Identical pixels on both sides give zero difference statistics."""

    def setUp(self):
        self.renderer = FakeRenderer()
        self.renderer.fill(LEFT, 7.0)
        self.renderer.fill(RIGHT, 7.0)
        self.states = {side: ViewportState(side, self.renderer) for side in SIDES}
        self.states[LEFT].set_points(0, AnnotationData("a", square(10, 10, 20, 20), count=100, mean=7.0))
        self.states[RIGHT].set_points(0, AnnotationData("b", square(10, 10, 20, 20), count=100, mean=7.0))
        computer = DiffComputer(self.renderer, self.states)
        for side in SIDES:
            computer.compute_overlay(side)
        self.aggregator = StatsAggregator(self.states)

    def test_volume_stats_are_zero(self):
        stats = self.aggregator.update_histogram_region(REGION_VOLUME)
        # Both sides cover the same pixels, so they collapse to 100 points
        self.assertEqual(stats["count"], 100)
        self.assertEqual(stats["mean"], 0.0)
        self.assertEqual(stats["std"], 0.0)
        self.assertEqual(stats["sum"], 0.0)
        self.assertEqual(stats["mean_left"], 7.0)
        self.assertEqual(stats["mean_right"], 7.0)
        self.assertEqual(stats["mean_left_own"], 7.0)
        self.assertEqual(stats["std_left_own"], 0.0)
        self.assertEqual(stats["area_left"], 100.0)
        self.assertEqual(stats["area_right"], 100.0)

    def test_histograms(self):
        self.aggregator.update_histogram_region(REGION_VOLUME)
        histograms = self.aggregator.compute_histograms(bins=8)
        self.assertEqual(set(histograms), {"diff", "left", "right"})
        counts, centers = histograms["diff"]
        self.assertEqual(len(counts), 8)
        self.assertEqual(len(centers), 8)
        self.assertEqual(int(counts.sum()), 100)


class TestAggregation(unittest.TestCase):

    def setUp(self):
        self.renderer = FakeRenderer()
        self.states = {side: ViewportState(side, self.renderer) for side in SIDES}
        self.aggregator = StatsAggregator(self.states)

    def add(self, side, index, uuid, values, count=0, mean=0.0, variance=0.0, points=None):
        data = AnnotationData(uuid, points or square(0, 0, 10, 10), count=count, mean=mean,
                              variance=variance)
        return attach_diff(self.states[side].set_points(index, data), values)

    def test_overlapping_points_are_deduplicated(self):
        self.add(LEFT, 0, "a", [(1, 1, 4.0, 1.0), (2, 1, 4.0, 2.0)])
        self.add(RIGHT, 0, "b", [(2, 1, 9.0, 1.0), (3, 1, 5.0, 5.0)])
        stats = self.aggregator.update_histogram_region(REGION_VOLUME)
        self.assertEqual(stats["count"], 3)
        # (2, 1) comes from the right record, merged last
        self.assertEqual(stats["sum"], 3.0 + 8.0 + 0.0)
        self.assertEqual(stats["max"], 8.0)
        self.assertEqual(stats["min"], 0.0)

    def test_population_std(self):
        self.add(LEFT, 0, "a", [(0, 0, 2.0, 0.0), (1, 0, 4.0, 0.0)])
        stats = self.aggregator.update_histogram_region(REGION_VOLUME)
        self.assertEqual(stats["mean"], 3.0)
        self.assertEqual(stats["std"], 1.0)

    def test_values_are_rounded(self):
        self.add(LEFT, 0, "a", [(0, 0, 1.0, 0.0), (1, 0, 1.0, 0.0), (2, 0, 0.0, 0.0)])
        stats = self.aggregator.update_histogram_region(REGION_VOLUME)
        self.assertEqual(stats["mean"], 0.7)
        self.assertEqual(stats["std"], 0.5)

    def test_stack_position_scope(self):
        self.add(LEFT, 0, "a", [(0, 0, 1.0, 0.0)])
        self.add(LEFT, 4, "b", [(0, 0, 9.0, 0.0)])
        self.renderer.current_index[LEFT] = 4
        stats = self.aggregator.update_histogram_region(REGION_STACK_POSITION)
        self.assertEqual(stats["count"], 1)
        self.assertEqual(stats["sum"], 9.0)

    def test_last_roi_uses_selected_side_only(self):
        self.add(LEFT, 0, "a", [(0, 0, 1.0, 0.0)], count=10, mean=1.0,
                 points=square(0, 0, 10, 10))
        self.add(RIGHT, 0, "a-copy", [(0, 0, 5.0, 0.0), (1, 0, 5.0, 0.0)], count=20, mean=3.0,
                 points=square(0, 0, 20, 20))
        self.aggregator.set_selected_side(RIGHT)
        stats = self.aggregator.update_histogram_region(REGION_LAST_ROI, ["a", "a-copy"])
        self.assertEqual(stats["count"], 2)
        self.assertEqual(stats["sum"], 10.0)
        self.assertEqual(stats["area_left"], 400.0)
        self.assertEqual(stats["area_right"], 400.0)
        self.assertEqual(stats["mean_left_own"], 1.0)
        self.assertEqual(stats["mean_right_own"], 3.0)

    def test_own_stats_are_count_weighted(self):
        own = StatsAggregator.own_stats([
            self.add(LEFT, 0, "a", [(0, 0, 1.0, 0.0)], count=10, mean=2.0, variance=1.0),
            self.add(LEFT, 0, "b", [(1, 0, 1.0, 0.0)], count=30, mean=6.0, variance=9.0),
        ])
        self.assertAlmostEqual(own["mean"], 5.0)
        self.assertAlmostEqual(own["std"], (7.0) ** 0.5)
        self.assertAlmostEqual(own["area"], 200.0)

    def test_zero_count_gives_none(self):
        self.add(LEFT, 0, "a", [(0, 0, 1.0, 0.0)])
        stats = self.aggregator.update_histogram_region(REGION_VOLUME)
        self.assertIsNone(stats["mean_left_own"])
        self.assertIsNone(stats["std_left_own"])
        self.assertIsNone(stats["mean_right_own"])

    def test_nothing_in_scope_keeps_previous_stats(self):
        self.assertIsNone(self.aggregator.update_histogram_region(REGION_VOLUME))
        self.add(LEFT, 0, "a", [(0, 0, 1.0, 0.0)])
        previous = self.aggregator.update_histogram_region(REGION_VOLUME)
        self.assertIs(self.aggregator.update_histogram_region(REGION_LAST_ROI, ["missing"]), previous)

    def test_reset(self):
        self.add(LEFT, 0, "a", [(0, 0, 1.0, 0.0)])
        self.aggregator.update_histogram_region(REGION_VOLUME)
        self.aggregator.reset()
        self.assertIsNone(self.aggregator.volume_stats)
        self.assertEqual(self.aggregator.compute_histograms(), {})

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            self.aggregator.update_histogram_region("slab")
        with self.assertRaises(ValueError):
            self.aggregator.set_selected_side("middle")


if __name__ == "__main__":
    unittest.main()
