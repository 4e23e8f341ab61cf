"""
Tests for ImageResampler (core.image_resampler).

Covers window reshaping, the equal-size shortcut and both resampling
backends (PIL bilinear and SimpleITK).
"""

import os
import sys
import unittest

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from core.image_resampler import ImageResampler


class TestToWindow(unittest.TestCase):

    def test_row_major_reshape(self):
        window = ImageResampler.to_window([1, 2, 3, 4, 5, 6], (3, 2))
        self.assertEqual(window.shape, (2, 3))
        self.assertEqual(window.dtype, np.float32)
        self.assertEqual(window[1, 0], 4.0)

    def test_count_mismatch_raises(self):
        with self.assertRaises(ValueError):
            ImageResampler.to_window([1, 2, 3], (2, 2))


class TestResample(unittest.TestCase):

    def test_equal_size_returns_copy(self):
        resampler = ImageResampler()
        pixels = np.arange(12, dtype=np.float32).reshape(3, 4)
        result = resampler.resample(pixels, (4, 3), (4, 3))
        np.testing.assert_array_equal(result, pixels)
        result[0, 0] = 99.0
        self.assertEqual(pixels[0, 0], 0.0)
        self.assertEqual(resampler.resample_count, 0)

    def test_pil_constant_upsample(self):
        resampler = ImageResampler("fast", "linear")
        result = resampler.resample([4.0] * 25, (5, 5), (10, 10))
        self.assertEqual(result.shape, (10, 10))
        np.testing.assert_allclose(result, 4.0, atol=1e-4)
        self.assertEqual(resampler.resample_count, 1)

    def test_pil_non_square(self):
        resampler = ImageResampler()
        result = resampler.resample(np.ones((2, 6)), (6, 2), (3, 4))
        self.assertEqual(result.shape, (4, 3))

    def test_sitk_constant_upsample(self):
        resampler = ImageResampler("high_accuracy", "linear")
        result = resampler.resample([3.0] * 16, (4, 4), (8, 6))
        self.assertEqual(result.shape, (6, 8))
        np.testing.assert_allclose(result, 3.0, atol=1e-4)

    def test_sitk_nearest_keeps_values(self):
        resampler = ImageResampler("high_accuracy", "nearest")
        pixels = np.array([[1.0, 2.0], [3.0, 4.0]], dtype=np.float32)
        result = resampler.resample(pixels, (2, 2), (4, 4))
        self.assertEqual(set(np.unique(result).tolist()), {1.0, 2.0, 3.0, 4.0})

    def test_empty_target(self):
        result = ImageResampler().resample([1.0, 2.0], (2, 1), (0, 3))
        self.assertEqual(result.shape, (3, 0))

    def test_get_settings(self):
        self.assertEqual(
            ImageResampler("high_accuracy", "bspline").get_settings(),
            {"resampling_mode": "high_accuracy", "interpolation_method": "bspline"},
        )


if __name__ == "__main__":
    unittest.main()
