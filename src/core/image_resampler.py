"""
Image Resampler

This module provides the 2D resampling backend used by difference
computation when the two viewports have different physical pixel spacing.
A sampled window from the other side is resized to this side's window
dimensions, pixel for pixel.

Inputs:
    - Row-major pixel values of a sampled window
    - Source window size (width, height)
    - Target window size (width, height)
    - Resampling parameters (mode, interpolation method)

Outputs:
    - Resampled float32 arrays of shape (target height, target width)

Requirements:
    - numpy for array operations
    - Pillow for the fast bilinear resize
    - SimpleITK for the high-accuracy resample filter
"""

from typing import Dict, Sequence, Tuple, Union

import numpy as np
import SimpleITK as sitk
from PIL import Image as PILImage

Size = Tuple[int, int]


class ImageResampler:
    """
    Bilinear window resampling for cross-viewport difference computation.

    Responsibilities:
    - Reshape sampled row-major windows into 2D arrays
    - Resize windows with PIL in "fast" mode
    - Resample windows on a physical grid with SimpleITK in "high_accuracy" mode
    """

    # Interpolation method mapping for the SimpleITK path
    INTERPOLATION_METHODS = {
        'linear': sitk.sitkLinear,
        'nearest': sitk.sitkNearestNeighbor,
        'bspline': sitk.sitkBSpline,
    }

    # Equivalent PIL filters for the fast path
    PIL_FILTERS = {
        'linear': PILImage.Resampling.BILINEAR,
        'nearest': PILImage.Resampling.NEAREST,
        'bspline': PILImage.Resampling.BICUBIC,
    }

    def __init__(self, resampling_mode: str = "fast", interpolation_method: str = "linear"):
        """
        Initialize image resampler.

        Args:
            resampling_mode: "fast" (PIL) or "high_accuracy" (SimpleITK)
            interpolation_method: "linear", "nearest" or "bspline"
        """
        self.resampling_mode = resampling_mode
        self.interpolation_method = interpolation_method
        self.resample_count = 0

    @staticmethod
    def to_window(pixels: Union[Sequence[float], np.ndarray], size: Size) -> np.ndarray:
        """
        Reshape row-major window values into a float32 (height, width) array.

        Args:
            pixels: Row-major values (width * height of them)
            size: Window (width, height)

        Returns:
            2D float32 array

        Raises:
            ValueError: If the value count does not match the size
        """
        width, height = size
        array = np.asarray(pixels, dtype=np.float32)
        if array.size != width * height:
            raise ValueError(
                f"Window has {array.size} values, expected {width}x{height}={width * height}"
            )
        return array.reshape((height, width))

    def resample(self, pixels: Union[Sequence[float], np.ndarray], from_size: Size,
                 to_size: Size) -> np.ndarray:
        """
        Resize a sampled window to new dimensions.

        Args:
            pixels: Row-major window values (or a 2D array) at from_size
            from_size: Source (width, height)
            to_size: Target (width, height)

        Returns:
            Float32 array of shape (to_height, to_width)
        """
        window = self.to_window(pixels, from_size)
        to_width, to_height = to_size
        if to_width <= 0 or to_height <= 0:
            return np.zeros((max(0, to_height), max(0, to_width)), dtype=np.float32)
        if (to_width, to_height) == tuple(from_size):
            return window.copy()
        if window.size == 0:
            return np.zeros((to_height, to_width), dtype=np.float32)

        self.resample_count += 1
        if self.resampling_mode == "high_accuracy":
            return self._resample_sitk(window, to_size)
        return self._resample_pil(window, to_size)

    def _resample_pil(self, window: np.ndarray, to_size: Size) -> np.ndarray:
        pil_filter = self.PIL_FILTERS.get(self.interpolation_method, PILImage.Resampling.BILINEAR)
        image = PILImage.fromarray(np.ascontiguousarray(window, dtype=np.float32))
        image = image.resize(to_size, pil_filter)
        return np.array(image, dtype=np.float32)

    def _resample_sitk(self, window: np.ndarray, to_size: Size) -> np.ndarray:
        """
        Resample on the physical grid covered by the window.

        The input has unit spacing with its first pixel centre at the origin;
        the output grid spans the same physical extent with to_size pixels.
        """
        height, width = window.shape
        to_width, to_height = to_size
        image = sitk.GetImageFromArray(window)

        spacing_x = width / float(to_width)
        spacing_y = height / float(to_height)

        resampler = sitk.ResampleImageFilter()
        resampler.SetSize([int(to_width), int(to_height)])
        resampler.SetOutputSpacing([spacing_x, spacing_y])
        resampler.SetOutputOrigin([(spacing_x - 1.0) / 2.0, (spacing_y - 1.0) / 2.0])
        resampler.SetOutputDirection(image.GetDirection())
        resampler.SetInterpolator(
            self.INTERPOLATION_METHODS.get(self.interpolation_method, sitk.sitkLinear)
        )
        resampler.SetDefaultPixelValue(0.0)
        resampler.SetUseNearestNeighborExtrapolator(True)
        resampled = resampler.Execute(image)
        return sitk.GetArrayFromImage(resampled).astype(np.float32)

    def get_settings(self) -> Dict[str, str]:
        return {
            "resampling_mode": self.resampling_mode,
            "interpolation_method": self.interpolation_method,
        }
