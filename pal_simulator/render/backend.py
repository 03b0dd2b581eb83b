"""
Convolution backends for the blur/warp pass.

A backend convolves one tile region against one kernel. The pass asks the
backend to check itself once; a backend that cannot run raises
CapabilityUnavailable and the pass disables itself.
"""

from abc import ABC, abstractmethod

import numpy as np
from scipy import signal

from ..errors import CapabilityUnavailable


class ConvolutionBackend(ABC):
    """Abstract base class for convolution backends."""

    name = "abstract"

    @abstractmethod
    def check(self) -> None:
        """
        Verify the backend can run.

        Raises:
            CapabilityUnavailable: If it cannot.
        """
        pass

    @abstractmethod
    def convolve(self, region: np.ndarray, kernel: np.ndarray) -> np.ndarray:
        """
        Convolve a padded region, keeping only fully overlapped pixels.

        Args:
            region: (h + N - 1, w + N - 1) or (..., C) padded tile region
            kernel: (N, N) kernel

        Returns:
            (h, w) or (h, w, C) filtered tile
        """
        pass


class ScipyBackend(ConvolutionBackend):
    """
    CPU backend on scipy.signal.

    scipy picks direct or FFT convolution per call depending on sizes.
    """

    name = "scipy"

    def check(self) -> None:
        sample = np.ones((5, 5), dtype=np.float32)
        kernel = np.full((3, 3), 1.0 / 9.0, dtype=np.float32)
        try:
            result = signal.convolve(sample, kernel, mode='valid')
        except (ValueError, RuntimeError, MemoryError) as e:
            raise CapabilityUnavailable(f"scipy convolution unavailable: {e}") from e
        if result.shape != (3, 3) or not np.allclose(result, 1.0, atol=1e-5):
            raise CapabilityUnavailable("scipy convolution returned unexpected results")

    def convolve(self, region: np.ndarray, kernel: np.ndarray) -> np.ndarray:
        if region.ndim == 2:
            return signal.convolve(region, kernel, mode='valid')
        # Handle color images
        channels = [
            signal.convolve(region[:, :, c], kernel, mode='valid')
            for c in range(region.shape[2])
        ]
        return np.stack(channels, axis=-1)
