"""
Point Spread Function (PSF) modeling.

Procedural Gaussian kernels used to build synthetic PSF banks and to stand in
for the bank when it is missing. Kernel sizes are in render pixels.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy import ndimage
from scipy.signal import fftconvolve

# Blur growth per diopter of defocus, in pixels of sigma
SIGMA_PER_DIOPTER_PX = 1.5
# Sigma of an in-focus kernel
BASE_SIGMA_PX = 0.5
# Largest procedural kernel edge
MAX_KERNEL_SIZE_PX = 31


def normalize_kernel(kernel: np.ndarray) -> np.ndarray:
    """Scale a kernel to unit sum; a zero kernel becomes a delta."""
    kernel = np.asarray(kernel, dtype=np.float32)
    total = float(kernel.sum())
    if total <= 0 or not np.isfinite(total):
        delta = np.zeros_like(kernel)
        delta[kernel.shape[0] // 2, kernel.shape[1] // 2] = 1.0
        return delta
    return kernel / total


def rotate_kernel(kernel: np.ndarray, angle_deg: float) -> np.ndarray:
    """Rotate a kernel about its center, keeping its size and unit sum."""
    if angle_deg % 360.0 == 0.0:
        return kernel
    rotated = ndimage.rotate(kernel, angle_deg, reshape=False, order=1, mode='constant')
    return normalize_kernel(np.clip(rotated, 0.0, None))


def _auto_size(sigma_px: float) -> int:
    # 6 sigma captures 99.7% of energy
    size_px = int(np.ceil(6 * sigma_px)) | 1
    return min(max(size_px, 3), MAX_KERNEL_SIZE_PX)


class PSFModel(ABC):
    """Abstract base class for PSF models."""

    @abstractmethod
    def generate_kernel(self, size_px: Optional[int] = None) -> np.ndarray:
        """
        Generate the PSF kernel.

        Args:
            size_px: Size of the kernel (odd integer). If None, auto-computed.

        Returns:
            2D PSF kernel normalized to sum to 1
        """
        pass

    def apply(self, image: np.ndarray) -> np.ndarray:
        """
        Apply the PSF blur to an image.

        Args:
            image: Input image (2D or 3D for color)

        Returns:
            Blurred image
        """
        kernel = self.generate_kernel()

        if image.ndim == 2:
            return fftconvolve(image, kernel, mode='same')
        else:
            # Handle color images
            result = np.zeros_like(image, dtype=np.float32)
            for c in range(image.shape[2]):
                result[:, :, c] = fftconvolve(image[:, :, c], kernel, mode='same')
            return result


@dataclass
class GaussianPSF(PSFModel):
    """
    Isotropic Gaussian PSF.

    Attributes:
        sigma_px: Standard deviation in pixels
    """
    sigma_px: float

    @classmethod
    def from_fwhm(cls, fwhm_px: float) -> "GaussianPSF":
        """Create a Gaussian PSF from full width at half maximum."""
        sigma = fwhm_px / (2 * np.sqrt(2 * np.log(2)))
        return cls(sigma_px=sigma)

    @classmethod
    def from_power(
        cls,
        local_power: float,
        base_sigma_px: float = BASE_SIGMA_PX,
        sigma_per_diopter_px: float = SIGMA_PER_DIOPTER_PX,
    ) -> "GaussianPSF":
        """Defocus blur sized from the local dioptric power."""
        return cls(sigma_px=base_sigma_px + sigma_per_diopter_px * abs(float(local_power)))

    @property
    def fwhm_px(self) -> float:
        return self.sigma_px * 2 * np.sqrt(2 * np.log(2))

    def generate_kernel(self, size_px: Optional[int] = None) -> np.ndarray:
        """Generate Gaussian PSF kernel."""
        sigma_px = max(self.sigma_px, 1e-3)
        if size_px is None:
            size_px = _auto_size(sigma_px)

        center = size_px // 2
        y, x = np.ogrid[:size_px, :size_px]
        r2 = (x - center)**2 + (y - center)**2

        kernel = np.exp(-r2 / (2 * sigma_px**2))
        return normalize_kernel(kernel)


@dataclass
class AstigmaticPSF(PSFModel):
    """
    Elliptical Gaussian PSF for a sphero-cylindrical error.

    Attributes:
        sigma_major_px: Sigma along the orientation angle
        sigma_minor_px: Sigma across the orientation angle
        angle_deg: Orientation of the major axis, counter-clockwise from +x
    """
    sigma_major_px: float
    sigma_minor_px: float
    angle_deg: float = 0.0

    @classmethod
    def from_prescription(
        cls,
        sphere: float,
        cylinder: float,
        axis_deg: float = 0.0,
        base_sigma_px: float = BASE_SIGMA_PX,
        sigma_per_diopter_px: float = SIGMA_PER_DIOPTER_PX,
    ) -> "AstigmaticPSF":
        """
        Blur from the powers of the two principal meridians.

        The meridians carry sphere and sphere + cylinder; the larger error
        sets the major axis.
        """
        first = abs(sphere)
        second = abs(sphere + cylinder)
        return cls(
            sigma_major_px=base_sigma_px + sigma_per_diopter_px * max(first, second),
            sigma_minor_px=base_sigma_px + sigma_per_diopter_px * min(first, second),
            angle_deg=axis_deg,
        )

    def generate_kernel(self, size_px: Optional[int] = None) -> np.ndarray:
        major = max(self.sigma_major_px, 1e-3)
        minor = max(self.sigma_minor_px, 1e-3)
        if size_px is None:
            size_px = _auto_size(max(major, minor))

        center = size_px // 2
        y, x = np.mgrid[:size_px, :size_px].astype(np.float64)
        x -= center
        y -= center

        theta = np.deg2rad(self.angle_deg)
        along = x * np.cos(theta) + y * np.sin(theta)
        across = -x * np.sin(theta) + y * np.cos(theta)

        kernel = np.exp(-(along**2 / (2 * major**2) + across**2 / (2 * minor**2)))
        return normalize_kernel(kernel)


def fallback_kernel(
    local_power: float,
    cyl_power: float = 0.0,
    size_px: Optional[int] = None,
) -> np.ndarray:
    """
    Procedural kernel used when no PSF bank is available.

    An isotropic Gaussian sized from the local power; cylinder widens it
    along one axis. Orientation is left to the caller.
    """
    if cyl_power == 0.0:
        return GaussianPSF.from_power(local_power).generate_kernel(size_px)
    return AstigmaticPSF.from_prescription(local_power, cyl_power).generate_kernel(size_px)
