"""
Generated lens maps and the lens profile that owns them.

Maps are plain numpy arrays marked read-only once generated. A LensProfile
owns the four maps of a parameter set and is released explicitly: consumers
take a lease for the duration of a pass, and release() refuses to free the
buffers while any lease is outstanding.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Tuple, Union

import numpy as np
from scipy import ndimage

from .prescription import ProfileParameters


class Eye(Enum):
    """Eye index, matching the order eyes are dispatched in."""
    RIGHT = 0
    LEFT = 1


# OpticalFieldMap channel layout
LOCAL_POWER = 0
CYL_POWER = 1
MERIDIAN_ANGLE = 2
RESERVED = 3


def _freeze(data: np.ndarray) -> np.ndarray:
    data.flags.writeable = False
    return data


def _sample_channels(
    data: np.ndarray,
    u: Union[float, np.ndarray],
    v: Union[float, np.ndarray],
) -> np.ndarray:
    """Bilinear lookup of every channel at normalized (u, v)."""
    height, width = data.shape[:2]
    u, v = np.broadcast_arrays(
        np.clip(np.asarray(u, dtype=np.float64), 0.0, 1.0),
        np.clip(np.asarray(v, dtype=np.float64), 0.0, 1.0),
    )
    coords = np.stack([v.ravel() * max(height - 1, 0), u.ravel() * max(width - 1, 0)])
    channels = [
        ndimage.map_coordinates(data[..., c], coords, order=1, mode='nearest').reshape(u.shape)
        for c in range(data.shape[2])
    ]
    return np.stack(channels, axis=-1)


@dataclass(frozen=True)
class OpticalFieldMap:
    """
    Per-eye optical field.

    Attributes:
        data: (H, W, 4) float32 array of
              (local_power, cyl_power, meridian_angle_deg, reserved)
    """
    data: np.ndarray

    def __post_init__(self):
        _freeze(self.data)

    @property
    def resolution(self) -> Tuple[int, int]:
        """(width, height) in cells."""
        return (self.data.shape[1], self.data.shape[0])

    @property
    def local_power(self) -> np.ndarray:
        return self.data[..., LOCAL_POWER]

    @property
    def cyl_power(self) -> np.ndarray:
        return self.data[..., CYL_POWER]

    @property
    def meridian_angle(self) -> np.ndarray:
        return self.data[..., MERIDIAN_ANGLE]

    def sample(self, u, v) -> np.ndarray:
        """Bilinear sample at normalized coordinates; returns (..., 4)."""
        return _sample_channels(self.data, u, v)


@dataclass(frozen=True)
class MagnificationMap:
    """
    Per-eye magnification field.

    Attributes:
        data: (H, W, 2) float32 array of UV displacement vectors
    """
    data: np.ndarray

    def __post_init__(self):
        _freeze(self.data)

    @property
    def resolution(self) -> Tuple[int, int]:
        return (self.data.shape[1], self.data.shape[0])

    def sample(self, u, v) -> np.ndarray:
        """Bilinear sample at normalized coordinates; returns (..., 2)."""
        return _sample_channels(self.data, u, v)


class LensProfile:
    """
    Generated maps for both eyes plus calibration metadata.

    Attributes:
        pixels_per_degree: Eye texture pixels per degree of visual field
        near_reference_m: Near zone reference distance
        intermediate_reference_m: Intermediate zone reference distance
        distance_reference_m: Distance zone reference distance
        source_parameters: Parameters the maps were generated from
        generation_id: Id of the request that produced this profile
    """

    def __init__(
        self,
        right_eye_map: OpticalFieldMap,
        left_eye_map: OpticalFieldMap,
        right_eye_magnification: MagnificationMap,
        left_eye_magnification: MagnificationMap,
        pixels_per_degree: float,
        source_parameters: Optional[ProfileParameters] = None,
        near_reference_m: float = 0.4,
        intermediate_reference_m: float = 1.5,
        distance_reference_m: float = 6.0,
        generation_id: int = 0,
    ):
        resolutions = {
            right_eye_map.resolution,
            left_eye_map.resolution,
            right_eye_magnification.resolution,
            left_eye_magnification.resolution,
        }
        if len(resolutions) != 1:
            raise ValueError(f"All maps of a profile must share one resolution, got {resolutions}")

        self._maps = {
            Eye.RIGHT: (right_eye_map, right_eye_magnification),
            Eye.LEFT: (left_eye_map, left_eye_magnification),
        }
        self._resolution = resolutions.pop()
        self.pixels_per_degree = float(pixels_per_degree)
        self.source_parameters = source_parameters
        self.near_reference_m = near_reference_m
        self.intermediate_reference_m = intermediate_reference_m
        self.distance_reference_m = distance_reference_m
        self.generation_id = generation_id

        self._lock = threading.Lock()
        self._leases = 0
        self._released = False

    def __repr__(self) -> str:
        state = "released" if self._released else f"leases={self._leases}"
        return (
            f"LensProfile(id={self.generation_id}, resolution={self._resolution}, "
            f"ppd={self.pixels_per_degree:.2f}, {state})"
        )

    @property
    def resolution(self) -> Tuple[int, int]:
        """Map resolution (width, height); fixed for the profile's lifetime."""
        return self._resolution

    @property
    def is_valid(self) -> bool:
        return not self._released

    @property
    def is_released(self) -> bool:
        return self._released

    @property
    def lease_count(self) -> int:
        with self._lock:
            return self._leases

    def _maps_for(self, eye: Eye):
        if self._released:
            raise RuntimeError(f"{self!r} has been released")
        return self._maps[eye]

    def field_map(self, eye: Eye) -> OpticalFieldMap:
        return self._maps_for(eye)[0]

    def magnification_map(self, eye: Eye) -> MagnificationMap:
        return self._maps_for(eye)[1]

    @property
    def right_eye_map(self) -> OpticalFieldMap:
        return self.field_map(Eye.RIGHT)

    @property
    def left_eye_map(self) -> OpticalFieldMap:
        return self.field_map(Eye.LEFT)

    @property
    def right_eye_magnification(self) -> MagnificationMap:
        return self.magnification_map(Eye.RIGHT)

    @property
    def left_eye_magnification(self) -> MagnificationMap:
        return self.magnification_map(Eye.LEFT)

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def acquire(self) -> None:
        """Take a lease. Raises RuntimeError if the profile was released."""
        with self._lock:
            if self._released:
                raise RuntimeError(f"{self!r} has been released")
            self._leases += 1

    def release_lease(self) -> None:
        with self._lock:
            if self._leases <= 0:
                raise RuntimeError(f"{self!r} has no outstanding lease")
            self._leases -= 1

    @contextmanager
    def lease(self) -> Iterator["LensProfile"]:
        """Hold a lease for the duration of a with-block."""
        self.acquire()
        try:
            yield self
        finally:
            self.release_lease()

    def release(self) -> None:
        """
        Free the map buffers.

        Raises:
            RuntimeError: If a lease is still outstanding.
        """
        with self._lock:
            if self._released:
                return
            if self._leases > 0:
                raise RuntimeError(f"Cannot release {self!r} while it is leased")
            self._maps = {}
            self._released = True
