"""
Optical field generator.

Turns a prescription and fitting parameters into per-eye optical field maps
(local power, cylinder power, meridian angle) and magnification maps.

Every map cell is a pure function of its UV coordinate and the parameters,
so rows are computed in independent bands on a thread pool. Each band writes
a disjoint slice of the output buffers.
"""

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from ..errors import GenerationCancelled, InvalidArgument, ResourceExhausted
from .corridor import CorridorCurve, load_corridor_presets
from .prescription import CorridorDesign, EyePrescription, ProfileParameters
from .profile import LensProfile, MagnificationMap, OpticalFieldMap

log = logging.getLogger(__name__)

# Floor applied to every denominator
EPSILON = 0.01


@dataclass
class MapSettings:
    """
    Generator configuration.

    Attributes:
        texture_resolution: Map size (width, height). None follows the eye
                            texture resolution of the parameters.
        reference_corridor_length_mm: Corridor length that spans the full
                                      curve over the map height
        astigmatism_falloff: Exponent of the lateral cylinder weight
        max_meridian_rotation_deg: Meridian rotation reached at the near zone
        magnification_scale: Magnification per diopter
        meters_to_degrees: Conversion applied to the inset offset
        corridor_curves: Curve per corridor design
        row_band: Rows computed per parallel task
        max_workers: Thread pool size (None lets the executor decide)
        near_reference_m: Near zone reference distance
        intermediate_reference_m: Intermediate zone reference distance
        distance_reference_m: Distance zone reference distance
    """
    texture_resolution: Optional[Tuple[int, int]] = None
    reference_corridor_length_mm: float = 14.0
    astigmatism_falloff: float = 2.5
    max_meridian_rotation_deg: float = 20.0
    magnification_scale: float = 0.01
    meters_to_degrees: float = 180.0 / math.pi
    corridor_curves: Dict[CorridorDesign, CorridorCurve] = field(
        default_factory=load_corridor_presets
    )
    row_band: int = 64
    max_workers: Optional[int] = None

    near_reference_m: float = 0.4
    intermediate_reference_m: float = 1.5
    distance_reference_m: float = 6.0

    def curve_for(self, design: CorridorDesign) -> CorridorCurve:
        return self.corridor_curves.get(design) or CorridorCurve.linear()


def calibrate_pixels_per_degree(parameters: ProfileParameters) -> float:
    """
    Eye texture pixels per degree of field of view.

    Takes the smaller of the horizontal and vertical densities so that a
    physical offset never overshoots on either axis.
    """
    width, height = parameters.eye_texture_resolution
    horizontal = width / max(parameters.headset_fov_horizontal_deg, 1.0)
    vertical = height / max(parameters.headset_fov_vertical_deg, 1.0)
    return min(horizontal, vertical)


def _allocate(shape: Tuple[int, ...]) -> np.ndarray:
    try:
        return np.empty(shape, dtype=np.float32)
    except MemoryError as e:
        raise ResourceExhausted(f"Cannot allocate map buffer of shape {shape}") from e


class PalMapGenerator:
    """
    Generates lens profiles from parameters.

    Example:
        >>> generator = PalMapGenerator(MapSettings(texture_resolution=(256, 256)))
        >>> profile = generator.generate(parameters)
        >>> profile.right_eye_map.local_power.shape
        (256, 256)
    """

    def __init__(self, settings: Optional[MapSettings] = None):
        self.settings = settings if settings is not None else MapSettings()

    def map_resolution(self, parameters: ProfileParameters) -> Tuple[int, int]:
        """(width, height) of the maps generated for these parameters."""
        if self.settings.texture_resolution is not None:
            width, height = self.settings.texture_resolution
        else:
            width, height = parameters.eye_texture_resolution
        return (max(int(width), 1), max(int(height), 1))

    def generate(
        self,
        parameters: ProfileParameters,
        cancel_event: Optional[threading.Event] = None,
        generation_id: int = 0,
    ) -> LensProfile:
        """
        Generate the lens profile for a parameter set.

        Args:
            parameters: Prescription and fitting parameters
            cancel_event: When set, generation stops at the next band
            generation_id: Tag stored on the returned profile

        Returns:
            LensProfile owning freshly generated maps

        Raises:
            InvalidArgument: Corridor length, resolution or FOV non-positive
            ResourceExhausted: Map buffers could not be allocated
            GenerationCancelled: cancel_event was set before completion
        """
        parameters.validate()
        if self.settings.texture_resolution is not None:
            width, height = self.settings.texture_resolution
            if width < 1 or height < 1:
                raise InvalidArgument(
                    f"texture_resolution must be at least 1x1, got {self.settings.texture_resolution}"
                )

        width, height = self.map_resolution(parameters)
        pixels_per_degree = calibrate_pixels_per_degree(parameters)
        log.debug(
            "Generating %dx%d PAL maps (id=%d, corridor=%s, ppd=%.3f)",
            width, height, generation_id, parameters.corridor.value, pixels_per_degree,
        )

        right_field = _allocate((height, width, 4))
        left_field = _allocate((height, width, 4))
        right_mag = _allocate((height, width, 2))
        left_mag = _allocate((height, width, 2))

        jobs = [
            (parameters.right_eye, True, right_field, right_mag),
            (parameters.left_eye, False, left_field, left_mag),
        ]
        band = max(int(self.settings.row_band), 1)
        tasks = [
            (eye, is_right, field_buf, mag_buf, start, min(start + band, height))
            for eye, is_right, field_buf, mag_buf in jobs
            for start in range(0, height, band)
        ]

        def run(task) -> bool:
            if cancel_event is not None and cancel_event.is_set():
                return False
            eye, is_right, field_buf, mag_buf, start, stop = task
            self._fill_rows(
                eye, parameters, is_right, pixels_per_degree,
                field_buf, mag_buf, start, stop,
            )
            return True

        if len(tasks) == 1 or self.settings.max_workers == 1:
            completed = [run(task) for task in tasks]
        else:
            with ThreadPoolExecutor(max_workers=self.settings.max_workers) as pool:
                completed = list(pool.map(run, tasks))

        if not all(completed) or (cancel_event is not None and cancel_event.is_set()):
            raise GenerationCancelled(f"Generation {generation_id} cancelled")

        return LensProfile(
            right_eye_map=OpticalFieldMap(right_field),
            left_eye_map=OpticalFieldMap(left_field),
            right_eye_magnification=MagnificationMap(right_mag),
            left_eye_magnification=MagnificationMap(left_mag),
            pixels_per_degree=pixels_per_degree,
            source_parameters=parameters,
            near_reference_m=self.settings.near_reference_m,
            intermediate_reference_m=self.settings.intermediate_reference_m,
            distance_reference_m=self.settings.distance_reference_m,
            generation_id=generation_id,
        )

    def _fill_rows(
        self,
        eye: EyePrescription,
        parameters: ProfileParameters,
        is_right_eye: bool,
        pixels_per_degree: float,
        field_buf: np.ndarray,
        mag_buf: np.ndarray,
        start: int,
        stop: int,
    ) -> None:
        """Compute rows [start, stop) of one eye's maps."""
        settings = self.settings
        height, width = field_buf.shape[:2]

        u = np.arange(width, dtype=np.float64) / max(width - 1, 1)
        v = np.arange(start, stop, dtype=np.float64) / max(height - 1, 1)
        uu, vv = np.meshgrid(u, v)

        # Progressive power along the corridor
        length_scale = (
            max(parameters.corridor_length_mm, EPSILON)
            / max(settings.reference_corridor_length_mm, EPSILON)
        )
        t = np.clip(vv * length_scale, 0.0, 1.0)
        corridor = settings.curve_for(parameters.corridor).evaluate(t)
        local_power = eye.sph + corridor * parameters.add

        # Cylinder builds up towards the lateral edges
        lateral_weight = np.clip(np.abs(uu - 0.5) * 2.0, 0.0, 1.0) ** settings.astigmatism_falloff
        cyl_power = eye.cyl * lateral_weight

        meridian_angle = eye.axis + vv * settings.max_meridian_rotation_deg

        field_buf[start:stop, :, 0] = local_power
        field_buf[start:stop, :, 1] = cyl_power
        field_buf[start:stop, :, 2] = meridian_angle
        field_buf[start:stop, :, 3] = 0.0

        # Near inset: nasal shift, mirrored between eyes
        direction = -1.0 if is_right_eye else 1.0
        inset_x = direction * parameters.inset_near_mm * 0.001
        inset_y = -parameters.fitting_height_mm * 0.001
        to_uv = pixels_per_degree * settings.meters_to_degrees

        magnification = settings.magnification_scale * local_power
        mag_buf[start:stop, :, 0] = magnification * (uu - 0.5 + inset_x * to_uv)
        mag_buf[start:stop, :, 1] = magnification * (vv - 0.5 + inset_y * to_uv)


def generate_profile(
    parameters: ProfileParameters,
    settings: Optional[MapSettings] = None,
    cancel_event: Optional[threading.Event] = None,
) -> LensProfile:
    """
    Convenience function to generate a lens profile.

    Args:
        parameters: Prescription and fitting parameters
        settings: Generator settings (defaults if None)
        cancel_event: Optional cancellation flag

    Returns:
        Generated LensProfile
    """
    return PalMapGenerator(settings).generate(parameters, cancel_event=cancel_event)
