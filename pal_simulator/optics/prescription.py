"""
Prescription and fitting parameters.

Immutable value types consumed by the optical field generator, plus their
JSON form. Units: diopters for powers, degrees for angles, millimeters for
fitting geometry, pixels for the eye texture.
"""

import json
import math
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from ..errors import InvalidArgument


class CorridorDesign(Enum):
    """Progressive corridor design families."""
    HARD = "hard"
    SOFT = "soft"
    OFFICE = "office"
    SPORT = "sport"


@dataclass(frozen=True)
class EyePrescription:
    """
    Distance prescription for one eye.

    Attributes:
        sph: Spherical power in diopters
        cyl: Cylindrical power in diopters
        axis: Cylinder axis in degrees, [0, 180)
    """
    sph: float = 0.0
    cyl: float = 0.0
    axis: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EyePrescription":
        try:
            return cls(
                sph=float(data.get("sph", 0.0)),
                cyl=float(data.get("cyl", 0.0)),
                axis=float(data.get("axis", 0.0)),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise InvalidArgument(f"Invalid eye prescription {data!r}: {e}") from e


# (min, max) ranges exposed by the runtime adjustment panel
SPH_RANGE = (-8.0, 4.0)
CYL_RANGE = (-4.0, 0.0)
AXIS_RANGE = (0.0, 180.0)
ADD_RANGE = (0.0, 3.0)
CORRIDOR_LENGTH_RANGE_MM = (10.0, 20.0)
FITTING_HEIGHT_RANGE_MM = (12.0, 28.0)
INSET_NEAR_RANGE_MM = (0.0, 4.0)
FOV_HORIZONTAL_RANGE_DEG = (80.0, 130.0)
FOV_VERTICAL_RANGE_DEG = (70.0, 110.0)


def _clamp(value: float, bounds: Tuple[float, float]) -> float:
    return min(max(value, bounds[0]), bounds[1])


@dataclass(frozen=True)
class ProfileParameters:
    """
    Complete PAL parameter set for both eyes.

    Attributes:
        right_eye: OD distance prescription
        left_eye: OS distance prescription
        add: Near addition in diopters
        corridor: Corridor design family
        corridor_length_mm: Length of the progression corridor
        fitting_height_mm: Fitting cross height above the lens bottom
        inset_near_mm: Nasal inset of the near zone
        mono_pd_right_mm: Right monocular pupillary distance
        mono_pd_left_mm: Left monocular pupillary distance
        pantoscopic_tilt_deg: Frame pantoscopic tilt
        wrap_angle_deg: Frame wrap angle
        vertex_distance_mm: Back vertex distance
        headset_ipd_mm: Headset lens separation
        headset_fov_horizontal_deg: Headset horizontal field of view
        headset_fov_vertical_deg: Headset vertical field of view
        eye_texture_resolution: Per-eye render target size (width, height)
        use_eye_tracking: Eye tracking available on the headset
    """
    right_eye: EyePrescription = field(default_factory=EyePrescription)
    left_eye: EyePrescription = field(default_factory=EyePrescription)
    add: float = 0.0

    corridor: CorridorDesign = CorridorDesign.SOFT
    corridor_length_mm: float = 14.0
    fitting_height_mm: float = 18.0
    inset_near_mm: float = 2.0

    mono_pd_right_mm: float = 31.5
    mono_pd_left_mm: float = 31.5
    pantoscopic_tilt_deg: float = 10.0
    wrap_angle_deg: float = 6.0
    vertex_distance_mm: float = 12.0

    headset_ipd_mm: float = 63.0
    headset_fov_horizontal_deg: float = 100.0
    headset_fov_vertical_deg: float = 90.0
    eye_texture_resolution: Tuple[int, int] = (2048, 2048)

    use_eye_tracking: bool = False

    def eye(self, is_right_eye: bool) -> EyePrescription:
        return self.right_eye if is_right_eye else self.left_eye

    def validate(self) -> "ProfileParameters":
        """
        Check the values the generator cannot work with.

        Returns:
            self, so calls can be chained.

        Raises:
            InvalidArgument: If corridor length, resolution or FOV are
                non-positive or not finite.
        """
        if not math.isfinite(self.corridor_length_mm) or self.corridor_length_mm <= 0:
            raise InvalidArgument(
                f"corridor_length_mm must be positive, got {self.corridor_length_mm}"
            )
        width, height = self.eye_texture_resolution
        if width < 1 or height < 1:
            raise InvalidArgument(
                f"eye_texture_resolution must be at least 1x1, got {self.eye_texture_resolution}"
            )
        for name in ("headset_fov_horizontal_deg", "headset_fov_vertical_deg"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise InvalidArgument(f"{name} must be positive, got {value}")
        return self

    def clamped(self) -> "ProfileParameters":
        """Return a copy clamped to the adjustment panel's ranges."""
        def clamp_eye(eye: EyePrescription) -> EyePrescription:
            return EyePrescription(
                sph=_clamp(eye.sph, SPH_RANGE),
                cyl=_clamp(eye.cyl, CYL_RANGE),
                axis=_clamp(eye.axis, AXIS_RANGE),
            )

        width, height = self.eye_texture_resolution
        return replace(
            self,
            right_eye=clamp_eye(self.right_eye),
            left_eye=clamp_eye(self.left_eye),
            add=_clamp(self.add, ADD_RANGE),
            corridor_length_mm=_clamp(self.corridor_length_mm, CORRIDOR_LENGTH_RANGE_MM),
            fitting_height_mm=_clamp(self.fitting_height_mm, FITTING_HEIGHT_RANGE_MM),
            inset_near_mm=_clamp(self.inset_near_mm, INSET_NEAR_RANGE_MM),
            headset_fov_horizontal_deg=_clamp(
                self.headset_fov_horizontal_deg, FOV_HORIZONTAL_RANGE_DEG
            ),
            headset_fov_vertical_deg=_clamp(
                self.headset_fov_vertical_deg, FOV_VERTICAL_RANGE_DEG
            ),
            eye_texture_resolution=(max(int(width), 1), max(int(height), 1)),
        )

    def with_updates(self, **changes: Any) -> "ProfileParameters":
        """Return a new parameter set with some fields replaced."""
        return replace(self, **changes)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["corridor"] = self.corridor.value
        data["eye_texture_resolution"] = list(self.eye_texture_resolution)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProfileParameters":
        """
        Build parameters from a dictionary.

        Unknown keys are ignored and missing keys take their defaults.

        Raises:
            InvalidArgument: If a value has the wrong type or an unknown
                corridor design is named.
        """
        if not isinstance(data, dict):
            raise InvalidArgument(f"Expected a mapping, got {type(data).__name__}")

        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key in ("right_eye", "left_eye"):
                kwargs[key] = EyePrescription.from_dict(value)
            elif key == "corridor":
                try:
                    kwargs[key] = CorridorDesign(str(value).lower())
                except ValueError as e:
                    raise InvalidArgument(f"Unknown corridor design: {value!r}") from e
            elif key == "eye_texture_resolution":
                try:
                    width, height = value
                    kwargs[key] = (int(width), int(height))
                except (TypeError, ValueError) as e:
                    raise InvalidArgument(
                        f"eye_texture_resolution must be [width, height], got {value!r}"
                    ) from e
            elif key == "use_eye_tracking":
                kwargs[key] = bool(value)
            else:
                try:
                    kwargs[key] = float(value)
                except (TypeError, ValueError) as e:
                    raise InvalidArgument(f"{key} must be a number, got {value!r}") from e
        return cls(**kwargs)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str) -> "ProfileParameters":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidArgument(f"Invalid parameter JSON: {e}") from e
        return cls.from_dict(data)


def save_parameters(parameters: ProfileParameters, path: Union[str, Path]) -> None:
    """Write parameters to a JSON file."""
    Path(path).write_text(parameters.to_json(), encoding="utf-8")


def load_parameters(path: Union[str, Path]) -> ProfileParameters:
    """Read parameters from a JSON file."""
    return ProfileParameters.from_json(Path(path).read_text(encoding="utf-8"))
