"""
Corridor power progression curves.

A corridor curve maps the normalized position along the corridor (0 at the
distance reference point, 1 at the near reference point) to the fraction of
the addition that has built up there.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Mapping, Sequence, Tuple, Union

import numpy as np
import yaml

from ..errors import InvalidArgument
from .prescription import CorridorDesign


@dataclass(frozen=True)
class CorridorCurve:
    """
    Monotonic [0, 1] -> [0, 1] curve, piecewise linear between control points.

    Attributes:
        t: Control point positions, strictly increasing, from 0 to 1
        values: Curve values at the control points, non-decreasing, from 0 to 1
    """
    t: Tuple[float, ...]
    values: Tuple[float, ...]

    def __post_init__(self):
        if len(self.t) != len(self.values) or len(self.t) < 2:
            raise InvalidArgument("Corridor curve needs at least two matching control points")
        t = np.asarray(self.t, dtype=np.float64)
        v = np.asarray(self.values, dtype=np.float64)
        if not np.all(np.diff(t) > 0):
            raise InvalidArgument(f"Corridor curve positions must increase: {self.t}")
        if not np.all(np.diff(v) >= 0):
            raise InvalidArgument(f"Corridor curve values must not decrease: {self.values}")
        if t[0] != 0.0 or t[-1] != 1.0 or v[0] != 0.0 or v[-1] != 1.0:
            raise InvalidArgument("Corridor curve must run from (0, 0) to (1, 1)")

    @classmethod
    def linear(cls) -> "CorridorCurve":
        return cls(t=(0.0, 1.0), values=(0.0, 1.0))

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]]) -> "CorridorCurve":
        """Create a curve from (t, value) pairs."""
        try:
            pairs = [(float(p[0]), float(p[1])) for p in points]
        except (TypeError, ValueError, IndexError) as e:
            raise InvalidArgument(f"Invalid corridor control points: {e}") from e
        return cls(t=tuple(p[0] for p in pairs), values=tuple(p[1] for p in pairs))

    def evaluate(self, t: Union[float, np.ndarray]) -> np.ndarray:
        """Evaluate the curve. Inputs are clamped to [0, 1]."""
        return np.interp(np.clip(t, 0.0, 1.0), self.t, self.values)

    def __call__(self, t: Union[float, np.ndarray]) -> np.ndarray:
        return self.evaluate(t)


def curves_from_config(config: Mapping[str, Sequence[Sequence[float]]]) -> Dict[CorridorDesign, CorridorCurve]:
    """
    Build the design -> curve table from a preset mapping.

    Designs missing from the mapping get a linear curve.
    """
    curves = {design: CorridorCurve.linear() for design in CorridorDesign}
    for name, points in config.items():
        try:
            design = CorridorDesign(str(name).lower())
        except ValueError as e:
            raise InvalidArgument(f"Unknown corridor design in preset: {name!r}") from e
        curves[design] = CorridorCurve.from_points(points)
    return curves


DEFAULT_PRESETS_PATH = Path(__file__).resolve().parent.parent / "configs" / "corridors.yaml"


def load_corridor_presets(path: Union[str, Path, None] = None) -> Dict[CorridorDesign, CorridorCurve]:
    """
    Load the corridor curve table from a YAML preset file.

    Args:
        path: Preset file. Defaults to the packaged configs/corridors.yaml.
    """
    path = Path(path) if path is not None else DEFAULT_PRESETS_PATH
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    return curves_from_config(data.get("corridors", data))
