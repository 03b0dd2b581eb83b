"""
Optical modeling module.

Includes prescription and fitting parameters, corridor curves, the optical
field generator and the lens profile it produces.
"""

from .prescription import (
    CorridorDesign,
    EyePrescription,
    ProfileParameters,
    load_parameters,
    save_parameters,
)
from .corridor import CorridorCurve, load_corridor_presets
from .profile import Eye, LensProfile, MagnificationMap, OpticalFieldMap
from .map_generator import (
    MapSettings,
    PalMapGenerator,
    calibrate_pixels_per_degree,
    generate_profile,
)

__all__ = [
    "CorridorDesign",
    "EyePrescription",
    "ProfileParameters",
    "load_parameters",
    "save_parameters",
    "CorridorCurve",
    "load_corridor_presets",
    "Eye",
    "LensProfile",
    "MagnificationMap",
    "OpticalFieldMap",
    "MapSettings",
    "PalMapGenerator",
    "calibrate_pixels_per_degree",
    "generate_profile",
]
