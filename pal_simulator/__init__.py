"""
PAL Simulator

Real-time simulation of progressive addition lens (PAL) optics for rendered
eye frames:

- Optics: prescription and fitting parameters turned into per-eye optical
  field and magnification maps
- PSF: procedural kernels and a precomputed kernel bank indexed by sphere and
  cylinder power
- Render: tile-parallel warp then spatially-variant blur of each eye frame
- Lifecycle: background profile regeneration with safe retirement
"""

from .errors import (
    CapabilityUnavailable,
    DegradedInput,
    InvalidArgument,
    PalSimulationError,
    ResourceExhausted,
)
from .optics import (
    CorridorDesign,
    Eye,
    EyePrescription,
    LensProfile,
    MapSettings,
    PalMapGenerator,
    ProfileParameters,
    generate_profile,
)
from .psf import PsfBank, load_psf_bank
from .render import BlurWarpPass, FrameContext, PassSettings
from .lifecycle import ProfileLifecycleManager, ProfileState
from .pipeline import PalSimulation

__version__ = "0.1.0"

__all__ = [
    "CapabilityUnavailable",
    "DegradedInput",
    "InvalidArgument",
    "PalSimulationError",
    "ResourceExhausted",
    "CorridorDesign",
    "Eye",
    "EyePrescription",
    "LensProfile",
    "MapSettings",
    "PalMapGenerator",
    "ProfileParameters",
    "generate_profile",
    "PsfBank",
    "load_psf_bank",
    "BlurWarpPass",
    "FrameContext",
    "PassSettings",
    "ProfileLifecycleManager",
    "ProfileState",
    "PalSimulation",
]
