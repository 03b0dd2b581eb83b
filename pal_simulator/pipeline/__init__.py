"""
Pipeline module.

Per-frame orchestration of the PAL simulation and its debug outputs.
"""

from .debug import DebugOutput, flow_visualization
from .simulate import PalSimulation, load_psf_bank_or_empty

__all__ = [
    "DebugOutput",
    "flow_visualization",
    "PalSimulation",
    "load_psf_bank_or_empty",
]
