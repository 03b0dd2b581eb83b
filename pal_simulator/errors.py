"""
Error taxonomy for the PAL simulator.

Only InvalidArgument and ResourceExhausted are hard failures of profile
generation. CapabilityUnavailable and DegradedInput are absorbed by the
blur/warp pass, which degrades instead of failing so the frame loop keeps
running.
"""


class PalSimulationError(Exception):
    """Base class for all simulator errors."""


class InvalidArgument(PalSimulationError, ValueError):
    """Malformed or out-of-range parameters. Caller must fix and retry."""


class ResourceExhausted(PalSimulationError, MemoryError):
    """Buffer allocation failed. Keep the previous profile and retry later."""


class CapabilityUnavailable(PalSimulationError, RuntimeError):
    """No usable convolution backend. The pass disables itself."""


class DegradedInput(PalSimulationError, UserWarning):
    """PSF bank missing or empty. A procedural kernel is used instead."""


class GenerationCancelled(PalSimulationError):
    """A newer request superseded an in-flight generation."""
