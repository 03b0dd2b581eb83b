"""
Per-frame PAL simulation.

Wires the optical field generator, the PSF bank, the blur/warp pass and the
profile lifecycle manager together:

Parameters -> Profile (background) -> per eye: Warp -> Blur -> frame_completed
"""

import logging
from concurrent.futures import Future
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import numpy as np

from ..config import Config, get_config
from ..configs import (
    create_map_settings_from_config,
    create_pass_settings_from_config,
    load_map_settings,
)
from ..errors import DegradedInput
from ..lifecycle import ProfileLifecycleManager
from ..optics.map_generator import MapSettings, PalMapGenerator
from ..optics.prescription import ProfileParameters
from ..optics.profile import Eye, LensProfile
from ..psf.bank import PsfBank, load_psf_bank
from ..render.blur_pass import BlurWarpPass, FrameContext, PassSettings
from .debug import DebugOutput

log = logging.getLogger(__name__)


def load_psf_bank_or_empty(path: Union[str, Path, None]) -> PsfBank:
    """
    Load a PSF bank, degrading to an empty bank when it is unavailable.

    A bank file that exists but is malformed raises InvalidArgument.
    """
    if path is None:
        log.warning("No PSF bank configured; using procedural fallback kernels")
        return PsfBank.empty()
    try:
        return load_psf_bank(path)
    except DegradedInput as e:
        log.warning("%s; using procedural fallback kernels", e)
        return PsfBank.empty()


class PalSimulation:
    """
    Complete PAL simulation for a stereo frame loop.

    Example:
        >>> sim = PalSimulation(ProfileParameters(add=2.0))
        >>> right_out, left_out = sim.render_frame(right, left)
        >>> sim.update_profile(new_parameters)   # non-blocking
        >>> sim.close()
    """

    def __init__(
        self,
        parameters: Optional[ProfileParameters] = None,
        map_settings: Optional[MapSettings] = None,
        pass_settings: Optional[PassSettings] = None,
        psf_bank: Optional[PsfBank] = None,
        generation_workers: int = 1,
    ):
        self.generator = PalMapGenerator(map_settings)
        self.blur_pass = BlurWarpPass(psf_bank, pass_settings)
        self.lifecycle = ProfileLifecycleManager(
            self.generator, self.blur_pass, max_workers=generation_workers
        )
        self._next_frame = 0

        if parameters is None:
            log.warning("No PAL parameters supplied; frames pass through until update_profile()")
        else:
            self.lifecycle.generate_now(parameters)

    @classmethod
    def from_config(
        cls,
        config: Optional[Config] = None,
        parameters: Optional[ProfileParameters] = None,
        psf_bank_path: Union[str, Path, None] = None,
    ) -> "PalSimulation":
        """
        Create a fully configured simulation from the runtime config.

        Args:
            config: Runtime config. If None, uses the global config.
            parameters: Initial parameters
            psf_bank_path: Overrides the configured bank path
        """
        if config is None:
            config = get_config()

        map_settings = create_map_settings_from_config(
            load_map_settings(config.generator.preset), overrides=config.generator
        )
        pass_settings = create_pass_settings_from_config(config.blur_pass)
        bank = load_psf_bank_or_empty(psf_bank_path or config.blur_pass.psf_bank)

        return cls(
            parameters=parameters,
            map_settings=map_settings,
            pass_settings=pass_settings,
            psf_bank=bank,
            generation_workers=config.lifecycle.generation_workers,
        )

    @property
    def active_profile(self) -> Optional[LensProfile]:
        return self.lifecycle.active_profile

    def update_profile(self, parameters: ProfileParameters) -> Future:
        """Request regeneration for new parameters without blocking."""
        return self.lifecycle.request_update(parameters)

    def set_psf_bank(self, bank: PsfBank) -> None:
        self.blur_pass.set_psf_bank(bank)

    def render_frame(
        self,
        right: Optional[np.ndarray],
        left: Optional[np.ndarray] = None,
        frame_index: Optional[int] = None,
        debug: bool = False,
    ) -> Union[
        Tuple[Optional[np.ndarray], Optional[np.ndarray]],
        Tuple[Optional[np.ndarray], Optional[np.ndarray], Dict[Eye, DebugOutput]],
    ]:
        """
        Run the pass on both eye frames of one frame.

        Args:
            right: Right eye frame (None to skip)
            left: Left eye frame (None to skip)
            frame_index: Frame number; defaults to a running counter
            debug: If True, also return intermediate outputs per eye

        Returns:
            If debug=False: (right_out, left_out)
            If debug=True: (right_out, left_out, {Eye: DebugOutput})
        """
        if frame_index is None:
            frame_index = self._next_frame
        self._next_frame = frame_index + 1

        debug_out: Dict[Eye, DebugOutput] = {}
        outputs = []
        for eye, frame in ((Eye.RIGHT, right), (Eye.LEFT, left)):
            if frame is None:
                outputs.append(None)
                continue
            buffers = {} if debug else None
            outputs.append(self.blur_pass.enqueue(FrameContext(frame_index, eye), frame, buffers))
            if debug:
                debug_out[eye] = DebugOutput.from_pass(eye, frame, buffers, self.active_profile)

        # Both eyes' passes have completed
        self.lifecycle.frame_completed(frame_index)

        if debug:
            return (outputs[0], outputs[1], debug_out)
        return (outputs[0], outputs[1])

    def close(self) -> None:
        """Shut down background generation and release every buffer."""
        self.lifecycle.shutdown()
        self.blur_pass.close()

    def __enter__(self) -> "PalSimulation":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
