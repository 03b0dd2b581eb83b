"""
Profile lifecycle management.

Owns the active LensProfile, regenerates profiles in the background when
parameters change and retires superseded profiles safely:

- Only the most recent request can become active. Older in-flight
  generations are cancelled and their results are dropped.
- A superseded profile is retired, not freed. It is released at the first
  frame_completed() call confirming that every frame which could still be
  reading it has finished, and only once no lease on it remains.
- Nothing here blocks the frame loop. Until a new profile is ready the
  previous one stays active.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .errors import GenerationCancelled, InvalidArgument, ResourceExhausted
from .optics.map_generator import PalMapGenerator
from .optics.prescription import ProfileParameters
from .optics.profile import LensProfile
from .render.blur_pass import BlurWarpPass

log = logging.getLogger(__name__)


class ProfileState(Enum):
    """Lifecycle states."""
    EMPTY = "empty"
    GENERATING = "generating"
    ACTIVE = "active"
    RETIRING = "retiring"


@dataclass
class _RetiredProfile:
    profile: LensProfile
    # First frame index whose completion guarantees no pass still reads it
    release_after_frame: int


class ProfileLifecycleManager:
    """
    Regenerates, publishes and retires lens profiles.

    Example:
        >>> manager = ProfileLifecycleManager(PalMapGenerator(), blur_pass)
        >>> manager.request_update(parameters)   # returns immediately
        >>> ...
        >>> manager.frame_completed(frame_index)  # after each frame's passes
    """

    def __init__(
        self,
        generator: Optional[PalMapGenerator] = None,
        blur_pass: Optional[BlurWarpPass] = None,
        max_workers: int = 1,
    ):
        self._generator = generator if generator is not None else PalMapGenerator()
        self._blur_pass = blur_pass
        self._executor = ThreadPoolExecutor(
            max_workers=max(int(max_workers), 1),
            thread_name_prefix="pal-generate",
        )

        self._lock = threading.Lock()
        self._active: Optional[LensProfile] = None
        self._retiring: List[_RetiredProfile] = []
        self._latest_request = 0
        self._cancel_event: Optional[threading.Event] = None
        self._pending: Optional[Future] = None
        self._last_completed_frame = -1
        self._closed = False
        self.last_error: Optional[Exception] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ProfileState:
        with self._lock:
            if self._pending is not None and not self._pending.done():
                return ProfileState.GENERATING
            if self._active is not None:
                return ProfileState.ACTIVE
            if self._retiring:
                return ProfileState.RETIRING
            return ProfileState.EMPTY

    @property
    def active_profile(self) -> Optional[LensProfile]:
        with self._lock:
            return self._active

    @property
    def retiring_count(self) -> int:
        with self._lock:
            return len(self._retiring)

    def profile_state(self, profile: LensProfile) -> ProfileState:
        """Where a given profile is in its lifecycle."""
        with self._lock:
            if profile is self._active:
                return ProfileState.ACTIVE
            if any(r.profile is profile for r in self._retiring):
                return ProfileState.RETIRING
            return ProfileState.EMPTY

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def request_update(self, parameters: ProfileParameters) -> Future:
        """
        Start generating a profile for new parameters.

        Any generation still in flight is cancelled. The returned future
        resolves to the activated profile, or to None if a newer request
        superseded this one.

        Raises:
            RuntimeError: If the manager was shut down.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("ProfileLifecycleManager has been shut down")
            self._latest_request += 1
            request_id = self._latest_request
            if self._cancel_event is not None:
                self._cancel_event.set()
            cancel_event = threading.Event()
            self._cancel_event = cancel_event
            future = self._executor.submit(self._generate, parameters, request_id, cancel_event)
            self._pending = future

        log.debug("Requested profile generation %d", request_id)
        return future

    def generate_now(self, parameters: ProfileParameters, timeout: Optional[float] = None) -> Optional[LensProfile]:
        """Request a profile and wait for it. Intended for start-up."""
        return self.request_update(parameters).result(timeout=timeout)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait until the latest request has finished. Returns False on timeout."""
        with self._lock:
            pending = self._pending
        if pending is None:
            return True
        done, _ = wait([pending], timeout=timeout)
        return bool(done)

    def _record_error(self, request_id: int, error: Exception) -> None:
        # Only the latest request reports its failure
        with self._lock:
            if request_id == self._latest_request:
                self.last_error = error

    def _generate(
        self,
        parameters: ProfileParameters,
        request_id: int,
        cancel_event: threading.Event,
    ) -> Optional[LensProfile]:
        try:
            profile = self._generator.generate(
                parameters, cancel_event=cancel_event, generation_id=request_id
            )
        except GenerationCancelled:
            log.debug("Profile generation %d superseded before completion", request_id)
            return None
        except ResourceExhausted as e:
            log.warning("Profile generation %d failed, keeping previous profile: %s", request_id, e)
            self._record_error(request_id, e)
            raise
        except InvalidArgument as e:
            log.warning("Profile generation %d rejected parameters: %s", request_id, e)
            self._record_error(request_id, e)
            raise

        with self._lock:
            if request_id != self._latest_request or self._closed:
                superseded = True
            else:
                superseded = False
                previous = self._active
                self._active = profile
                self._cancel_event = None
                self.last_error = None
                if previous is not None:
                    self._retiring.append(
                        _RetiredProfile(previous, self._last_completed_frame + 1)
                    )
                if self._blur_pass is not None:
                    self._blur_pass.set_active_profile(profile)

        if superseded:
            log.debug("Discarding superseded profile %d", request_id)
            profile.release()
            return None

        log.info(
            "Activated PAL profile %d (%dx%d maps, %.2f px/deg)",
            request_id, profile.resolution[0], profile.resolution[1], profile.pixels_per_degree,
        )
        return profile

    # ------------------------------------------------------------------
    # Retirement
    # ------------------------------------------------------------------

    def frame_completed(self, frame_index: int) -> int:
        """
        Synchronization point: every pass of frame_index has finished.

        Releases retired profiles that no frame can still be reading.

        Returns:
            Number of profiles released.
        """
        released = 0
        with self._lock:
            self._last_completed_frame = max(self._last_completed_frame, frame_index)
            remaining = []
            for retired in self._retiring:
                if self._last_completed_frame < retired.release_after_frame:
                    remaining.append(retired)
                    continue
                try:
                    retired.profile.release()
                except RuntimeError:
                    # Still leased; try again at the next frame
                    remaining.append(retired)
                    continue
                released += 1
            self._retiring = remaining

        if released:
            log.debug("Released %d retired profile(s) after frame %d", released, frame_index)
        return released

    def shutdown(self) -> None:
        """Cancel pending work and release every profile."""
        with self._lock:
            self._closed = True
            if self._cancel_event is not None:
                self._cancel_event.set()
        self._executor.shutdown(wait=True)

        with self._lock:
            if self._blur_pass is not None:
                self._blur_pass.set_active_profile(None)
            profiles = [r.profile for r in self._retiring]
            if self._active is not None:
                profiles.append(self._active)
            self._active = None
            self._retiring = []

        for profile in profiles:
            try:
                profile.release()
            except RuntimeError as e:
                log.warning("Profile still in use at shutdown: %s", e)

    def __enter__(self) -> "ProfileLifecycleManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
