"""
Spatially-variant blur and warp pass.

Applies the active lens profile to a rendered eye frame in two stages:

1. Warp: every output pixel samples the source at uv + magnification(uv).
2. Blur: the frame is cut into tiles; each tile looks up the optical field,
   selects or blends a PSF kernel for its (local power, cylinder) and
   convolves its neighbourhood in the warped buffer.

Warp always runs before blur. Each stage reads only from the buffer the
previous stage completed and writes into a separate buffer, and tiles only
share the completion barrier at the end of a stage.

The pass never raises into the render loop: without a profile, without a
working backend, or when buffers cannot be allocated, it returns the source
frame unmodified.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

import numpy as np
from scipy import ndimage

from ..errors import CapabilityUnavailable, InvalidArgument, ResourceExhausted
from ..optics.profile import (
    CYL_POWER,
    LOCAL_POWER,
    MERIDIAN_ANGLE,
    Eye,
    LensProfile,
    MagnificationMap,
    OpticalFieldMap,
)
from ..psf.bank import InterpolationPolicy, PsfBank
from ..psf.psf_model import MAX_KERNEL_SIZE_PX, fallback_kernel, rotate_kernel
from .backend import ConvolutionBackend, ScipyBackend
from .buffers import FrameBuffers
from .tiles import Tile, partition

log = logging.getLogger(__name__)

# Below this cylinder power the kernel is not rotated
CYL_EPSILON = 1e-4


class Granularity(Enum):
    """Resolution at which kernels vary across the frame."""
    TILE = "tile"
    PIXEL = "pixel"


@dataclass
class PassSettings:
    """
    Blur/warp pass configuration.

    Attributes:
        tile_size: Tile edge in pixels
        interpolation: Bank lookup policy
        granularity: Kernel per tile, or per-pixel blend of bank kernels
        warp_order: Spline order of the warp resampling (1 = bilinear)
        max_workers: Tile thread pool size (1 runs tiles inline)
        fallback_kernel_size: Edge of procedural kernels (None = auto)
    """
    tile_size: int = 32
    interpolation: InterpolationPolicy = InterpolationPolicy.BILINEAR
    granularity: Granularity = Granularity.TILE
    warp_order: int = 1
    max_workers: Optional[int] = None
    fallback_kernel_size: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.tile_size, int) or self.tile_size < 1:
            raise InvalidArgument(f"tile_size must be a positive integer, got {self.tile_size!r}")
        if not isinstance(self.warp_order, int) or not 0 <= self.warp_order <= 5:
            raise InvalidArgument(f"warp_order must be in 0..5, got {self.warp_order!r}")
        if self.max_workers is not None and self.max_workers < 1:
            raise InvalidArgument(f"max_workers must be positive, got {self.max_workers}")
        if self.fallback_kernel_size is not None and self.fallback_kernel_size < 1:
            raise InvalidArgument(
                f"fallback_kernel_size must be positive, got {self.fallback_kernel_size}"
            )


@dataclass(frozen=True)
class FrameContext:
    """Identifies one dispatch: which frame and which eye."""
    frame_index: int
    eye: Eye = Eye.RIGHT


@dataclass(frozen=True)
class PassParameters:
    """Typed parameter block bound to one dispatch."""
    source_size: Tuple[int, int]
    eye_index: int
    pixels_per_degree: float
    near_distance_m: float
    intermediate_distance_m: float
    distance_m: float
    tile_size: int

    @classmethod
    def from_profile(
        cls,
        profile: LensProfile,
        frame_context: FrameContext,
        source_shape: Tuple[int, ...],
        tile_size: int,
    ) -> "PassParameters":
        return cls(
            source_size=(source_shape[1], source_shape[0]),
            eye_index=frame_context.eye.value,
            pixels_per_degree=profile.pixels_per_degree,
            near_distance_m=profile.near_reference_m,
            intermediate_distance_m=profile.intermediate_reference_m,
            distance_m=profile.distance_reference_m,
            tile_size=tile_size,
        )


def _pixel_uv(x, y, width: int, height: int):
    return (np.asarray(x, dtype=np.float64) / max(width - 1, 1),
            np.asarray(y, dtype=np.float64) / max(height - 1, 1))


def _to_dtype(result: np.ndarray, dtype: np.dtype) -> np.ndarray:
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.rint(result), info.min, info.max).astype(dtype)
    return result.astype(dtype)


class BlurWarpPass:
    """
    Render-pipeline hook applying the active lens profile to eye frames.

    Example:
        >>> blur_pass = BlurWarpPass(PsfBank.synthetic([-4, 0, 4], [-2, 0]))
        >>> blur_pass.set_active_profile(profile)
        >>> out = blur_pass.enqueue(FrameContext(0, Eye.RIGHT), frame)
    """

    def __init__(
        self,
        psf_bank: Optional[PsfBank] = None,
        settings: Optional[PassSettings] = None,
        backend: Optional[ConvolutionBackend] = None,
    ):
        self.settings = settings if settings is not None else PassSettings()
        self._bank = psf_bank if psf_bank is not None else PsfBank.empty()
        self._backend = backend if backend is not None else ScipyBackend()
        self._buffers = FrameBuffers(depth=2)

        self._lock = threading.Lock()
        self._profile: Optional[LensProfile] = None
        self._warp_cache: Dict[Eye, Tuple[Tuple, Tuple[np.ndarray, np.ndarray]]] = {}
        self._executor: Optional[ThreadPoolExecutor] = None
        self._degraded_logged = False
        self.last_parameters: Optional[PassParameters] = None

        self._enabled = True
        try:
            self._backend.check()
        except CapabilityUnavailable as e:
            log.error("Disabling PAL blur/warp pass: %s", e)
            self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def active_profile(self) -> Optional[LensProfile]:
        with self._lock:
            return self._profile

    @property
    def psf_bank(self) -> PsfBank:
        return self._bank

    def set_active_profile(self, profile: Optional[LensProfile]) -> None:
        """Publish the profile used by subsequent dispatches."""
        with self._lock:
            self._profile = profile
            self._warp_cache.clear()

    def set_psf_bank(self, bank: PsfBank) -> None:
        """Swap in a reloaded bank. Dispatches in flight keep the old one."""
        with self._lock:
            self._bank = bank
            self._degraded_logged = False

    def close(self) -> None:
        """Shut down the tile pool and drop buffers."""
        with self._lock:
            executor, self._executor = self._executor, None
            self._warp_cache.clear()
        if executor is not None:
            executor.shutdown(wait=True)
        self._buffers.release()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def enqueue(
        self,
        frame_context: FrameContext,
        source: np.ndarray,
        debug: Optional[dict] = None,
    ) -> np.ndarray:
        """
        Filter one eye frame.

        Args:
            frame_context: Frame index and eye
            source: (H, W) or (H, W, C) rendered frame
            debug: Optional dict receiving "warped" and "filtered" copies

        Returns:
            Filtered frame with the source's shape and dtype, or the source
            itself when the pass is disabled or has no profile.
        """
        if not self._enabled:
            return source

        frame = np.asarray(source)
        with self._lock:
            profile = self._profile
            bank = self._bank
        if profile is None:
            return source

        try:
            profile.acquire()
        except RuntimeError:
            log.warning("Active profile was released before dispatch; skipping frame %d",
                        frame_context.frame_index)
            return source

        try:
            return self._dispatch(profile, bank, frame_context, frame, debug)
        except CapabilityUnavailable as e:
            log.error("Disabling PAL blur/warp pass: %s", e)
            self._enabled = False
            return source
        except ResourceExhausted as e:
            log.warning("Skipping PAL pass for frame %d: %s", frame_context.frame_index, e)
            return source
        finally:
            profile.release_lease()

    def _dispatch(
        self,
        profile: LensProfile,
        bank: PsfBank,
        frame_context: FrameContext,
        source: np.ndarray,
        debug: Optional[dict],
    ) -> np.ndarray:
        eye = frame_context.eye
        height, width = source.shape[:2]
        self.last_parameters = PassParameters.from_profile(
            profile, frame_context, source.shape, self.settings.tile_size
        )

        # The slot is ours until the result has been copied out of it
        with self._buffers.slot(eye, source.shape) as slot:
            warped, destination = slot.warp, slot.destination

            # Stage 1: warp into the intermediate buffer
            self._warp(profile, eye, source, warped)
            if debug is not None:
                debug["warped"] = warped.copy()

            # Stage 2: tile-parallel blur from the intermediate buffer
            if bank.is_empty:
                self._log_degraded()
                pad = (self._fallback_size() or MAX_KERNEL_SIZE_PX) // 2
            else:
                pad = bank.kernel_size // 2
            pad_width = ((pad, pad), (pad, pad)) + ((0, 0),) * (source.ndim - 2)
            padded = np.pad(warped, pad_width, mode='edge')

            field_map = profile.field_map(eye)
            tiles = partition(width, height, self.settings.tile_size)

            def run(tile: Tile) -> None:
                self._filter_tile(tile, padded, pad, field_map, bank, destination)

            if self.settings.max_workers == 1 or len(tiles) == 1:
                for tile in tiles:
                    run(tile)
            else:
                # Completion of every tile is the stage barrier
                for future in [self._pool().submit(run, tile) for tile in tiles]:
                    future.result()

            if debug is not None:
                debug["filtered"] = destination.copy()
            return _to_dtype(destination, source.dtype)

    def _pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.settings.max_workers,
                    thread_name_prefix="pal-tile",
                )
            return self._executor

    def _fallback_size(self) -> Optional[int]:
        size = self.settings.fallback_kernel_size
        return None if size is None else max(int(size), 1) | 1

    def _log_degraded(self) -> None:
        if not self._degraded_logged:
            log.warning("PSF bank is empty; using procedural fallback kernels")
            self._degraded_logged = True

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _warp_coordinates(
        self,
        profile: LensProfile,
        eye: Eye,
        magnification: MagnificationMap,
        height: int,
        width: int,
    ) -> Tuple[np.ndarray, np.ndarray]:
        key = (id(profile), profile.generation_id, height, width)
        with self._lock:
            cached = self._warp_cache.get(eye)
        if cached is not None and cached[0] == key:
            return cached[1]

        y, x = np.mgrid[:height, :width].astype(np.float64)
        u, v = _pixel_uv(x, y, width, height)
        vectors = magnification.sample(u, v)
        src_x = x + vectors[..., 0] * max(width - 1, 0)
        src_y = y + vectors[..., 1] * max(height - 1, 0)

        with self._lock:
            # Only cache for the profile that is still active; one frame size per eye
            if self._profile is profile:
                self._warp_cache[eye] = (key, (src_y, src_x))
        return src_y, src_x

    def _warp(self, profile: LensProfile, eye: Eye, source: np.ndarray, out: np.ndarray) -> None:
        """Resample the source at uv + magnification(uv) into out."""
        height, width = source.shape[:2]
        src_y, src_x = self._warp_coordinates(
            profile, eye, profile.magnification_map(eye), height, width
        )
        order = self.settings.warp_order
        image = source.astype(np.float32, copy=False)

        if image.ndim == 2:
            ndimage.map_coordinates(image, [src_y, src_x], output=out, order=order, mode='nearest')
        else:
            # Handle color images
            for c in range(image.shape[2]):
                out[:, :, c] = ndimage.map_coordinates(
                    image[:, :, c], [src_y, src_x], order=order, mode='nearest'
                )

    def _kernel_for(self, bank: PsfBank, local_power: float, cyl_power: float, meridian: float) -> np.ndarray:
        if bank.is_empty:
            kernel = fallback_kernel(local_power, cyl_power, self._fallback_size())
        else:
            kernel = bank.kernel_for(local_power, cyl_power, self.settings.interpolation)
        if abs(cyl_power) > CYL_EPSILON:
            kernel = rotate_kernel(kernel, meridian)
        return kernel

    def _filter_tile(
        self,
        tile: Tile,
        padded: np.ndarray,
        pad: int,
        field_map: OpticalFieldMap,
        bank: PsfBank,
        destination: np.ndarray,
    ) -> None:
        """Convolve one tile of the padded warped frame into the destination."""
        height = padded.shape[0] - 2 * pad
        width = padded.shape[1] - 2 * pad

        cx, cy = tile.center
        u, v = _pixel_uv(cx, cy, width, height)
        sample = field_map.sample(u, v)
        local_power = float(sample[LOCAL_POWER])
        cyl_power = float(sample[CYL_POWER])
        meridian = float(sample[MERIDIAN_ANGLE])

        if self.settings.granularity is Granularity.PIXEL and not bank.is_empty:
            destination[tile.slices] = self._blend_tile(
                tile, padded, pad, field_map, bank, cyl_power, meridian
            )
            return

        kernel = self._kernel_for(bank, local_power, cyl_power, meridian)
        r = kernel.shape[0] // 2
        region = padded[
            tile.y0 + pad - r: tile.y1 + pad + r,
            tile.x0 + pad - r: tile.x1 + pad + r,
        ]
        destination[tile.slices] = self._backend.convolve(region, kernel)

    def _blend_tile(
        self,
        tile: Tile,
        padded: np.ndarray,
        pad: int,
        field_map: OpticalFieldMap,
        bank: PsfBank,
        cyl_power: float,
        meridian: float,
    ) -> np.ndarray:
        """
        Per-pixel kernel blend inside one tile.

        Convolution is linear, so blending the outputs of each contributing
        bank kernel with per-pixel weights equals convolving each pixel with
        its own blended kernel. Rotation uses the tile center's meridian.
        """
        height = padded.shape[0] - 2 * pad
        width = padded.shape[1] - 2 * pad

        y, x = np.mgrid[tile.y0:tile.y1, tile.x0:tile.x1]
        u, v = _pixel_uv(x, y, width, height)
        samples = field_map.sample(u, v)
        weights = bank.weight_maps(
            samples[..., LOCAL_POWER], samples[..., CYL_POWER], self.settings.interpolation
        )

        region = padded[
            tile.y0: tile.y1 + 2 * pad,
            tile.x0: tile.x1 + 2 * pad,
        ]
        out_shape = (tile.height, tile.width) + padded.shape[2:]
        out = np.zeros(out_shape, dtype=np.float32)
        for k in np.flatnonzero(weights.reshape(len(bank), -1).any(axis=1)):
            kernel = bank.stack[k]
            if abs(cyl_power) > CYL_EPSILON:
                kernel = rotate_kernel(kernel, meridian)
            w = weights[k].astype(np.float32)
            if padded.ndim == 3:
                w = w[..., None]
            out += w * self._backend.convolve(region, kernel)
        return out
