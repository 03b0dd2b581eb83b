"""
PSF bank: precomputed blur kernels indexed by (sphere, cylinder).

The bank is read-only after construction. Kernels sit on a 2D grid spanned
by the distinct sphere and cylinder bins of the entries. Lookups either snap
to the nearest node or blend the four bracketing nodes bilinearly. Queries
outside the grid clamp to the edge bins.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import DegradedInput, InvalidArgument
from .psf_model import AstigmaticPSF, normalize_kernel

log = logging.getLogger(__name__)


class InterpolationPolicy(Enum):
    """How a continuous (sphere, cylinder) query maps onto bank kernels."""
    BILINEAR = "bilinear"
    NEAREST = "nearest"


LABEL_PATTERN = re.compile(
    r"S(?P<sphere>[+-]?\d+(?:\.\d+)?)[_\s]*C(?P<cylinder>[+-]?\d+(?:\.\d+)?)",
    re.IGNORECASE,
)


def parse_label_bins(label: str) -> Tuple[float, float]:
    """
    Read the (sphere, cylinder) bin from a kernel label.

    Labels look like "S-2.00_C-1.00" or "s+0.5 c0".

    Raises:
        InvalidArgument: If the label does not name both bins.
    """
    match = LABEL_PATTERN.search(label)
    if match is None:
        raise InvalidArgument(f"Cannot read sphere/cylinder bins from PSF label {label!r}")
    return float(match.group("sphere")), float(match.group("cylinder"))


@dataclass(frozen=True)
class PsfKernel:
    """
    One bank entry.

    Attributes:
        sphere: Sphere bin in diopters
        cylinder: Cylinder bin in diopters
        label: Source label
        data: (N, N) float32 kernel, unit sum, read-only
    """
    sphere: float
    cylinder: float
    label: str
    data: np.ndarray

    @property
    def size(self) -> int:
        return self.data.shape[0]


def _pad_to(kernel: np.ndarray, size: int) -> np.ndarray:
    pad = (size - kernel.shape[0]) // 2
    if pad == 0:
        return kernel
    return np.pad(kernel, pad, mode='constant')


class PsfBank:
    """
    Indexed, immutable set of PSF kernels.

    Example:
        >>> bank = PsfBank.synthetic(spheres=[-4, -2, 0, 2], cylinders=[-2, -1, 0])
        >>> kernel = bank.kernel_for(-1.2, -0.4)
    """

    def __init__(self, kernels: Sequence[PsfKernel] = ()):
        self._kernels: Tuple[PsfKernel, ...] = tuple(kernels)

        if not self._kernels:
            self._stack = np.zeros((0, 1, 1), dtype=np.float32)
            self._spheres = np.zeros(0)
            self._cylinders = np.zeros(0)
            self._node_index = np.zeros((0, 0), dtype=np.intp)
            return

        # Odd common size so every kernel keeps its center
        size = max(k.size for k in self._kernels) | 1
        self._stack = np.stack([_pad_to(k.data, size) for k in self._kernels]).astype(np.float32)
        self._stack.flags.writeable = False

        self._spheres = np.unique([k.sphere for k in self._kernels])
        self._cylinders = np.unique([k.cylinder for k in self._kernels])

        grid = np.full((len(self._spheres), len(self._cylinders)), -1, dtype=np.intp)
        for index, kernel in enumerate(self._kernels):
            i = int(np.searchsorted(self._spheres, kernel.sphere))
            j = int(np.searchsorted(self._cylinders, kernel.cylinder))
            if grid[i, j] != -1:
                raise InvalidArgument(
                    f"Duplicate PSF bin (S{kernel.sphere:+.2f}, C{kernel.cylinder:+.2f}): "
                    f"{self._kernels[grid[i, j]].label!r} and {kernel.label!r}"
                )
            grid[i, j] = index

        # Nodes without a kernel borrow the nearest one
        missing = np.argwhere(grid == -1)
        if len(missing):
            log.debug("PSF bank grid has %d empty nodes; using nearest kernels", len(missing))
            span_s = max(np.ptp(self._spheres), 1e-6)
            span_c = max(np.ptp(self._cylinders), 1e-6)
            bins = np.array([(k.sphere / span_s, k.cylinder / span_c) for k in self._kernels])
            for i, j in missing:
                node = np.array([self._spheres[i] / span_s, self._cylinders[j] / span_c])
                grid[i, j] = int(np.argmin(np.sum((bins - node) ** 2, axis=1)))
        self._node_index = grid

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def empty(cls) -> "PsfBank":
        return cls(())

    @classmethod
    def from_entries(
        cls,
        entries: Iterable[Mapping[str, Any]],
        bin_parser: Callable[[str], Tuple[float, float]] = parse_label_bins,
    ) -> "PsfBank":
        """
        Ingest kernels in the bank exchange format.

        Each entry is {label, size, kernelData} with kernelData holding
        size*size floats in row-major order. Optional "sphere" and
        "cylinder" keys override the bins parsed from the label.

        Raises:
            InvalidArgument: Malformed entry
        """
        kernels: List[PsfKernel] = []
        for position, entry in enumerate(entries):
            try:
                label = str(entry["label"])
                size = int(entry["size"])
                values = np.asarray(entry["kernelData"], dtype=np.float32)
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidArgument(f"Malformed PSF entry #{position}: {e}") from e

            if size < 1:
                raise InvalidArgument(f"PSF entry {label!r} has non-positive size {size}")
            if values.size != size * size:
                raise InvalidArgument(
                    f"PSF entry {label!r} declares size {size} but has {values.size} values"
                )
            if not np.all(np.isfinite(values)):
                raise InvalidArgument(f"PSF entry {label!r} contains non-finite values")

            if "sphere" in entry and "cylinder" in entry:
                try:
                    sphere, cylinder = float(entry["sphere"]), float(entry["cylinder"])
                except (TypeError, ValueError) as e:
                    raise InvalidArgument(f"PSF entry {label!r} has non-numeric bins: {e}") from e
            else:
                sphere, cylinder = bin_parser(label)

            data = normalize_kernel(values.reshape(size, size))
            if size % 2 == 0:
                # Even kernels have no center pixel; pad on the far side
                data = np.pad(data, ((0, 1), (0, 1)), mode='constant')
            data.flags.writeable = False
            kernels.append(PsfKernel(sphere=sphere, cylinder=cylinder, label=label, data=data))

        return cls(kernels)

    @classmethod
    def synthetic(
        cls,
        spheres: Sequence[float],
        cylinders: Sequence[float],
        size_px: Optional[int] = None,
    ) -> "PsfBank":
        """Build a bank of astigmatic Gaussians on a sphere x cylinder grid."""
        entries = []
        for sphere in spheres:
            for cylinder in cylinders:
                kernel = AstigmaticPSF.from_prescription(sphere, cylinder).generate_kernel(size_px)
                entries.append({
                    "label": f"S{sphere:+.2f}_C{cylinder:+.2f}",
                    "size": kernel.shape[0],
                    "kernelData": kernel.ravel().tolist(),
                })
        return cls.from_entries(entries)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._kernels)

    @property
    def is_empty(self) -> bool:
        return not self._kernels

    @property
    def kernels(self) -> Tuple[PsfKernel, ...]:
        return self._kernels

    @property
    def kernel_size(self) -> int:
        return self._stack.shape[1]

    @property
    def stack(self) -> np.ndarray:
        """(n, N, N) read-only array of all kernels, padded to a common size."""
        return self._stack

    @property
    def spheres(self) -> np.ndarray:
        return self._spheres

    @property
    def cylinders(self) -> np.ndarray:
        return self._cylinders

    @property
    def sphere_range(self) -> Tuple[float, float]:
        return (float(self._spheres[0]), float(self._spheres[-1]))

    @property
    def cylinder_range(self) -> Tuple[float, float]:
        return (float(self._cylinders[0]), float(self._cylinders[-1]))

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @staticmethod
    def _bracket(bins: np.ndarray, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Lower/upper node indices and the fraction between them."""
        if len(bins) == 1:
            zeros = np.zeros(x.shape, dtype=np.intp)
            return zeros, zeros, np.zeros(x.shape)
        x = np.clip(x, bins[0], bins[-1])
        hi = np.clip(np.searchsorted(bins, x, side='left'), 1, len(bins) - 1)
        lo = hi - 1
        frac = (x - bins[lo]) / (bins[hi] - bins[lo])
        return lo, hi, np.clip(frac, 0.0, 1.0)

    def weight_maps(
        self,
        sphere: Union[float, np.ndarray],
        cylinder: Union[float, np.ndarray],
        policy: InterpolationPolicy = InterpolationPolicy.BILINEAR,
    ) -> np.ndarray:
        """
        Per-kernel blend weights for arrays of (sphere, cylinder) queries.

        Returns:
            (n_kernels, *query_shape) array; weights sum to 1 along axis 0

        Raises:
            DegradedInput: If the bank is empty
        """
        if self.is_empty:
            raise DegradedInput("PSF bank is empty")

        sphere = np.asarray(sphere, dtype=np.float64)
        cylinder = np.asarray(cylinder, dtype=np.float64)
        sphere, cylinder = np.broadcast_arrays(sphere, cylinder)

        s_lo, s_hi, s_frac = self._bracket(self._spheres, sphere)
        c_lo, c_hi, c_frac = self._bracket(self._cylinders, cylinder)

        if policy is InterpolationPolicy.NEAREST:
            i = np.where(s_frac < 0.5, s_lo, s_hi)
            j = np.where(c_frac < 0.5, c_lo, c_hi)
            corners = [(i, j, np.ones(sphere.shape))]
        else:
            corners = [
                (s_lo, c_lo, (1 - s_frac) * (1 - c_frac)),
                (s_hi, c_lo, s_frac * (1 - c_frac)),
                (s_lo, c_hi, (1 - s_frac) * c_frac),
                (s_hi, c_hi, s_frac * c_frac),
            ]

        weights = np.zeros((len(self._kernels),) + sphere.shape, dtype=np.float64)
        for i, j, w in corners:
            index = self._node_index[i, j]
            for k in range(len(self._kernels)):
                weights[k] += np.where(index == k, w, 0.0)
        return weights

    def weights(
        self,
        sphere: float,
        cylinder: float,
        policy: InterpolationPolicy = InterpolationPolicy.BILINEAR,
    ) -> List[Tuple[int, float]]:
        """Non-zero (kernel_index, weight) pairs for one query."""
        w = self.weight_maps(sphere, cylinder, policy)
        return [(k, float(w[k])) for k in range(len(w)) if w[k] > 0.0]

    def kernel_for(
        self,
        sphere: float,
        cylinder: float,
        policy: InterpolationPolicy = InterpolationPolicy.BILINEAR,
    ) -> np.ndarray:
        """Blended kernel for one (sphere, cylinder) query."""
        kernel = np.zeros(self._stack.shape[1:], dtype=np.float32)
        for k, w in self.weights(sphere, cylinder, policy):
            kernel += np.float32(w) * self._stack[k]
        return kernel


def load_psf_bank(
    path: Union[str, Path],
    bin_parser: Callable[[str], Tuple[float, float]] = parse_label_bins,
) -> PsfBank:
    """
    Load a PSF bank from a JSON document.

    The document is {"entries": [...]} or a bare list of entries.

    Raises:
        DegradedInput: The file is missing or is not valid JSON
        InvalidArgument: The entries are not a list, or an entry is malformed
    """
    path = Path(path)
    try:
        with open(path, "r") as f:
            document = json.load(f)
    except FileNotFoundError as e:
        raise DegradedInput(f"PSF bank not found: {path}") from e
    except json.JSONDecodeError as e:
        raise DegradedInput(f"PSF bank {path} is not valid JSON: {e}") from e

    entries = document.get("entries", []) if isinstance(document, dict) else document
    if not isinstance(entries, list):
        raise InvalidArgument(
            f"PSF bank {path} must hold a list of entries, got {type(entries).__name__}"
        )
    bank = PsfBank.from_entries(entries, bin_parser=bin_parser)
    log.info(
        "Loaded %d PSF kernels from %s (%d spheres x %d cylinders)",
        len(bank), path, len(bank.spheres), len(bank.cylinders),
    )
    return bank


def save_psf_bank(bank: PsfBank, path: Union[str, Path]) -> None:
    """Write a bank in the exchange format, with explicit bins."""
    entries: List[Dict[str, Any]] = [
        {
            "label": k.label,
            "size": k.size,
            "sphere": k.sphere,
            "cylinder": k.cylinder,
            "kernelData": k.data.ravel().tolist(),
        }
        for k in bank.kernels
    ]
    with open(path, "w") as f:
        json.dump({"entries": entries}, f)
