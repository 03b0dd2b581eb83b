"""
PSF module.

Procedural PSF models and the precomputed kernel bank consumed by the
blur/warp pass.
"""

from .psf_model import (
    PSFModel,
    GaussianPSF,
    AstigmaticPSF,
    fallback_kernel,
    normalize_kernel,
    rotate_kernel,
)
from .bank import (
    InterpolationPolicy,
    PsfBank,
    PsfKernel,
    load_psf_bank,
    parse_label_bins,
    save_psf_bank,
)

__all__ = [
    "PSFModel",
    "GaussianPSF",
    "AstigmaticPSF",
    "fallback_kernel",
    "normalize_kernel",
    "rotate_kernel",
    "InterpolationPolicy",
    "PsfBank",
    "PsfKernel",
    "load_psf_bank",
    "parse_label_bins",
    "save_psf_bank",
]
