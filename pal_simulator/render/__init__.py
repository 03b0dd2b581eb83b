"""
Render module.

The spatially-variant blur/warp pass, its tiling, buffers and convolution
backends.
"""

from .tiles import Tile, partition
from .backend import ConvolutionBackend, ScipyBackend
from .buffers import BufferSlot, FrameBuffers
from .blur_pass import (
    BlurWarpPass,
    FrameContext,
    Granularity,
    PassParameters,
    PassSettings,
)

__all__ = [
    "Tile",
    "partition",
    "ConvolutionBackend",
    "ScipyBackend",
    "BufferSlot",
    "FrameBuffers",
    "BlurWarpPass",
    "FrameContext",
    "Granularity",
    "PassParameters",
    "PassSettings",
]
