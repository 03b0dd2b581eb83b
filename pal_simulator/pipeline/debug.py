"""
Intermediate outputs of one eye's pass, for visualization and debugging.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np

from ..optics.profile import Eye, LensProfile


def flow_visualization(vectors: np.ndarray) -> np.ndarray:
    """
    Convert a (H, W, 2) displacement field to an HSV flow visualization.

    Hue encodes direction, value encodes magnitude.

    Returns:
        BGR image (H, W, 3) as uint8
    """
    dx = vectors[..., 0].astype(np.float32)
    dy = vectors[..., 1].astype(np.float32)
    magnitude, angle = cv2.cartToPolar(dx, dy, angleInDegrees=True)

    max_mag = float(magnitude.max())
    hsv = np.zeros(dx.shape + (3,), dtype=np.uint8)
    hsv[..., 0] = (angle / 2).astype(np.uint8)  # OpenCV hue range is [0, 180)
    hsv[..., 1] = 255
    hsv[..., 2] = (magnitude / max_mag * 255 if max_mag > 0 else magnitude).astype(np.uint8)
    return cv2.cvtColor(hsv, cv2.COLOR_HSV2BGR)


@dataclass
class DebugOutput:
    """
    Container for intermediate pass outputs.

    Attributes:
        eye: Which eye the buffers belong to
        source: Frame as submitted
        warped: After the magnification warp
        filtered: After the spatially-variant blur
        local_power: Field map channel 0
        cyl_power: Field map channel 1
        meridian_angle: Field map channel 2
        magnification: (H, W, 2) displacement vectors
    """
    eye: Eye = Eye.RIGHT
    source: Optional[np.ndarray] = None
    warped: Optional[np.ndarray] = None
    filtered: Optional[np.ndarray] = None
    local_power: Optional[np.ndarray] = None
    cyl_power: Optional[np.ndarray] = None
    meridian_angle: Optional[np.ndarray] = None
    magnification: Optional[np.ndarray] = None

    @classmethod
    def from_pass(cls, eye: Eye, source: np.ndarray, buffers: dict, profile: Optional[LensProfile]) -> "DebugOutput":
        out = cls(
            eye=eye,
            source=np.array(source, copy=True),
            warped=buffers.get("warped"),
            filtered=buffers.get("filtered"),
        )
        if profile is not None and profile.is_valid:
            field_map = profile.field_map(eye)
            out.local_power = field_map.local_power.copy()
            out.cyl_power = field_map.cyl_power.copy()
            out.meridian_angle = field_map.meridian_angle.copy()
            out.magnification = profile.magnification_map(eye).data.copy()
        return out

    def save_all(self, output_dir: Union[str, Path], prefix: str = "debug") -> None:
        """Save all intermediate outputs as images."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        prefix = f"{prefix}_{self.eye.name.lower()}"

        def save_normalized(arr: Optional[np.ndarray], name: str) -> None:
            if arr is None:
                return
            arr = arr.astype(np.float32)
            # Normalize to 0-255
            arr_norm = ((arr - arr.min()) / (arr.max() - arr.min() + 1e-10) * 255)
            cv2.imwrite(str(output_dir / f"{prefix}_{name}.png"), arr_norm.astype(np.uint8))

        save_normalized(self.source, "01_source")
        save_normalized(self.warped, "02_warped")
        save_normalized(self.filtered, "03_filtered")
        save_normalized(self.local_power, "map_local_power")
        save_normalized(self.cyl_power, "map_cyl_power")
        save_normalized(self.meridian_angle, "map_meridian")

        if self.magnification is not None:
            cv2.imwrite(
                str(output_dir / f"{prefix}_map_magnification.png"),
                flow_visualization(self.magnification),
            )
