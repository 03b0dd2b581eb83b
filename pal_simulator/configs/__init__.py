"""
Configuration loading and management.

Provides utilities to load the YAML presets shipped with the package and
construct generator and pass settings from them.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..config import BlurPassConfig, GeneratorConfig
from ..errors import InvalidArgument
from ..optics.corridor import CorridorCurve, load_corridor_presets
from ..optics.map_generator import MapSettings
from ..optics.prescription import CorridorDesign
from ..psf.bank import InterpolationPolicy
from ..render.blur_pass import Granularity, PassSettings


# Path to configs directory
CONFIGS_DIR = Path(__file__).parent


def get_config_path(name: str) -> Path:
    """
    Get path to a preset file.

    Args:
        name: Preset name (without .yaml extension)

    Returns:
        Path to the preset file
    """
    path = CONFIGS_DIR / f"{name}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    return path


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a YAML config file."""
    with open(path, 'r') as f:
        return yaml.safe_load(f) or {}


def load_map_settings(name: str = "default") -> Dict[str, Any]:
    """Load a map settings preset."""
    return load_config(get_config_path(name))


def create_map_settings_from_config(
    config: Optional[Dict[str, Any]] = None,
    corridor_curves: Optional[Dict[CorridorDesign, CorridorCurve]] = None,
    overrides: Optional[GeneratorConfig] = None,
) -> MapSettings:
    """
    Create MapSettings from a preset.

    Args:
        config: Map settings dict. If None, loads the default preset.
        corridor_curves: Curve per design. If None, loads corridors.yaml.
        overrides: Runtime generator config taking precedence over the preset

    Returns:
        Configured MapSettings
    """
    if config is None:
        config = load_map_settings()

    map_cfg = config.get('map', config)
    profile_cfg = config.get('profile', {})

    resolution = map_cfg.get('texture_resolution')
    row_band = map_cfg.get('row_band', 64)
    max_workers = map_cfg.get('max_workers')
    if overrides is not None:
        if overrides.texture_resolution is not None:
            resolution = overrides.texture_resolution
        if overrides.row_band is not None:
            row_band = overrides.row_band
        if overrides.max_workers is not None:
            max_workers = overrides.max_workers

    if resolution is not None:
        try:
            width, height = resolution
        except (TypeError, ValueError) as e:
            raise InvalidArgument(
                f"texture_resolution must be [width, height], got {resolution!r}"
            ) from e
        resolution = (int(width), int(height))

    return MapSettings(
        texture_resolution=resolution,
        reference_corridor_length_mm=map_cfg.get('reference_corridor_length_mm', 14.0),
        astigmatism_falloff=map_cfg.get('astigmatism_falloff', 2.5),
        max_meridian_rotation_deg=map_cfg.get('max_meridian_rotation_deg', 20.0),
        magnification_scale=map_cfg.get('magnification_scale', 0.01),
        meters_to_degrees=map_cfg.get('meters_to_degrees', 57.29578),
        corridor_curves=corridor_curves if corridor_curves is not None else load_corridor_presets(),
        row_band=row_band,
        max_workers=max_workers,
        near_reference_m=profile_cfg.get('near_reference_m', 0.4),
        intermediate_reference_m=profile_cfg.get('intermediate_reference_m', 1.5),
        distance_reference_m=profile_cfg.get('distance_reference_m', 6.0),
    )


def create_pass_settings_from_config(config: Optional[BlurPassConfig] = None) -> PassSettings:
    """
    Create PassSettings from the runtime blur pass config.

    Raises:
        InvalidArgument: Unknown interpolation policy or granularity
    """
    if config is None:
        config = BlurPassConfig()

    try:
        interpolation = InterpolationPolicy(config.interpolation.lower())
    except ValueError as e:
        raise InvalidArgument(f"Unknown interpolation policy: {config.interpolation}") from e
    try:
        granularity = Granularity(config.granularity.lower())
    except ValueError as e:
        raise InvalidArgument(f"Unknown kernel granularity: {config.granularity}") from e

    return PassSettings(
        tile_size=config.tile_size,
        interpolation=interpolation,
        granularity=granularity,
        warp_order=config.warp_order,
        max_workers=config.max_workers,
    )


__all__ = [
    "CONFIGS_DIR",
    "get_config_path",
    "load_config",
    "load_map_settings",
    "load_corridor_presets",
    "create_map_settings_from_config",
    "create_pass_settings_from_config",
]
