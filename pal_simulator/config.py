"""
Runtime configuration for the PAL simulator.

Settings come from a TOML file (config.toml). Every key is optional; missing
sections fall back to the defaults below.
"""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import InvalidArgument


def find_config_file() -> Optional[Path]:
    """
    Look for config.toml in the working directory and its parents.

    Returns:
        Path to config.toml, or None if there is none.
    """
    current = Path.cwd().resolve()
    for _ in range(10):
        candidate = current / "config.toml"
        if candidate.exists():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


@dataclass
class GeneratorConfig:
    """Optical field generator configuration."""
    preset: str = "default"
    texture_resolution: Optional[tuple[int, int]] = None
    row_band: Optional[int] = None
    max_workers: Optional[int] = None


@dataclass
class BlurPassConfig:
    """Blur/warp pass configuration."""
    tile_size: int = 32
    interpolation: str = "bilinear"
    granularity: str = "tile"
    warp_order: int = 1
    max_workers: Optional[int] = None
    psf_bank: Optional[str] = None


@dataclass
class LifecycleConfig:
    """Profile lifecycle configuration."""
    generation_workers: int = 1


@dataclass
class OutputConfig:
    """Output configuration."""
    output_dir: str = "./output"
    log_level: str = "info"


@dataclass
class Config:
    """Complete configuration."""
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    blur_pass: BlurPassConfig = field(default_factory=BlurPassConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def default(cls) -> "Config":
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Build a Config from parsed TOML data."""
        gen_data = data.get("generator", {})
        pass_data = data.get("blur_pass", {})
        life_data = data.get("lifecycle", {})
        output_data = data.get("output", {})

        resolution = gen_data.get("texture_resolution")
        if resolution is not None:
            if len(resolution) != 2:
                raise InvalidArgument(
                    f"generator.texture_resolution must be [width, height], got {resolution}"
                )
            resolution = (int(resolution[0]), int(resolution[1]))

        return cls(
            generator=GeneratorConfig(
                preset=gen_data.get("preset", "default"),
                texture_resolution=resolution,
                row_band=gen_data.get("row_band"),
                max_workers=gen_data.get("max_workers") or None,
            ),
            blur_pass=BlurPassConfig(
                tile_size=pass_data.get("tile_size", 32),
                interpolation=pass_data.get("interpolation", "bilinear"),
                granularity=pass_data.get("granularity", "tile"),
                warp_order=pass_data.get("warp_order", 1),
                max_workers=pass_data.get("max_workers") or None,
                psf_bank=pass_data.get("psf_bank") or None,
            ),
            lifecycle=LifecycleConfig(
                generation_workers=life_data.get("generation_workers", 1),
            ),
            output=OutputConfig(
                output_dir=output_data.get("output_dir", "./output"),
                log_level=output_data.get("log_level", "info"),
            ),
        )

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """
        Load configuration from a TOML file.

        Args:
            config_path: Path to config file. If None, searches for config.toml
                and falls back to defaults when none is found.

        Returns:
            Loaded Config instance.
        """
        if config_path is None:
            config_path = find_config_file()
            if config_path is None:
                return cls.default()

        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise InvalidArgument(f"Invalid config file {config_path}: {e}") from e

        return cls.from_dict(data)


# Global config instance (lazy loaded)
_config: Optional[Config] = None


def get_config(config_path: Optional[Path] = None) -> Config:
    """
    Get the global configuration instance.

    Loads config on first call, returns cached instance on subsequent calls.
    """
    global _config
    if _config is None:
        _config = Config.load(config_path)
    return _config


def reload_config(config_path: Optional[Path] = None) -> Config:
    """Force reload of configuration."""
    global _config
    _config = Config.load(config_path)
    return _config
