"""Tests for the packaged YAML presets."""

import pytest

from pal_simulator.config import BlurPassConfig, GeneratorConfig
from pal_simulator.configs import (
    CONFIGS_DIR,
    create_map_settings_from_config,
    create_pass_settings_from_config,
    get_config_path,
    load_config,
    load_map_settings,
)
from pal_simulator.errors import InvalidArgument
from pal_simulator.optics.map_generator import MapSettings
from pal_simulator.optics.prescription import CorridorDesign
from pal_simulator.psf.bank import InterpolationPolicy
from pal_simulator.render.blur_pass import Granularity


def test_default_preset_matches_code_defaults():
    settings = create_map_settings_from_config(load_map_settings())
    defaults = MapSettings()
    assert settings.texture_resolution is None
    assert settings.reference_corridor_length_mm == defaults.reference_corridor_length_mm
    assert settings.astigmatism_falloff == defaults.astigmatism_falloff
    assert settings.max_meridian_rotation_deg == defaults.max_meridian_rotation_deg
    assert settings.magnification_scale == defaults.magnification_scale
    assert settings.meters_to_degrees == pytest.approx(defaults.meters_to_degrees)
    assert settings.row_band == defaults.row_band
    assert settings.distance_reference_m == 6.0
    assert set(settings.corridor_curves) == set(CorridorDesign)


def test_coarse_preset():
    settings = create_map_settings_from_config(load_map_settings("coarse"))
    assert settings.texture_resolution == (256, 256)
    assert settings.row_band == 32


def test_runtime_overrides_take_precedence():
    overrides = GeneratorConfig(texture_resolution=(64, 48), row_band=4, max_workers=2)
    settings = create_map_settings_from_config(load_map_settings("coarse"), overrides=overrides)
    assert settings.texture_resolution == (64, 48)
    assert settings.row_band == 4
    assert settings.max_workers == 2


def test_unset_overrides_keep_preset_values():
    settings = create_map_settings_from_config(load_map_settings("coarse"), overrides=GeneratorConfig())
    assert settings.texture_resolution == (256, 256)
    assert settings.row_band == 32


def test_bad_resolution_in_preset_is_rejected():
    with pytest.raises(InvalidArgument):
        create_map_settings_from_config({"map": {"texture_resolution": 512}})


def test_unknown_preset():
    with pytest.raises(FileNotFoundError):
        get_config_path("ultra")


def test_corridor_preset_is_yaml():
    data = load_config(CONFIGS_DIR / "corridors.yaml")
    assert set(data["corridors"]) == {"hard", "soft", "office", "sport"}


def test_pass_settings_from_config():
    settings = create_pass_settings_from_config(
        BlurPassConfig(tile_size=16, interpolation="Nearest", granularity="pixel", warp_order=3)
    )
    assert settings.tile_size == 16
    assert settings.interpolation is InterpolationPolicy.NEAREST
    assert settings.granularity is Granularity.PIXEL
    assert settings.warp_order == 3


@pytest.mark.parametrize("config", [
    BlurPassConfig(interpolation="bicubic"),
    BlurPassConfig(granularity="region"),
    BlurPassConfig(tile_size=0),
    BlurPassConfig(warp_order=9),
])
def test_unknown_pass_options_are_rejected(config):
    with pytest.raises(InvalidArgument):
        create_pass_settings_from_config(config)
