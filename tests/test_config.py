"""Tests for runtime TOML configuration."""

import pytest

from pal_simulator import config as config_module
from pal_simulator.config import Config, find_config_file, get_config, reload_config
from pal_simulator.errors import InvalidArgument


def test_defaults():
    config = Config.default()
    assert config.generator.preset == "default"
    assert config.generator.texture_resolution is None
    assert config.blur_pass.tile_size == 32
    assert config.blur_pass.interpolation == "bilinear"
    assert config.blur_pass.psf_bank is None
    assert config.lifecycle.generation_workers == 1
    assert config.output.log_level == "info"


def test_load_toml(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        '[generator]\n'
        'preset = "coarse"\n'
        'texture_resolution = [128, 96]\n'
        '\n'
        '[blur_pass]\n'
        'tile_size = 16\n'
        'interpolation = "nearest"\n'
        'psf_bank = "bank.json"\n'
        '\n'
        '[output]\n'
        'log_level = "debug"\n'
    )
    config = Config.load(path)
    assert config.generator.preset == "coarse"
    assert config.generator.texture_resolution == (128, 96)
    assert config.blur_pass.tile_size == 16
    assert config.blur_pass.interpolation == "nearest"
    assert config.blur_pass.psf_bank == "bank.json"
    assert config.output.log_level == "debug"
    # Sections left out keep their defaults
    assert config.lifecycle.generation_workers == 1
    assert config.blur_pass.granularity == "tile"


def test_invalid_toml_is_rejected(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[generator\npreset = 1\n")
    with pytest.raises(InvalidArgument):
        Config.load(path)


def test_bad_texture_resolution_is_rejected():
    with pytest.raises(InvalidArgument):
        Config.from_dict({"generator": {"texture_resolution": [128]}})


def test_missing_file_falls_back_to_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert find_config_file() is None
    assert Config.load() == Config.default()


def test_config_file_found_in_parent_directory(tmp_path, monkeypatch):
    (tmp_path / "config.toml").write_text('[blur_pass]\ntile_size = 8\n')
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)
    assert find_config_file() == (tmp_path / "config.toml").resolve()
    assert Config.load().blur_pass.tile_size == 8


def test_global_config_is_cached_until_reloaded(tmp_path, monkeypatch):
    monkeypatch.setattr(config_module, "_config", None)
    path = tmp_path / "config.toml"
    path.write_text('[lifecycle]\ngeneration_workers = 2\n')

    first = get_config(path)
    assert first.lifecycle.generation_workers == 2
    path.write_text('[lifecycle]\ngeneration_workers = 3\n')
    assert get_config(path) is first

    assert reload_config(path).lifecycle.generation_workers == 3
    assert get_config().lifecycle.generation_workers == 3
