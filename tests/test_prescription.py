"""Tests for prescription and fitting parameters."""

import pytest

from pal_simulator.errors import InvalidArgument
from pal_simulator.optics.prescription import (
    CorridorDesign,
    EyePrescription,
    ProfileParameters,
    load_parameters,
    save_parameters,
)


def test_json_round_trip_preserves_values(office_parameters):
    """Serializing to JSON and back yields an equal parameter set."""
    restored = ProfileParameters.from_json(office_parameters.to_json())
    assert restored == office_parameters
    assert restored.corridor is CorridorDesign.OFFICE
    assert restored.eye_texture_resolution == office_parameters.eye_texture_resolution


def test_save_and_load_file(tmp_path, office_parameters):
    path = tmp_path / "params.json"
    save_parameters(office_parameters, path)
    assert load_parameters(path) == office_parameters


def test_from_dict_ignores_unknown_keys_and_defaults_missing():
    params = ProfileParameters.from_dict({
        "add": 1.5,
        "right_eye": {"sph": -1.0},
        "menu_color": "teal",
    })
    assert params.add == 1.5
    assert params.right_eye == EyePrescription(sph=-1.0, cyl=0.0, axis=0.0)
    assert params.left_eye == EyePrescription()
    assert params.corridor is CorridorDesign.SOFT


def test_from_dict_accepts_corridor_names_case_insensitively():
    assert ProfileParameters.from_dict({"corridor": "Sport"}).corridor is CorridorDesign.SPORT


@pytest.mark.parametrize("data", [
    {"corridor": "bifocal"},
    {"add": "lots"},
    {"eye_texture_resolution": 512},
    {"right_eye": {"sph": "minus two"}},
])
def test_from_dict_rejects_bad_values(data):
    with pytest.raises(InvalidArgument):
        ProfileParameters.from_dict(data)


def test_from_json_rejects_invalid_json():
    with pytest.raises(InvalidArgument):
        ProfileParameters.from_json("{not json")


def test_from_dict_rejects_non_mapping():
    with pytest.raises(InvalidArgument):
        ProfileParameters.from_dict(["add", 2.0])


@pytest.mark.parametrize("changes", [
    {"corridor_length_mm": 0.0},
    {"corridor_length_mm": -3.0},
    {"corridor_length_mm": float("nan")},
    {"headset_fov_horizontal_deg": 0.0},
    {"headset_fov_vertical_deg": -10.0},
    {"eye_texture_resolution": (0, 512)},
])
def test_validate_rejects_non_positive_geometry(changes):
    with pytest.raises(InvalidArgument):
        ProfileParameters(**changes).validate()


def test_validate_returns_self():
    params = ProfileParameters()
    assert params.validate() is params


def test_clamped_limits_values_to_panel_ranges():
    params = ProfileParameters(
        right_eye=EyePrescription(sph=-12.0, cyl=1.0, axis=200.0),
        left_eye=EyePrescription(sph=6.0, cyl=-6.0, axis=-5.0),
        add=5.0,
        corridor_length_mm=30.0,
        fitting_height_mm=5.0,
        inset_near_mm=9.0,
        headset_fov_horizontal_deg=200.0,
        headset_fov_vertical_deg=10.0,
        eye_texture_resolution=(0, -4),
    ).clamped()

    assert params.right_eye == EyePrescription(sph=-8.0, cyl=0.0, axis=180.0)
    assert params.left_eye == EyePrescription(sph=4.0, cyl=-4.0, axis=0.0)
    assert params.add == 3.0
    assert params.corridor_length_mm == 20.0
    assert params.fitting_height_mm == 12.0
    assert params.inset_near_mm == 4.0
    assert params.headset_fov_horizontal_deg == 130.0
    assert params.headset_fov_vertical_deg == 70.0
    assert params.eye_texture_resolution == (1, 1)
    params.validate()


def test_parameters_are_immutable():
    params = ProfileParameters()
    with pytest.raises(AttributeError):
        params.add = 1.0


def test_with_updates_returns_new_instance():
    params = ProfileParameters()
    updated = params.with_updates(add=2.25)
    assert updated.add == 2.25
    assert params.add == 0.0


def test_eye_selects_prescription(office_parameters):
    params = office_parameters.with_updates(left_eye=EyePrescription(sph=1.0))
    assert params.eye(True) == office_parameters.right_eye
    assert params.eye(False).sph == 1.0
