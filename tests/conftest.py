"""Shared fixtures for the PAL simulator tests."""

import numpy as np
import pytest

from pal_simulator.optics import (
    CorridorDesign,
    EyePrescription,
    LensProfile,
    MagnificationMap,
    MapSettings,
    OpticalFieldMap,
    PalMapGenerator,
    ProfileParameters,
)
from pal_simulator.psf import PsfBank

# Odd so that u = 0.5 and v = 0.5 land exactly on a cell
MAP_SIZE = 33


@pytest.fixture
def small_settings():
    return MapSettings(texture_resolution=(MAP_SIZE, MAP_SIZE), row_band=8, max_workers=1)


@pytest.fixture
def generator(small_settings):
    return PalMapGenerator(small_settings)


@pytest.fixture
def office_parameters():
    """Sph -2.00, Cyl -1.00, Axis 90, Add +2.00, Office corridor, 18 mm fitting height."""
    eye = EyePrescription(sph=-2.0, cyl=-1.0, axis=90.0)
    return ProfileParameters(
        right_eye=eye,
        left_eye=eye,
        add=2.0,
        corridor=CorridorDesign.OFFICE,
        fitting_height_mm=18.0,
        eye_texture_resolution=(MAP_SIZE, MAP_SIZE),
    )


@pytest.fixture
def synthetic_bank():
    return PsfBank.synthetic(
        spheres=[-4.0, -2.0, 0.0, 2.0, 4.0],
        cylinders=[-2.0, -1.0, 0.0],
        size_px=9,
    )


@pytest.fixture
def make_profile():
    """Factory for profiles built from hand-made maps (same maps for both eyes)."""

    def build(field, magnification=None, pixels_per_degree=10.0, generation_id=0):
        field = np.asarray(field, dtype=np.float32)
        if magnification is None:
            magnification = np.zeros(field.shape[:2] + (2,), dtype=np.float32)
        magnification = np.asarray(magnification, dtype=np.float32)
        return LensProfile(
            right_eye_map=OpticalFieldMap(field.copy()),
            left_eye_map=OpticalFieldMap(field.copy()),
            right_eye_magnification=MagnificationMap(magnification.copy()),
            left_eye_magnification=MagnificationMap(magnification.copy()),
            pixels_per_degree=pixels_per_degree,
            generation_id=generation_id,
        )

    return build


def uniform_field(height, width, power=0.0, cyl=0.0, meridian=0.0):
    field = np.zeros((height, width, 4), dtype=np.float32)
    field[..., 0] = power
    field[..., 1] = cyl
    field[..., 2] = meridian
    return field


@pytest.fixture
def field_factory():
    return uniform_field
