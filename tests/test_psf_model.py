"""Tests for procedural PSF models."""

import numpy as np
import pytest

from pal_simulator.psf.psf_model import (
    MAX_KERNEL_SIZE_PX,
    AstigmaticPSF,
    GaussianPSF,
    fallback_kernel,
    normalize_kernel,
    rotate_kernel,
)


def _second_moments(kernel):
    center = kernel.shape[0] // 2
    y, x = np.mgrid[:kernel.shape[0], :kernel.shape[1]] - center
    return float((kernel * x**2).sum()), float((kernel * y**2).sum())


def test_gaussian_kernel_is_normalized_and_symmetric():
    kernel = GaussianPSF(sigma_px=2.0).generate_kernel()
    assert kernel.shape[0] % 2 == 1
    assert kernel.sum() == pytest.approx(1.0, abs=1e-5)
    np.testing.assert_allclose(kernel, kernel.T, atol=1e-7)
    np.testing.assert_allclose(kernel, kernel[::-1, ::-1], atol=1e-7)


def test_fwhm_round_trip():
    psf = GaussianPSF.from_fwhm(4.0)
    assert psf.fwhm_px == pytest.approx(4.0)


def test_blur_grows_with_power():
    weak = GaussianPSF.from_power(0.5)
    strong = GaussianPSF.from_power(-3.0)
    assert strong.sigma_px > weak.sigma_px


def test_auto_size_is_capped():
    assert GaussianPSF(sigma_px=100.0).generate_kernel().shape == (MAX_KERNEL_SIZE_PX, MAX_KERNEL_SIZE_PX)


def test_astigmatic_kernel_is_elongated_along_its_axis():
    kernel = AstigmaticPSF(sigma_major_px=3.0, sigma_minor_px=1.0, angle_deg=0.0).generate_kernel(21)
    var_x, var_y = _second_moments(kernel)
    assert var_x > 2 * var_y

    rotated = AstigmaticPSF(sigma_major_px=3.0, sigma_minor_px=1.0, angle_deg=90.0).generate_kernel(21)
    var_x, var_y = _second_moments(rotated)
    assert var_y > 2 * var_x


def test_from_prescription_uses_both_meridians():
    psf = AstigmaticPSF.from_prescription(sphere=-1.0, cylinder=-2.0, axis_deg=30.0)
    assert psf.sigma_major_px > psf.sigma_minor_px
    assert psf.angle_deg == 30.0


def test_rotate_kernel_matches_analytic_rotation():
    base = AstigmaticPSF(sigma_major_px=3.0, sigma_minor_px=1.0, angle_deg=0.0).generate_kernel(21)
    expected = AstigmaticPSF(sigma_major_px=3.0, sigma_minor_px=1.0, angle_deg=90.0).generate_kernel(21)
    rotated = rotate_kernel(base, 90.0)
    assert rotated.shape == base.shape
    assert rotated.sum() == pytest.approx(1.0, abs=1e-5)
    np.testing.assert_allclose(rotated, expected, atol=1e-3)


def test_rotate_by_full_turn_is_identity():
    kernel = GaussianPSF(1.0).generate_kernel()
    assert rotate_kernel(kernel, 360.0) is kernel


def test_zero_kernel_normalizes_to_delta():
    delta = normalize_kernel(np.zeros((5, 5)))
    assert delta[2, 2] == 1.0
    assert delta.sum() == 1.0


def test_fallback_kernel():
    isotropic = fallback_kernel(-2.0)
    np.testing.assert_allclose(isotropic, GaussianPSF.from_power(-2.0).generate_kernel())

    kernel = fallback_kernel(-2.0, -1.0, size_px=15)
    assert kernel.shape == (15, 15)
    assert kernel.sum() == pytest.approx(1.0, abs=1e-5)


def test_apply_blurs_an_impulse_into_the_kernel():
    psf = GaussianPSF(sigma_px=1.0)
    kernel = psf.generate_kernel()
    image = np.zeros((31, 31), dtype=np.float32)
    image[15, 15] = 1.0

    blurred = psf.apply(image)
    r = kernel.shape[0] // 2
    np.testing.assert_allclose(blurred[15 - r:15 + r + 1, 15 - r:15 + r + 1], kernel, atol=1e-6)

    color = psf.apply(np.stack([image] * 3, axis=-1))
    assert color.shape == (31, 31, 3)
