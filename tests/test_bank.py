"""Tests for PSF bank ingestion and lookup."""

import json

import numpy as np
import pytest

from pal_simulator.errors import DegradedInput, InvalidArgument
from pal_simulator.psf.bank import (
    InterpolationPolicy,
    PsfBank,
    load_psf_bank,
    parse_label_bins,
    save_psf_bank,
)


def _entry(label, size=3, values=None):
    if values is None:
        values = np.ones(size * size).tolist()
    return {"label": label, "size": size, "kernelData": values}


@pytest.mark.parametrize("label, expected", [
    ("S-2.00_C-1.00", (-2.0, -1.0)),
    ("S+0.5 C0", (0.5, 0.0)),
    ("psf_s3_c-0.75", (3.0, -0.75)),
])
def test_parse_label_bins(label, expected):
    assert parse_label_bins(label) == expected


def test_parse_label_without_bins_fails():
    with pytest.raises(InvalidArgument):
        parse_label_bins("defocus_large")


def test_entries_are_normalized_and_indexed():
    bank = PsfBank.from_entries([
        _entry("S0_C0", values=[0, 0, 0, 0, 4, 0, 0, 0, 0]),
        _entry("S2_C0"),
        _entry("S0_C-1"),
        _entry("S2_C-1"),
    ])
    assert len(bank) == 4
    np.testing.assert_array_equal(bank.spheres, [0.0, 2.0])
    np.testing.assert_array_equal(bank.cylinders, [-1.0, 0.0])
    for kernel in bank.kernels:
        assert kernel.data.sum() == pytest.approx(1.0)
    assert bank.kernels[0].data[1, 1] == 1.0


def test_explicit_bins_override_label():
    bank = PsfBank.from_entries([dict(_entry("center"), sphere=-1.0, cylinder=0.0)])
    assert bank.sphere_range == (-1.0, -1.0)


def test_kernels_are_padded_to_a_common_odd_size():
    bank = PsfBank.from_entries([
        _entry("S0_C0", size=1, values=[1.0]),
        _entry("S2_C0", size=4),
        _entry("S4_C0", size=7),
    ])
    assert bank.kernel_size == 7
    assert bank.stack.shape == (3, 7, 7)
    np.testing.assert_allclose(bank.stack.sum(axis=(1, 2)), 1.0, atol=1e-6)
    # The delta stays centered
    assert bank.stack[0, 3, 3] == 1.0


def test_stack_is_read_only(synthetic_bank):
    with pytest.raises(ValueError):
        synthetic_bank.stack[0, 0, 0] = 1.0


@pytest.mark.parametrize("entries", [
    [{"label": "S0_C0", "size": 3}],
    [_entry("S0_C0", size=3, values=[1.0] * 8)],
    [_entry("S0_C0", size=0, values=[])],
    [_entry("S0_C0", size=1, values=[float("nan")])],
    [_entry("S0_C0"), _entry("S0.00_C0.00")],
    [_entry("no bins here")],
])
def test_malformed_entries_are_rejected(entries):
    with pytest.raises(InvalidArgument):
        PsfBank.from_entries(entries)


def test_bilinear_weights_sum_to_one(synthetic_bank):
    rng = np.random.default_rng(0)
    spheres = rng.uniform(-8.0, 8.0, size=50)
    cylinders = rng.uniform(-5.0, 1.0, size=50)
    weights = synthetic_bank.weight_maps(spheres, cylinders, InterpolationPolicy.BILINEAR)
    assert weights.shape == (len(synthetic_bank), 50)
    np.testing.assert_allclose(weights.sum(axis=0), 1.0)
    assert np.all(weights >= 0)


def test_bilinear_blends_bracketing_kernels(synthetic_bank):
    weights = dict(synthetic_bank.weights(-3.0, 0.0))
    assert len(weights) == 2
    assert sorted(weights.values()) == pytest.approx([0.5, 0.5])
    bins = sorted((synthetic_bank.kernels[k].sphere, synthetic_bank.kernels[k].cylinder) for k in weights)
    assert bins == [(-4.0, 0.0), (-2.0, 0.0)]


def test_exact_bin_returns_that_kernel(synthetic_bank):
    kernel = synthetic_bank.kernel_for(2.0, -1.0)
    expected = next(k for k in synthetic_bank.kernels if (k.sphere, k.cylinder) == (2.0, -1.0))
    np.testing.assert_allclose(kernel, expected.data, atol=1e-7)


def test_nearest_selects_a_single_kernel(synthetic_bank):
    weights = synthetic_bank.weights(-2.9, -0.4, InterpolationPolicy.NEAREST)
    assert len(weights) == 1
    k, w = weights[0]
    assert w == 1.0
    assert (synthetic_bank.kernels[k].sphere, synthetic_bank.kernels[k].cylinder) == (-2.0, 0.0)


def test_out_of_range_queries_clamp_to_edge_bins(synthetic_bank):
    """Prescriptions outside the bank never index out of bounds."""
    for policy in InterpolationPolicy:
        weights = synthetic_bank.weights(20.0, -10.0, policy)
        assert len(weights) == 1
        k, w = weights[0]
        assert w == pytest.approx(1.0)
        assert (synthetic_bank.kernels[k].sphere, synthetic_bank.kernels[k].cylinder) == (4.0, -2.0)


def test_sparse_grid_borrows_nearest_kernel():
    bank = PsfBank.from_entries([
        _entry("S0_C0", values=[0, 0, 0, 0, 1, 0, 0, 0, 0]),
        _entry("S4_C-2"),
    ])
    weights = bank.weights(0.0, -2.0, InterpolationPolicy.NEAREST)
    assert len(weights) == 1
    np.testing.assert_allclose(bank.kernel_for(0.0, 0.0), bank.kernels[0].data)


def test_empty_bank_degrades():
    bank = PsfBank.empty()
    assert bank.is_empty
    assert len(bank) == 0
    with pytest.raises(DegradedInput):
        bank.weight_maps(0.0, 0.0)


def test_save_and_load_round_trip(tmp_path, synthetic_bank):
    path = tmp_path / "bank.json"
    save_psf_bank(synthetic_bank, path)
    loaded = load_psf_bank(path)
    assert len(loaded) == len(synthetic_bank)
    np.testing.assert_allclose(loaded.stack, synthetic_bank.stack, atol=1e-6)
    np.testing.assert_array_equal(loaded.spheres, synthetic_bank.spheres)


def test_load_accepts_bare_entry_list(tmp_path):
    path = tmp_path / "bank.json"
    path.write_text(json.dumps([_entry("S1_C0")]))
    assert len(load_psf_bank(path)) == 1


def test_missing_bank_file_degrades(tmp_path):
    with pytest.raises(DegradedInput):
        load_psf_bank(tmp_path / "missing.json")


def test_invalid_bank_json_degrades(tmp_path):
    path = tmp_path / "bank.json"
    path.write_text("{entries: [")
    with pytest.raises(DegradedInput):
        load_psf_bank(path)


@pytest.mark.parametrize("document", [
    {"entries": None},
    {"entries": {"label": "S0_C0"}},
    3,
])
def test_bank_without_an_entry_list_is_rejected(tmp_path, document):
    path = tmp_path / "bank.json"
    path.write_text(json.dumps(document))
    with pytest.raises(InvalidArgument):
        load_psf_bank(path)


def test_one_bad_entry_rejects_the_whole_bank(tmp_path):
    path = tmp_path / "bank.json"
    path.write_text(json.dumps([_entry("S0_C0"), _entry("S1_C0", size=3, values=[1.0])]))
    with pytest.raises(InvalidArgument, match="S1_C0"):
        load_psf_bank(path)


def test_non_numeric_explicit_bins_are_rejected():
    entry = dict(_entry("any"), sphere="far", cylinder=0.0)
    with pytest.raises(InvalidArgument):
        PsfBank.from_entries([entry])
