#!/usr/bin/env python3
"""
Validation script for the PSF bank and the blur/warp pass.

Generates plots to verify:
1. Bank kernels widen with sphere and elongate with cylinder
2. Bilinear lookup blends neighbouring kernels smoothly
3. The pass blurs the near zone more than the distance zone

Usage:
    python -m scripts.validate_psf_bank --output-dir validation_output
    python -m scripts.validate_psf_bank --bank psf_bank.json
"""

import argparse
from pathlib import Path
import numpy as np
import matplotlib.pyplot as plt


def main():
    parser = argparse.ArgumentParser(description="Validate PSF bank and blur pass")
    parser.add_argument(
        "--output-dir",
        type=str,
        default="validation_output",
        help="Output directory for plots",
    )
    parser.add_argument(
        "--bank",
        type=str,
        default=None,
        help="PSF bank JSON (synthetic bank if not provided)",
    )
    args = parser.parse_args()

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    from pal_simulator.optics import MapSettings, ProfileParameters
    from pal_simulator.pipeline import PalSimulation
    from pal_simulator.pipeline.cli import synthetic_scene
    from pal_simulator.psf import InterpolationPolicy, PsfBank, load_psf_bank

    print("=" * 60)
    print("PSF Bank Validation")
    print("=" * 60)

    if args.bank:
        bank = load_psf_bank(args.bank)
    else:
        bank = PsfBank.synthetic(
            spheres=[-4.0, -2.0, 0.0, 2.0, 4.0],
            cylinders=[-2.0, -1.0, 0.0],
            size_px=21,
        )
    print(f"\n  Kernels: {len(bank)} ({len(bank.spheres)} spheres x {len(bank.cylinders)} cylinders)")
    print(f"  Kernel size: {bank.kernel_size} px")

    # Test 1: Kernel grid
    print("\n1. Plotting kernel grid...")
    fig, axes = plt.subplots(
        len(bank.cylinders), len(bank.spheres),
        figsize=(2.5 * len(bank.spheres), 2.5 * len(bank.cylinders)),
        squeeze=False,
    )
    for i, cylinder in enumerate(bank.cylinders):
        for j, sphere in enumerate(bank.spheres):
            kernel = bank.kernel_for(sphere, cylinder, InterpolationPolicy.NEAREST)
            axes[i, j].imshow(kernel, cmap='hot')
            axes[i, j].set_title(f'S{sphere:+.1f} C{cylinder:+.1f}', fontsize=8)
            axes[i, j].axis('off')

    plt.tight_layout()
    plt.savefig(output_dir / 'psf_bank_grid.png', dpi=150)
    plt.close()

    # Test 2: Interpolation sweep
    print("\n2. Sweeping sphere with bilinear lookup...")
    sweep = np.linspace(bank.sphere_range[0], bank.sphere_range[1], 41)
    center = bank.kernel_size // 2
    peaks_bilinear = [bank.kernel_for(s, 0.0, InterpolationPolicy.BILINEAR)[center, center] for s in sweep]
    peaks_nearest = [bank.kernel_for(s, 0.0, InterpolationPolicy.NEAREST)[center, center] for s in sweep]

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(sweep, peaks_bilinear, 'b-', label='bilinear')
    ax.plot(sweep, peaks_nearest, 'r--', label='nearest')
    ax.set_xlabel('Sphere (D)')
    ax.set_ylabel('Kernel peak')
    ax.set_title('Kernel peak vs. sphere (cylinder 0)')
    ax.legend()
    ax.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(output_dir / 'psf_interpolation.png', dpi=150)
    plt.close()

    # Test 3: Full pass on a synthetic scene
    print("\n3. Running the blur/warp pass...")
    scene = synthetic_scene(256, 256)
    parameters = ProfileParameters(add=2.5, eye_texture_resolution=(256, 256))
    with PalSimulation(parameters, MapSettings(texture_resolution=(128, 128)), psf_bank=bank) as sim:
        right, _ = sim.render_frame(scene, None)

    fig, axes = plt.subplots(1, 3, figsize=(15, 5))
    axes[0].imshow(scene, cmap='gray')
    axes[0].set_title('Source')
    axes[1].imshow(right, cmap='gray')
    axes[1].set_title('PAL (right eye)')
    diff = right.astype(np.float32) - scene.astype(np.float32)
    im = axes[2].imshow(diff, cmap='RdBu_r', vmin=-np.abs(diff).max(), vmax=np.abs(diff).max())
    axes[2].set_title('Difference')
    plt.colorbar(im, ax=axes[2])
    plt.tight_layout()
    plt.savefig(output_dir / 'pal_pass.png', dpi=150)
    plt.close()

    top = np.abs(diff[:64]).mean()
    bottom = np.abs(diff[-64:]).mean()
    print(f"   Mean change, distance zone: {top:.2f}")
    print(f"   Mean change, near zone:     {bottom:.2f}")

    print(f"\nPlots saved to {output_dir}")
    print("Done")


if __name__ == "__main__":
    main()
