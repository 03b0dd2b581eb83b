#!/usr/bin/env python3
"""
Validation script for the optical field generator.

Generates plots to verify:
1. Local power follows the corridor curve from distance to near
2. Cylinder power grows towards the lateral edges
3. Magnification is centered and mirrored between eyes
4. Corridor designs differ only in progression shape

Usage:
    python -m scripts.validate_lens_maps --output-dir validation_output
"""

import argparse
from pathlib import Path
import numpy as np
import matplotlib.pyplot as plt


def main():
    parser = argparse.ArgumentParser(description="Validate PAL lens maps")
    parser.add_argument(
        "--output-dir",
        type=str,
        default="validation_output",
        help="Output directory for plots",
    )
    parser.add_argument(
        "--resolution",
        type=int,
        default=256,
        help="Map edge in cells",
    )
    args = parser.parse_args()

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    from pal_simulator.optics import (
        CorridorDesign,
        EyePrescription,
        MapSettings,
        PalMapGenerator,
        ProfileParameters,
    )

    print("=" * 60)
    print("Lens Map Validation")
    print("=" * 60)

    parameters = ProfileParameters(
        right_eye=EyePrescription(sph=-1.0, cyl=-1.5, axis=30.0),
        left_eye=EyePrescription(sph=-0.75, cyl=-1.0, axis=150.0),
        add=2.0,
        corridor=CorridorDesign.SOFT,
    )
    settings = MapSettings(texture_resolution=(args.resolution, args.resolution))
    generator = PalMapGenerator(settings)

    print(f"\nTest parameters:")
    print(f"  OD: {parameters.right_eye}")
    print(f"  OS: {parameters.left_eye}")
    print(f"  Add: {parameters.add} D, corridor {parameters.corridor.value}")

    # Test 1: Field channels
    print("\n1. Generating maps...")
    profile = generator.generate(parameters)
    right = profile.right_eye_map

    fig, axes = plt.subplots(1, 3, figsize=(15, 4))
    for ax, data, title, cmap in (
        (axes[0], right.local_power, 'Local Power (D)', 'viridis'),
        (axes[1], right.cyl_power, 'Cylinder Power (D)', 'magma'),
        (axes[2], right.meridian_angle, 'Meridian Angle (deg)', 'twilight'),
    ):
        im = ax.imshow(data, cmap=cmap)
        ax.set_title(title)
        plt.colorbar(im, ax=ax)

    plt.tight_layout()
    plt.savefig(output_dir / 'lens_maps_right.png', dpi=150)
    plt.close()
    print(f"   Power range: [{right.local_power.min():.2f}, {right.local_power.max():.2f}] D")

    # Test 2: Corridor profile per design
    print("\n2. Comparing corridor designs...")
    fig, ax = plt.subplots(figsize=(8, 5))
    column = args.resolution // 2
    for design in CorridorDesign:
        design_profile = generator.generate(parameters.with_updates(corridor=design))
        power = design_profile.right_eye_map.local_power[:, column]
        ax.plot(np.linspace(0, 1, len(power)), power, label=design.value)
        print(f"   {design.value:>6}: top {power[0]:+.2f} D, bottom {power[-1]:+.2f} D")
        design_profile.release()

    ax.set_xlabel('v (top to bottom)')
    ax.set_ylabel('Local power (D)')
    ax.set_title('Corridor progression at the lens center')
    ax.legend()
    ax.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(output_dir / 'corridor_designs.png', dpi=150)
    plt.close()

    # Test 3: Magnification
    print("\n3. Checking magnification...")
    fig, axes = plt.subplots(1, 2, figsize=(12, 5))
    step = max(args.resolution // 16, 1)
    for ax, eye_map, title in (
        (axes[0], profile.right_eye_magnification, 'Right eye'),
        (axes[1], profile.left_eye_magnification, 'Left eye'),
    ):
        vectors = eye_map.data[::step, ::step]
        y, x = np.mgrid[:vectors.shape[0], :vectors.shape[1]]
        ax.quiver(x, y, vectors[..., 0], -vectors[..., 1])
        ax.invert_yaxis()
        ax.set_title(f'{title} magnification')

    plt.tight_layout()
    plt.savefig(output_dir / 'magnification.png', dpi=150)
    plt.close()

    profile.release()
    print(f"\nPlots saved to {output_dir}")
    print("Done")


if __name__ == "__main__":
    main()
