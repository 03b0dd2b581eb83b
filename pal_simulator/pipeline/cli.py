"""
Command-line PAL simulation of a single image.

Usage:
    python -m pal_simulator --image scene.png --params office.json
    python -m pal_simulator --image synthetic --add 2.0 --corridor office --debug
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from ..config import Config, get_config
from ..errors import InvalidArgument, PalSimulationError
from ..optics.prescription import CorridorDesign, ProfileParameters, load_parameters, save_parameters
from ..optics.profile import Eye
from .simulate import PalSimulation

log = logging.getLogger(__name__)


def synthetic_scene(width: int = 512, height: int = 512, square_px: int = 16) -> np.ndarray:
    """Checkerboard with a bright grid, useful for seeing warp and blur."""
    y, x = np.mgrid[:height, :width]
    board = ((x // square_px + y // square_px) % 2).astype(np.float32)
    image = 0.2 + 0.6 * board
    image[(x % (4 * square_px)) == 0] = 1.0
    image[(y % (4 * square_px)) == 0] = 1.0
    return (image * 255).astype(np.uint8)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Simulate progressive addition lens optics on an image",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--image", type=str, default="synthetic",
                        help="Input image path, or 'synthetic' for a checkerboard")
    parser.add_argument("--size", type=int, default=512,
                        help="Edge of the synthetic scene in pixels")
    parser.add_argument("--params", type=str, default=None,
                        help="Profile parameters JSON file")
    parser.add_argument("--add", type=float, default=None,
                        help="Override the near addition (diopters)")
    parser.add_argument("--corridor", type=str, default=None,
                        choices=[d.value for d in CorridorDesign],
                        help="Override the corridor design")
    parser.add_argument("--psf-bank", type=str, default=None,
                        help="PSF bank JSON file (procedural kernels if missing)")
    parser.add_argument("--config", type=str, default=None,
                        help="Runtime config TOML (searches for config.toml if omitted)")
    parser.add_argument("--output-dir", type=str, default=None,
                        help="Output directory (defaults to the configured one)")
    parser.add_argument("--eye", type=str, choices=["right", "left", "both"], default="both",
                        help="Which eye(s) to render")
    parser.add_argument("--debug", action="store_true",
                        help="Save intermediate buffers and maps")
    parser.add_argument("--save-params", type=str, default=None,
                        help="Write the effective parameters to this JSON file")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = Config.load(Path(args.config)) if args.config else get_config()
    except InvalidArgument as e:
        log.error("Invalid configuration: %s", e)
        return 2
    level = logging.DEBUG if args.verbose else getattr(logging, config.output.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(levelname)-8s %(name)s - %(message)s",
    )

    # 1. Load the scene
    if args.image == "synthetic":
        image = synthetic_scene(args.size, args.size)
        stem = "synthetic"
    else:
        image = cv2.imread(args.image, cv2.IMREAD_UNCHANGED)
        if image is None:
            log.error("Cannot read image %s", args.image)
            return 1
        stem = Path(args.image).stem
    height, width = image.shape[:2]

    # 2. Parameters
    try:
        if args.params:
            parameters = load_parameters(args.params)
        else:
            parameters = ProfileParameters(eye_texture_resolution=(width, height))
        updates = {}
        if args.add is not None:
            updates["add"] = args.add
        if args.corridor is not None:
            updates["corridor"] = CorridorDesign(args.corridor)
        if updates:
            parameters = parameters.with_updates(**updates)
        parameters.validate()
    except (InvalidArgument, OSError) as e:
        log.error("Invalid parameters: %s", e)
        return 2

    output_dir = Path(args.output_dir or config.output.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    if args.save_params:
        save_parameters(parameters, args.save_params)
        log.info("Parameters saved to %s", args.save_params)

    print("=" * 60)
    print("PAL Simulation")
    print("=" * 60)
    print(f"  Image:    {args.image} ({width}x{height})")
    print(f"  Add:      {parameters.add:+.2f} D, corridor {parameters.corridor.value}")
    print(f"  OD:       {parameters.right_eye}")
    print(f"  OS:       {parameters.left_eye}")

    # 3. Simulate
    right = image if args.eye in ("right", "both") else None
    left = image if args.eye in ("left", "both") else None
    try:
        with PalSimulation.from_config(config, parameters, args.psf_bank) as sim:
            result = sim.render_frame(right, left, frame_index=0, debug=args.debug)
    except PalSimulationError as e:
        log.error("Simulation failed: %s", e)
        return 1

    # 4. Save
    for eye, out in ((Eye.RIGHT, result[0]), (Eye.LEFT, result[1])):
        if out is None:
            continue
        path = output_dir / f"{stem}_{eye.name.lower()}.png"
        cv2.imwrite(str(path), out)
        print(f"  Saved {path}")

    if args.debug:
        for debug_out in result[2].values():
            debug_out.save_all(output_dir, prefix=stem)
        print(f"  Debug outputs saved to {output_dir}")

    print("Done")
    return 0
