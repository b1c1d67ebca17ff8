#!/usr/bin/env python3
"""
Dual-Fisheye Stitching CLI
Command-line interface for converting dual-fisheye images to
equirectangular panoramas.

Usage:
    python -m dualfish.stitch_cli input.jpg [options]
"""

import sys
import os
import argparse
import logging
import signal
import threading
import time

from .config import StitchConfig, ConfigError
from .image_io import read_image, write_image, export_filename
from .logger import setup_logger
from .stitcher import DualFisheyeStitcher, StitchCancelled, DEFAULT_CHUNK_ROWS
from .synthetic import make_test_panorama, render_dual_fisheye


def print_banner():
    """Print banner."""
    banner = r"""
  ___            _  __ _     _
 |   \ _  _ __ _| |/ _(_)___| |_
 | |) | || / _` | |  _| (_-<| ' \
 |___/ \_,_\__,_|_|_| |_/__/|_||_|

Dual-fisheye -> equirectangular
    """
    print(banner)


def build_parser():
    parser = argparse.ArgumentParser(
        description='Stitch a dual-fisheye image into an equirectangular panorama'
    )

    parser.add_argument(
        'image',
        nargs='?',
        help='Input dual-fisheye image (left lens on the left half)'
    )

    parser.add_argument(
        '-o', '--output',
        help='Output panorama path (default: <input>-stitched.<ext>)'
    )

    parser.add_argument(
        '--config',
        help='JSON parameter file; command-line options override it'
    )

    lens = parser.add_argument_group('lens geometry')
    lens.add_argument('--scale', type=float, help='Output width relative to input width (default: 1.0)')
    lens.add_argument('--fov', type=float, help='Per-lens field of view in degrees (default: 200)')
    lens.add_argument('--radius-scale', type=float,
                      help='Fraction of the ideal lens circle radius to accept (default: 0.985)')
    lens.add_argument('--left-center', type=float, nargs=2, metavar=('X', 'Y'),
                      help='Normalized left lens center (default: 0.25 0.5)')
    lens.add_argument('--right-center', type=float, nargs=2, metavar=('X', 'Y'),
                      help='Normalized right lens center (default: 0.75 0.5)')
    lens.add_argument('--left-roll', type=float, help='Left lens roll in degrees')
    lens.add_argument('--right-roll', type=float, help='Right lens roll in degrees')
    lens.add_argument('--left-yaw-bias', type=float, help='Left lens yaw bias in degrees')
    lens.add_argument('--right-yaw-bias', type=float, help='Right lens yaw bias in degrees')
    lens.add_argument('--global-yaw', type=float, help='Horizontal panorama rotation in degrees')

    blend = parser.add_argument_group('blending')
    blend.add_argument('--gamma', type=float, help='Feather falloff exponent (default: 2.0)')
    blend.add_argument('--no-blend', action='store_true', help='Hard seam instead of feathering')

    export = parser.add_argument_group('export')
    export.add_argument('--format', choices=['png', 'jpeg'], default=None,
                        help='Output format (default: from extension, else png)')
    export.add_argument('--quality', type=float, default=0.92,
                        help='JPEG quality 0-1 (default: 0.92)')
    export.add_argument('--export-scale', type=float, default=1.0,
                        help='Downscale factor applied when saving (default: 1.0)')
    export.add_argument('--rotate-180', action='store_true',
                        help='Turn the saved panorama by 180 degrees')

    run = parser.add_argument_group('execution')
    run.add_argument('--workers', type=int, default=1, help='Rendering threads (default: 1)')
    run.add_argument('--chunk-rows', type=int, default=DEFAULT_CHUNK_ROWS,
                     help=f'Panorama rows per chunk (default: {DEFAULT_CHUNK_ROWS})')
    run.add_argument('--demo', type=int, metavar='WIDTH',
                     help='Stitch a synthetic dual-fisheye frame of this width instead of a file')
    run.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    return parser


def config_from_args(args):
    """Merge the optional parameter file with command-line overrides."""
    config = StitchConfig.from_json(args.config) if args.config else StitchConfig()

    changes = {}
    if args.scale is not None:
        changes['scale'] = args.scale
    if args.fov is not None:
        changes['fov_deg'] = args.fov
    if args.radius_scale is not None:
        changes['radius_scale'] = args.radius_scale
    if args.left_center is not None or args.right_center is not None:
        centers = dict(config.centers)
        if args.left_center is not None:
            centers['left'] = tuple(args.left_center)
        if args.right_center is not None:
            centers['right'] = tuple(args.right_center)
        changes['centers'] = centers
    if args.left_roll is not None or args.right_roll is not None:
        roll = dict(config.roll_deg)
        if args.left_roll is not None:
            roll['left'] = args.left_roll
        if args.right_roll is not None:
            roll['right'] = args.right_roll
        changes['roll_deg'] = roll
    if args.left_yaw_bias is not None or args.right_yaw_bias is not None:
        yaw = dict(config.yaw_bias_deg)
        if args.left_yaw_bias is not None:
            yaw['left'] = args.left_yaw_bias
        if args.right_yaw_bias is not None:
            yaw['right'] = args.right_yaw_bias
        changes['yaw_bias_deg'] = yaw
    if args.global_yaw is not None:
        changes['global_yaw_deg'] = args.global_yaw
    if args.gamma is not None:
        changes['blend_gamma'] = args.gamma
    if args.no_blend:
        changes['blend_enable'] = False

    return config.replace(**changes) if changes else config


def main(argv=None):
    """Main function for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logger('dualfish', logging.DEBUG if args.verbose else logging.WARNING)

    if args.image is None and args.demo is None:
        parser.print_usage()
        print("Error: Need an input image or --demo WIDTH")
        return 1

    print_banner()

    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"Error: Invalid parameters: {str(e)}")
        return 1

    # Read image
    if args.demo is not None:
        print(f"\nRendering synthetic {args.demo}x{args.demo // 2} dual-fisheye frame...")
        try:
            source = render_dual_fisheye(make_test_panorama(args.demo),
                                         (args.demo, args.demo // 2), config,
                                         crop_circle=True)
        except ValueError as e:
            print(f"Error rendering demo frame: {str(e)}")
            return 1
        base_name = 'demo'
    else:
        if not os.path.exists(args.image):
            print(f"Error: Image not found: {args.image}")
            return 1
        print("\nReading image...")
        try:
            source = read_image(args.image)
        except Exception as e:
            print(f"Error reading image: {str(e)}")
            return 1
        base_name = args.image

    print(f"  Source: {source.shape[1]}x{source.shape[0]}")

    fmt = args.format
    if args.output:
        output_path = args.output
    else:
        output_path = os.path.join(os.path.dirname(base_name),
                                   export_filename(base_name, fmt or 'png', args.export_scale))

    # Create output directory
    output_dir = os.path.dirname(output_path)
    if output_dir and not os.path.exists(output_dir):
        os.makedirs(output_dir)

    # Ctrl-C stops at the next chunk boundary
    cancel_event = threading.Event()

    def on_signal(sig, frame):
        if not cancel_event.is_set():
            print("\nCancel requested. Stopping after the current chunk...", file=sys.stderr)
            cancel_event.set()

    previous_handler = signal.signal(signal.SIGINT, on_signal)

    last_pct = [-1]

    def on_progress(rows_done, total_rows):
        pct = int(100 * rows_done / total_rows)
        if pct != last_pct[0]:
            last_pct[0] = pct
            sys.stdout.write(f"\r  Stitching... {pct:3d}%")
            sys.stdout.flush()

    start_time = time.time()

    try:
        stitcher = DualFisheyeStitcher(config, chunk_rows=args.chunk_rows, workers=args.workers)
        print("\nStitching panorama...")
        result = stitcher.stitch(source, cancel_event=cancel_event, progress=on_progress)
        sys.stdout.write("\n")

        elapsed_time = time.time() - start_time

        # Save result
        print("\nSaving panorama...")
        saved_width, saved_height = write_image(output_path, result, fmt=fmt, quality=args.quality,
                                                scale=args.export_scale, rotate_180=args.rotate_180)

        print(f"\n✓ Success!")
        print(f"  Panorama saved to: {output_path}")
        print(f"  Stitched size: {result.shape[1]}x{result.shape[0]}")
        print(f"  Saved size: {saved_width}x{saved_height}")
        print(f"  Processing time: {elapsed_time:.2f} seconds")

        return 0

    except StitchCancelled as e:
        print(f"\nCancelled: {str(e)}")
        return 130

    except Exception as e:
        print(f"\nError during stitching: {str(e)}")
        import traceback
        traceback.print_exc()
        return 1

    finally:
        signal.signal(signal.SIGINT, previous_handler)


if __name__ == '__main__':
    sys.exit(main())
