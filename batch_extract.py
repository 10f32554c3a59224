#!/usr/bin/env python3
"""Batch extract palettes and write JSON + swatch files."""

import argparse
import json
import sys
import time
from pathlib import Path

from extract_colors import (
    DEFAULT_COLOR_COUNT, extract, positive_int, visualize_palette
)

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp', '.bmp', '.gif'}
DEFAULT_MAX_SIZE = 256


def find_images(directory: Path) -> list[Path]:
    """Find all image files in directory."""
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
    )


def process_image(image_path: Path, output_dir: Path, color_count: int,
                  max_size) -> int:
    """Extract one palette and write its outputs. Returns the color count."""
    colors = extract(image_path, color_count, max_dimension=max_size)

    json_file = output_dir / f"{image_path.stem}-palette.json"
    swatch_file = output_dir / f"{image_path.stem}-palette.png"
    for output_file in (json_file, swatch_file):
        if output_file.exists():
            print(f"  Warning: Overwriting {output_file.name}", file=sys.stderr)

    json_file.write_text(json.dumps([c.to_dict() for c in colors], indent=2))
    visualize_palette(colors, swatch_file)

    return len(colors)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Batch extract palettes from a directory of images.'
    )
    parser.add_argument(
        '--input', '-i',
        required=True,
        help='Directory containing images'
    )
    parser.add_argument(
        '--output', '-o',
        required=True,
        help='Directory for palette JSON and swatch files'
    )
    parser.add_argument(
        '--colors', '-c',
        type=positive_int,
        default=DEFAULT_COLOR_COUNT,
        help=f'Number of colors per image (default {DEFAULT_COLOR_COUNT})'
    )
    parser.add_argument(
        '--max-size',
        type=positive_int,
        default=DEFAULT_MAX_SIZE,
        help=f'Downscale images to this many pixels per side (default {DEFAULT_MAX_SIZE})'
    )
    parser.add_argument(
        '--no-downscale',
        action='store_true',
        help='Process at full resolution'
    )

    args = parser.parse_args(argv)

    input_dir = Path(args.input)
    output_dir = Path(args.output)

    # Validate input directory
    if not input_dir.is_dir():
        print(f"Error: Input directory not found: {input_dir}", file=sys.stderr)
        sys.exit(2)

    output_dir.mkdir(parents=True, exist_ok=True)

    images = find_images(input_dir)
    if not images:
        print(f"No images found in {input_dir}", file=sys.stderr)
        sys.exit(2)

    total = len(images)
    succeeded = 0
    failed = []
    max_size = None if args.no_downscale else args.max_size

    batch_start = time.perf_counter()

    for i, image_path in enumerate(images, 1):
        try:
            img_start = time.perf_counter()
            count = process_image(image_path, output_dir, args.colors, max_size)
            img_elapsed = time.perf_counter() - img_start

            print(f"[{i}/{total}] {image_path.name} → {count} colors ({img_elapsed:.2f}s)")
            succeeded += 1

        except Exception as e:
            error_msg = f"{type(e).__name__}: {e}"
            print(f"[{i}/{total}] {image_path.name} → ERROR: {error_msg}", file=sys.stderr)
            failed.append((image_path.name, error_msg))

    batch_elapsed = time.perf_counter() - batch_start

    # Summary
    print()
    print(f"Completed: {succeeded}/{total} succeeded in {batch_elapsed:.2f}s")
    if succeeded > 0:
        print(f"Average: {batch_elapsed / succeeded:.2f}s per image")
    if failed:
        print(f"Failed ({len(failed)}):")
        for name, error in failed:
            print(f"  - {name}: {error}")
        sys.exit(1)


if __name__ == '__main__':
    main()
