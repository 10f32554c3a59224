#!/usr/bin/env python3
"""Profile extract_colors.py to identify performance bottlenecks."""

import cProfile
import pstats
import io
import sys
import time
from pathlib import Path

from extract_colors import (
    DEFAULT_COLOR_COUNT, decode_image, sample, partition, assemble
)


def profile_image(image_path: str, color_count: int = DEFAULT_COLOR_COUNT,
                  verbose: bool = True):
    """Time each stage of the pipeline for a single image."""

    if verbose:
        print(f"\n{'='*60}")
        print(f"Profiling: {Path(image_path).name}")
        print(f"{'='*60}")

    timings = {}

    start = time.perf_counter()
    pixels = decode_image(image_path)
    timings['decode'] = time.perf_counter() - start

    start = time.perf_counter()
    samples = sample(pixels)
    timings['sample'] = time.perf_counter() - start

    if verbose:
        h, w = pixels.shape[:2]
        print(f"  Pixels: {h * w:,}")
        print(f"  Samples: {len(samples):,}")

    start = time.perf_counter()
    clusters = partition(samples, color_count)
    timings['partition'] = time.perf_counter() - start

    start = time.perf_counter()
    colors = assemble(clusters, len(samples)) if len(samples) else []
    timings['assemble'] = time.perf_counter() - start

    if verbose:
        print(f"  Colors: {len(colors)}")

    total = sum(timings.values())
    timings['total'] = total

    if verbose:
        print(f"\nStage timings:")
        for stage, t in timings.items():
            pct = (t / total * 100) if stage != 'total' and total > 0 else 100
            print(f"  {stage:20s}: {t:6.3f}s ({pct:5.1f}%)")

    return timings, len(samples)


def detailed_profile(image_path: str, color_count: int = DEFAULT_COLOR_COUNT):
    """Run detailed cProfile on partition (the main compute stage)."""

    print(f"\n{'='*60}")
    print(f"Detailed profile of partition()")
    print(f"{'='*60}")

    # Decode and sample outside profiling
    samples = sample(decode_image(image_path))

    profiler = cProfile.Profile()
    profiler.enable()
    clusters = partition(samples, color_count)
    profiler.disable()

    stream = io.StringIO()
    stats = pstats.Stats(profiler, stream=stream)
    stats.sort_stats('cumulative')
    stats.print_stats(30)  # Top 30 functions

    print(stream.getvalue())

    return clusters


def main():
    images_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else Path(__file__).parent / "source_images"
    color_count = int(sys.argv[2]) if len(sys.argv) > 2 else DEFAULT_COLOR_COUNT
    images = sorted(images_dir.glob("*.jpeg")) + sorted(images_dir.glob("*.png"))

    if not images:
        print(f"No images found in {images_dir}/")
        sys.exit(1)

    print(f"Found {len(images)} test images")

    all_timings = []
    for img in images:
        timings, n_samples = profile_image(str(img), color_count)
        all_timings.append((img.name, timings, n_samples))

    # Summary
    print(f"\n{'='*60}")
    print("SUMMARY")
    print(f"{'='*60}")
    print(f"{'Image':<35} {'Samples':>10} {'Split':>8} {'Total':>8}")
    print("-" * 64)
    for name, timings, n_samples in all_timings:
        print(f"{name:<35} {n_samples:>10,} {timings['partition']:>7.3f}s {timings['total']:>7.3f}s")

    detailed_profile(str(images[0]), color_count)


if __name__ == "__main__":
    main()
