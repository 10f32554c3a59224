#!/usr/bin/env python3
"""
Extract a weighted palette of dominant colors from an image.

Median-cut quantization over RGB samples. Four stages:
Sampling → Partitioning → Aggregation → Assembly
"""

import argparse
import colorsys
import heapq
import io
import json
import os
import sys
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np
from PIL import Image


# =============================================================================
# Constants
# =============================================================================

ALPHA_THRESHOLD = 128  # Pixels with alpha below this are dropped
DEFAULT_COLOR_COUNT = 10

# Image size limits (security: prevent decompression bombs)
MAX_IMAGE_PIXELS = 50_000_000  # 50 megapixels
MAX_IMAGE_DIMENSION = 10_000  # 10k pixels per side

# Swatch rendering
SWATCH_SIZE = 80
SWATCH_PADDING = 10
SWATCH_TEXT_HEIGHT = 25
SWATCH_COLUMNS = 6


# =============================================================================
# Errors
# =============================================================================

class PaletteError(Exception):
    """Base class for palette extraction errors."""


class InvalidColorCount(PaletteError, ValueError):
    """Requested palette size is not a positive integer."""


class EmptyImage(PaletteError):
    """No pixel survived sampling (zero-sized or fully transparent image)."""


class DecodeFailed(PaletteError):
    """The image could not be opened or decoded."""


def _check_color_count(color_count) -> None:
    if isinstance(color_count, bool) or not isinstance(color_count, (int, np.integer)):
        raise InvalidColorCount(f"Color count must be an integer, got {color_count!r}")
    if color_count < 1:
        raise InvalidColorCount(f"Color count must be at least 1, got {color_count}")


# =============================================================================
# Color Conversion
# =============================================================================

def rgb_to_hsl(rgb: tuple) -> tuple[float, float, float]:
    """
    Convert 8-bit RGB to HSL.

    Returns:
        (hue, saturation, lightness) with hue in degrees [0, 360) and
        saturation/lightness in [0, 1].
    """
    r, g, b = (c / 255.0 for c in rgb)
    h, l, s = colorsys.rgb_to_hls(r, g, b)
    return ((h * 360.0) % 360.0, s, l)


def rgb_to_hex(rgb: tuple) -> str:
    """Convert RGB tuple to hex string."""
    return f"#{rgb[0]:02x}{rgb[1]:02x}{rgb[2]:02x}"


@dataclass(frozen=True)
class Color:
    """A palette entry."""
    rgb: tuple  # (r, g, b), 0-255
    hsl: tuple  # (h, s, l), h in degrees, s and l in [0, 1]
    proportion: float  # Share of retained pixels, (0, 1]

    @property
    def hex(self) -> str:
        return rgb_to_hex(self.rgb)

    def to_dict(self) -> dict:
        return {
            'hex': self.hex,
            'rgb': list(self.rgb),
            'hsl': [round(self.hsl[0], 2), round(self.hsl[1], 4), round(self.hsl[2], 4)],
            'proportion': self.proportion,
        }


# =============================================================================
# Decoding
# =============================================================================

ImageSource = Union[str, os.PathLike, bytes, bytearray, io.IOBase, Image.Image, np.ndarray]


def _check_size(width: int, height: int) -> None:
    if width > MAX_IMAGE_DIMENSION or height > MAX_IMAGE_DIMENSION:
        raise DecodeFailed(
            f"Image dimensions {width}x{height} exceed maximum "
            f"{MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION}"
        )
    if width * height > MAX_IMAGE_PIXELS:
        raise DecodeFailed(
            f"Image has {width * height:,} pixels, exceeding maximum {MAX_IMAGE_PIXELS:,}"
        )


def _rgba_array(pixels: np.ndarray) -> np.ndarray:
    """Validate an already-decoded array and give it an alpha channel."""
    if pixels.dtype != np.uint8 or pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
        raise DecodeFailed(
            f"Pixel array must be uint8 with shape (H, W, 3) or (H, W, 4), "
            f"got {pixels.dtype} {pixels.shape}"
        )
    # Refuse oversized arrays before copying them
    height, width = pixels.shape[:2]
    _check_size(width, height)

    if pixels.shape[2] == 4:
        return np.ascontiguousarray(pixels)

    alpha = np.full(pixels.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([pixels, alpha], axis=2)


def _open_image(source) -> Image.Image:
    if isinstance(source, Image.Image):
        return source

    if isinstance(source, np.ndarray):
        return Image.fromarray(_rgba_array(source))

    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)

    try:
        return Image.open(source)
    except FileNotFoundError as e:
        raise DecodeFailed(f"Image not found: {source}") from e
    except Exception as e:
        raise DecodeFailed(f"Could not open image: {e}") from e


def decode_image(source: ImageSource, max_dimension: Optional[int] = None) -> np.ndarray:
    """
    Decode an image into an RGBA pixel array.

    Args:
        source: File path, encoded bytes, binary file object, PIL image,
                or uint8 array of shape (H, W, 3) or (H, W, 4)
        max_dimension: If set, downscale so neither side exceeds this

    Returns:
        uint8 array of shape (H, W, 4)

    Raises:
        DecodeFailed: If the image can't be read or exceeds size limits
    """
    if max_dimension is not None and max_dimension < 1:
        raise ValueError(f"max_dimension must be positive, got {max_dimension}")

    # Decoded arrays skip Pillow unless they need resampling
    if isinstance(source, np.ndarray) and max_dimension is None:
        return _rgba_array(source)

    img = _open_image(source)
    opened_here = img is not source

    try:
        # Validate image dimensions before the pixel data is loaded
        _check_size(*img.size)

        try:
            rgba = img.convert('RGBA')
            if max_dimension is not None:
                rgba.thumbnail((max_dimension, max_dimension))
            return np.array(rgba, dtype=np.uint8)
        except Exception as e:
            raise DecodeFailed(f"Could not decode image: {e}") from e
    finally:
        if opened_here:
            img.close()


# =============================================================================
# Stage 1: Sampling
# =============================================================================

def sample(pixels: np.ndarray, alpha_threshold: int = ALPHA_THRESHOLD) -> np.ndarray:
    """
    Flatten RGBA pixels into a contiguous sample buffer.

    Pixels with alpha below `alpha_threshold` are dropped. The rest keep
    their full RGB regardless of alpha.

    Args:
        pixels: uint8 array of shape (H, W, 4) or (N, 4)
        alpha_threshold: Minimum alpha for a pixel to be kept (0 keeps all)

    Returns:
        uint8 array of shape (N, 4), N <= number of input pixels
    """
    pixels = np.asarray(pixels)
    if pixels.dtype != np.uint8:
        raise ValueError(f"Expected uint8 pixels, got {pixels.dtype}")
    if pixels.shape[-1] != 4:
        raise ValueError(f"Expected RGBA pixels, got shape {pixels.shape}")

    flat = pixels.reshape(-1, 4)
    if alpha_threshold > 0:
        flat = flat[flat[:, 3] >= alpha_threshold]

    return np.ascontiguousarray(flat)


# =============================================================================
# Stage 2: Partitioning
# =============================================================================

@dataclass(eq=False)
class Box:
    """A set of samples bounded by an axis-aligned region in RGB space."""
    indices: np.ndarray  # Row indices into the sample buffer
    lows: np.ndarray  # Per-channel minimum (r, g, b)
    highs: np.ndarray  # Per-channel maximum (r, g, b)
    order: int  # Creation sequence number
    ranges: np.ndarray = field(init=False)  # highs - lows per channel
    range_sum: int = field(init=False)

    def __post_init__(self):
        # Boxes never change after creation, so the ranges are computed once
        self.ranges = self.highs.astype(np.int32) - self.lows.astype(np.int32)
        self.range_sum = int(self.ranges.sum())

    @classmethod
    def from_indices(cls, samples: np.ndarray, indices: np.ndarray, order: int) -> 'Box':
        rgb = samples[indices, :3]
        return cls(indices=indices, lows=rgb.min(axis=0), highs=rgb.max(axis=0), order=order)

    @property
    def population(self) -> int:
        return len(self.indices)

    @property
    def is_splittable(self) -> bool:
        return self.population >= 2 and self.range_sum > 0


@dataclass(frozen=True)
class Cluster:
    """A finalized box: exact channel sums and population."""
    channel_sums: tuple  # (sum_r, sum_g, sum_b) as Python ints
    population: int
    order: int

    @classmethod
    def from_box(cls, samples: np.ndarray, box: Box) -> 'Cluster':
        sums = samples[box.indices, :3].sum(axis=0, dtype=np.int64)
        return cls(
            channel_sums=tuple(int(s) for s in sums),
            population=box.population,
            order=box.order
        )

    @property
    def mean_r(self) -> float:
        return self.channel_sums[0] / self.population

    @property
    def mean_g(self) -> float:
        return self.channel_sums[1] / self.population

    @property
    def mean_b(self) -> float:
        return self.channel_sums[2] / self.population


def split_box(samples: np.ndarray, box: Box, next_order: int) -> tuple[Box, Box]:
    """
    Median-cut a box along its widest channel.

    Samples are ordered by the split channel, then by the other channels in
    r, g, b order, so the halves depend only on the sample multiset.
    The low half gets `next_order`, the high half `next_order + 1`.
    """
    values = samples[box.indices, :3]
    ranges = box.ranges
    median = box.population // 2

    # Widest channel first, ties go to r, then g, then b
    for channel in np.argsort(-ranges, kind='stable'):
        if ranges[channel] == 0:
            break
        others = [c for c in range(3) if c != channel]
        # np.lexsort treats the last key as primary
        ordering = np.lexsort((values[:, others[1]], values[:, others[0]], values[:, channel]))
        low = box.indices[ordering[:median]]
        high = box.indices[ordering[median:]]
        if len(low) and len(high):
            return (
                Box.from_indices(samples, low, next_order),
                Box.from_indices(samples, high, next_order + 1),
            )

    raise RuntimeError(f"Box {box.order} with {box.population} samples produced an empty split")


def partition(samples: np.ndarray, target_count: int) -> list[Cluster]:
    """
    Group samples into at most `target_count` clusters by median cut.

    The box with the largest population is split next. Ties go to the
    larger range sum, then to the earlier-created box. Boxes that can't be
    split are finalized as they are reached, so fewer than `target_count`
    clusters may come back.

    Args:
        samples: uint8 sample buffer from sample(), shape (N, 4) or (N, 3)
        target_count: Maximum number of clusters, >= 1

    Returns:
        Clusters in box creation order. Empty if there are no samples.

    Raises:
        InvalidColorCount: If target_count is not a positive integer
        ValueError: If samples are not uint8
    """
    _check_color_count(target_count)
    samples = np.asarray(samples)
    if samples.dtype != np.uint8:
        raise ValueError(f"Expected uint8 samples, got {samples.dtype}")
    if len(samples) == 0:
        return []

    # Min-heap, so population and range sum are negated. Orders are unique,
    # so boxes themselves are never compared.
    active = [_heap_entry(Box.from_indices(samples, np.arange(len(samples)), order=0))]
    finalized = []
    next_order = 1

    while active and len(active) + len(finalized) < target_count:
        box = heapq.heappop(active)[-1]

        if not box.is_splittable:
            finalized.append(box)
            continue

        low, high = split_box(samples, box, next_order)
        next_order += 2
        heapq.heappush(active, _heap_entry(low))
        heapq.heappush(active, _heap_entry(high))

    boxes = sorted(finalized + [entry[-1] for entry in active], key=lambda b: b.order)
    return [Cluster.from_box(samples, b) for b in boxes]


def _heap_entry(box: Box) -> tuple:
    return (-box.population, -box.range_sum, box.order, box)


# =============================================================================
# Stage 3: Aggregation
# =============================================================================

def _round_half_up(total: int, count: int) -> int:
    """Integer division rounded to nearest, halves away from zero."""
    return (2 * total + count) // (2 * count)


def aggregate(cluster: Cluster, total_population: int) -> Color:
    """
    Turn a cluster into a palette color.

    Mean channels are rounded half-up to 8 bits. Proportion is the cluster's
    population over all retained samples.

    Raises:
        ValueError: If total_population is not positive
    """
    if total_population <= 0:
        raise ValueError(f"total_population must be positive, got {total_population}")

    rgb = tuple(_round_half_up(s, cluster.population) for s in cluster.channel_sums)
    return Color(
        rgb=rgb,
        hsl=rgb_to_hsl(rgb),
        proportion=cluster.population / total_population
    )


# =============================================================================
# Stage 4: Assembly
# =============================================================================

def assemble(clusters: list[Cluster], total_population: int) -> list[Color]:
    """
    Aggregate clusters and order them by descending proportion.

    Equal proportions keep cluster creation order.
    """
    ordered = sorted(clusters, key=lambda c: c.order)
    colors = [aggregate(c, total_population) for c in ordered]
    return sorted(colors, key=lambda c: c.proportion, reverse=True)


# =============================================================================
# Main Pipeline
# =============================================================================

def extract(
    source: ImageSource,
    color_count: int,
    alpha_threshold: int = ALPHA_THRESHOLD,
    max_dimension: Optional[int] = None
) -> list[Color]:
    """
    Extract the dominant colors of an image.

    Args:
        source: Anything decode_image() accepts
        color_count: Maximum number of colors to return, >= 1
        alpha_threshold: Minimum alpha for a pixel to count
        max_dimension: Optional downscale before sampling

    Returns:
        Colors sorted by descending proportion, at most `color_count` long

    Raises:
        InvalidColorCount: If color_count is not a positive integer
        DecodeFailed: If the image can't be decoded
        EmptyImage: If no pixel survives sampling
    """
    _check_color_count(color_count)

    pixels = decode_image(source, max_dimension=max_dimension)
    samples = sample(pixels, alpha_threshold=alpha_threshold)
    if len(samples) == 0:
        raise EmptyImage(
            f"No pixels with alpha >= {alpha_threshold} in {pixels.shape[1]}x{pixels.shape[0]} image"
        )

    clusters = partition(samples, color_count)
    return assemble(clusters, len(samples))


# =============================================================================
# Rendering
# =============================================================================

def format_color(color: Color, ansi: bool = False) -> str:
    """One-line description of a color, optionally painted with ANSI escapes."""
    r, g, b = color.rgb
    h, s, l = color.hsl
    text = (f"{color.proportion * 100:6.2f}% | {color.hex} | rgb({r}, {g}, {b}) | "
            f"hsl({h:.0f}, {s * 100:.0f}%, {l * 100:.0f}%)")
    if not ansi:
        return text

    # Inverted foreground on the color itself
    return f"\033[1;38;2;{255 - r};{255 - g};{255 - b};48;2;{r};{g};{b}m {text} \033[0m"


def visualize_palette(colors: list[Color], output_path) -> None:
    """
    Create a swatch image of the palette with percentages.

    Args:
        colors: Palette from extract()
        output_path: Path to save the output image
    """
    from PIL import ImageDraw

    if not colors:
        raise ValueError("Cannot render an empty palette")

    cols = min(len(colors), SWATCH_COLUMNS)
    rows = (len(colors) + cols - 1) // cols

    img_width = cols * (SWATCH_SIZE + SWATCH_PADDING) + SWATCH_PADDING
    img_height = rows * (SWATCH_SIZE + SWATCH_TEXT_HEIGHT + SWATCH_PADDING) + SWATCH_PADDING

    img = Image.new('RGB', (img_width, img_height), (240, 240, 240))
    draw = ImageDraw.Draw(img)

    for i, color in enumerate(colors):
        row = i // cols
        col = i % cols

        x = SWATCH_PADDING + col * (SWATCH_SIZE + SWATCH_PADDING)
        y = SWATCH_PADDING + row * (SWATCH_SIZE + SWATCH_TEXT_HEIGHT + SWATCH_PADDING)

        draw.rectangle([x, y, x + SWATCH_SIZE, y + SWATCH_SIZE], fill=color.rgb)

        # Center percentage under swatch
        text = f"{color.proportion * 100:.1f}%"
        bbox = draw.textbbox((0, 0), text)
        text_width = bbox[2] - bbox[0]
        text_x = x + (SWATCH_SIZE - text_width) // 2
        draw.text((text_x, y + SWATCH_SIZE + 4), text, fill=(0, 0, 0))

    img.save(output_path)


# =============================================================================
# CLI
# =============================================================================

def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def alpha_value(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if not 0 <= number <= 255:
        raise argparse.ArgumentTypeError(f"must be between 0 and 255, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Extract the dominant colors of an image.'
    )
    parser.add_argument(
        '--input', '-i',
        required=True,
        help='Path to the image file'
    )
    parser.add_argument(
        '--colors', '-c',
        type=positive_int,
        default=DEFAULT_COLOR_COUNT,
        help=f'Number of colors to extract (default {DEFAULT_COLOR_COUNT})'
    )
    parser.add_argument(
        '--alpha-threshold',
        type=alpha_value,
        default=ALPHA_THRESHOLD,
        help=f'Ignore pixels with alpha below this (default {ALPHA_THRESHOLD})'
    )
    parser.add_argument(
        '--max-size',
        type=positive_int,
        default=None,
        help='Downscale so neither side exceeds this many pixels'
    )
    parser.add_argument(
        '--format', '-f',
        choices=['text', 'json'],
        default='text',
        help='Output format'
    )
    parser.add_argument(
        '--swatch', '-s',
        default=None,
        help='Write a PNG swatch of the palette to this path'
    )
    parser.add_argument(
        '--no-color',
        action='store_true',
        help='Disable ANSI colors in text output'
    )
    return parser


def main(argv: Optional[list] = None) -> None:
    args = build_parser().parse_args(argv)

    try:
        colors = extract(
            args.input,
            args.colors,
            alpha_threshold=args.alpha_threshold,
            max_dimension=args.max_size
        )
    except PaletteError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.format == 'json':
        print(json.dumps([c.to_dict() for c in colors], indent=2))
    else:
        ansi = not args.no_color and sys.stdout.isatty()
        for color in colors:
            print(format_color(color, ansi=ansi))

    if args.swatch:
        try:
            visualize_palette(colors, args.swatch)
        except (OSError, ValueError) as e:
            print(f"Error writing swatch: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Wrote: {args.swatch}", file=sys.stderr)


if __name__ == '__main__':
    main()
