"""Visual feature extraction.

Features come from fixed top-left sample windows of the decoded pixel grid
rather than the full image:

- complexity: min(100, w, h) square
- transparency and dominant colors: min(50, w, h) square

Window sizes and thresholds are empirically tuned. Keep them fixed so that
complexity scores stay comparable between runs.
"""

import asyncio
from collections import Counter

from exceptions import AnalysisDegraded, PixpressError
from optimizers.surface import PillowSurface, RasterSurface
from schemas import DominantColor, ImageAnalysis, ImageBytes
from utils.logging import get_logger

logger = get_logger("analyzer")

COMPLEXITY_WINDOW = 100
COLOR_WINDOW = 50
COMPLEXITY_NORMALIZER = 10000
COLOR_BUCKET = 32
COLOR_SAMPLE_STRIDE = 4  # every 4th pixel
MAX_DOMINANT_COLORS = 5
PHOTO_COMPLEXITY_THRESHOLD = 0.3
PHOTO_MIN_COLORS = 3


def calculate_complexity(rgba: bytes) -> float:
    """Normalized variance of per-pixel mean luminance, clamped to [0, 1]."""
    pixel_count = len(rgba) // 4
    if pixel_count == 0:
        return 0.0

    brightness = [
        (rgba[i] + rgba[i + 1] + rgba[i + 2]) / 3 for i in range(0, pixel_count * 4, 4)
    ]
    mean = sum(brightness) / pixel_count
    variance = sum((b - mean) ** 2 for b in brightness) / pixel_count

    return min(variance / COMPLEXITY_NORMALIZER, 1.0)


def detect_transparency(rgba: bytes) -> bool:
    """True if any sampled pixel has alpha < 255."""
    return any(alpha < 255 for alpha in rgba[3::4])


def extract_dominant_colors(rgba: bytes) -> list[DominantColor]:
    """Top colors after quantizing each channel down to a multiple of 32."""
    counts: Counter = Counter()
    step = 4 * COLOR_SAMPLE_STRIDE
    for i in range(0, len(rgba) - 3, step):
        color = (
            rgba[i] // COLOR_BUCKET * COLOR_BUCKET,
            rgba[i + 1] // COLOR_BUCKET * COLOR_BUCKET,
            rgba[i + 2] // COLOR_BUCKET * COLOR_BUCKET,
        )
        counts[color] += 1

    return [
        DominantColor(color=color, count=count)
        for color, count in counts.most_common(MAX_DOMINANT_COLORS)
    ]


def is_photographic(complexity: float, dominant_colors: list[DominantColor]) -> bool:
    return complexity > PHOTO_COMPLEXITY_THRESHOLD and len(dominant_colors) > PHOTO_MIN_COLORS


def analyze_surface(surface: RasterSurface) -> ImageAnalysis:
    """Extract features from an already decoded surface.

    Raises:
        AnalysisDegraded: If the surface has non-positive dimensions.
    """
    width, height = surface.width, surface.height
    if width <= 0 or height <= 0:
        raise AnalysisDegraded(
            f"Invalid image dimensions {width}x{height}",
            width=width,
            height=height,
        )

    complexity = calculate_complexity(surface.sample(COMPLEXITY_WINDOW))
    color_sample = surface.sample(COLOR_WINDOW)
    dominant_colors = extract_dominant_colors(color_sample)

    return ImageAnalysis(
        width=width,
        height=height,
        aspect_ratio=width / height,
        pixel_count=width * height,
        complexity=complexity,
        has_transparency=detect_transparency(color_sample),
        dominant_colors=dominant_colors,
        is_photographic=is_photographic(complexity, dominant_colors),
    )


def degraded_analysis(error: str) -> ImageAnalysis:
    """Conservative defaults for images that could not be analyzed."""
    return ImageAnalysis(
        width=0,
        height=0,
        aspect_ratio=1.0,
        pixel_count=0,
        complexity=0.5,
        has_transparency=False,
        dominant_colors=[],
        is_photographic=True,
        analysis_error=error,
    )


def analyze_sync(image: ImageBytes) -> ImageAnalysis:
    try:
        surface = PillowSurface.decode(image.data)
        return analyze_surface(surface)
    except PixpressError as e:
        logger.warning(
            f"Image analysis degraded: {e.message}",
            extra={
                "context": {
                    "error_code": e.error_code,
                    "name": image.name,
                    "mime_type": image.mime_type,
                    "size": image.size,
                }
            },
        )
        return degraded_analysis(e.message)


async def analyze(image: ImageBytes) -> ImageAnalysis:
    """Analyze an image. Never raises for undecodable input.

    Returns:
        ImageAnalysis; on failure, a record with analysis_error set and
        conservative defaults (complexity 0.5, zero dimensions,
        is_photographic=True).
    """
    return await asyncio.to_thread(analyze_sync, image)
