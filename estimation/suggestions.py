"""Analysis-only optimization suggestions.

Runs the analyzer without re-encoding and turns its features into
human-readable recommendations plus a rough savings figure. The figure is
a fixed-ratio heuristic, not the size of an actual encode.
"""

from optimizers.analyzer import analyze
from schemas import (
    ImageAnalysis,
    ImageBytes,
    SavingsEstimate,
    Suggestion,
    SuggestionReport,
)
from utils.format_detect import ImageFormat

SUGGEST_MAX_WIDTH = 1920
SUGGEST_MAX_HEIGHT = 1080
LOW_COMPLEXITY = 0.3

PHOTO_RATIO = 0.6
FLAT_RATIO = 0.8
DEFAULT_RATIO = 0.7


def build_suggestions(
    analysis: ImageAnalysis,
    original_format: ImageFormat | None,
) -> list[Suggestion]:
    """Every applicable rule fires, in rule order."""
    suggestions = []

    if analysis.width > SUGGEST_MAX_WIDTH or analysis.height > SUGGEST_MAX_HEIGHT:
        suggestions.append(
            Suggestion(
                type="resize",
                message=(
                    f"Downscale from {analysis.width}x{analysis.height} to fit "
                    f"{SUGGEST_MAX_WIDTH}x{SUGGEST_MAX_HEIGHT} to reduce file size"
                ),
                impact="high",
            )
        )

    if original_format == ImageFormat.PNG and not analysis.has_transparency:
        suggestions.append(
            Suggestion(
                type="format",
                message="No transparency detected; convert to JPEG or WebP",
                impact="medium",
            )
        )

    if analysis.complexity < LOW_COMPLEXITY:
        suggestions.append(
            Suggestion(
                type="quality",
                message="Low visual complexity; quality can be lowered without visible loss",
                impact="low",
            )
        )

    return suggestions


def estimate_savings(analysis: ImageAnalysis, original_size: int) -> SavingsEstimate:
    """Fixed-ratio estimate: 0.6 for photos, 0.8 for flat images, else 0.7."""
    if analysis.is_photographic:
        ratio = PHOTO_RATIO
    elif analysis.complexity < LOW_COMPLEXITY:
        ratio = FLAT_RATIO
    else:
        ratio = DEFAULT_RATIO

    estimated_size = round(original_size * ratio)
    savings = original_size - estimated_size
    percentage = round(savings / original_size * 100, 1) if original_size > 0 else 0.0

    return SavingsEstimate(
        estimated_ratio=ratio,
        estimated_size=estimated_size,
        savings=savings,
        savings_percentage=percentage,
    )


async def suggest(image: ImageBytes) -> SuggestionReport:
    """Analyze an image and recommend optimizations without encoding it."""
    analysis = await analyze(image)
    return SuggestionReport(
        analysis=analysis,
        suggestions=build_suggestions(analysis, image.format),
        estimated_savings=estimate_savings(analysis, image.size),
    )
