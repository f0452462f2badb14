import math

from exceptions import DecodeError, UnsupportedFormatError
from schemas import (
    FormatSupport,
    ImageAnalysis,
    OptimizationStrategy,
    PolicyOptions,
    ResizePlan,
)
from utils.format_detect import ImageFormat

HIGH_COMPLEXITY = 0.7
LOW_COMPLEXITY = 0.3
QUALITY_STEP = 0.1
LARGE_IMAGE_PIXELS = 2_000_000
LARGE_IMAGE_QUALITY_STEP = 0.05
SMART_CROP_WIDE = 3
SMART_CROP_TALL = 0.33


def is_available(fmt: ImageFormat, policy: PolicyOptions, support: FormatSupport) -> bool:
    """A format is usable when the runtime can encode it and the policy allows it."""
    return support.supports(fmt) and fmt in policy.supported_formats


def select_format(
    analysis: ImageAnalysis,
    policy: PolicyOptions,
    support: FormatSupport,
) -> ImageFormat:
    """Pick the output format.

    Order:
    1. Transparent        → webp, else png
    2. Photographic       → avif, else webp, else jpeg
    3. Flat (complexity < 0.3) → webp, else png
    4. Otherwise          → preferred_format, else fallback_format

    Raises:
        UnsupportedFormatError: If branch 4 finds neither policy format usable.
    """
    if analysis.has_transparency:
        if is_available(ImageFormat.WEBP, policy, support):
            return ImageFormat.WEBP
        return ImageFormat.PNG

    if analysis.is_photographic:
        if is_available(ImageFormat.AVIF, policy, support):
            return ImageFormat.AVIF
        if is_available(ImageFormat.WEBP, policy, support):
            return ImageFormat.WEBP
        return ImageFormat.JPEG

    if analysis.complexity < LOW_COMPLEXITY:
        if is_available(ImageFormat.WEBP, policy, support):
            return ImageFormat.WEBP
        return ImageFormat.PNG

    for fmt in (policy.preferred_format, policy.fallback_format):
        if is_available(fmt, policy, support):
            return fmt

    raise UnsupportedFormatError(
        "Neither preferred nor fallback format can be encoded",
        preferred_format=policy.preferred_format.value,
        fallback_format=policy.fallback_format.value,
    )


def calculate_quality(analysis: ImageAnalysis, policy: PolicyOptions) -> float:
    """Start at default_quality, adjust by complexity and size, clamp to policy bounds."""
    quality = policy.default_quality

    if analysis.complexity > HIGH_COMPLEXITY:
        quality = min(quality + QUALITY_STEP, policy.max_quality)
    elif analysis.complexity < LOW_COMPLEXITY:
        quality = max(quality - QUALITY_STEP, policy.min_quality)

    if analysis.pixel_count > LARGE_IMAGE_PIXELS:
        quality = max(quality - LARGE_IMAGE_QUALITY_STEP, policy.min_quality)

    # Float steps leave artifacts like 0.9499999999999999
    quality = round(quality, 4)
    return min(max(quality, policy.min_quality), policy.max_quality)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_resize(analysis: ImageAnalysis, policy: PolicyOptions) -> ResizePlan:
    """Fit within max_width x max_height with a uniform scale. Never upsizes."""
    width, height = analysis.width, analysis.height

    if width <= policy.max_width and height <= policy.max_height:
        return ResizePlan(target_width=width, target_height=height, needs_resize=False)

    ratio = min(policy.max_width / width, policy.max_height / height)
    return ResizePlan(
        target_width=min(width, max(1, _round_half_up(width * ratio))),
        target_height=min(height, max(1, _round_half_up(height * ratio))),
        needs_resize=True,
        scale_ratio=ratio,
    )


def should_smart_crop(analysis: ImageAnalysis) -> bool:
    """Extreme aspect ratios are crop candidates."""
    return analysis.aspect_ratio > SMART_CROP_WIDE or analysis.aspect_ratio < SMART_CROP_TALL


def select_strategy(
    analysis: ImageAnalysis,
    policy: PolicyOptions,
    support: FormatSupport,
    target_format: ImageFormat | None = None,
) -> OptimizationStrategy:
    """Map analysis + policy to an encode plan. Pure and deterministic.

    A given target_format replaces format selection entirely.

    Raises:
        DecodeError: If the analysis is degraded or has no pixels.
        UnsupportedFormatError: If no policy format can be encoded.
    """
    if analysis.degraded or analysis.width <= 0 or analysis.height <= 0:
        raise DecodeError(
            analysis.analysis_error
            or f"Invalid image dimensions {analysis.width}x{analysis.height}",
            width=analysis.width,
            height=analysis.height,
        )

    return OptimizationStrategy(
        target_format=target_format or select_format(analysis, policy, support),
        quality=calculate_quality(analysis, policy),
        resize=calculate_resize(analysis, policy),
        use_progressive_encoding=policy.enable_progressive_encoding
        and analysis.is_photographic,
        preserve_metadata=policy.preserve_metadata,
        use_smart_crop=policy.enable_smart_crop and should_smart_crop(analysis),
    )
