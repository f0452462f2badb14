from optimizers.analyzer import analyze
from optimizers.encoder import encode
from optimizers.strategy import select_strategy
from schemas import (
    FormatSupport,
    ImageBytes,
    OptimizationOutcome,
    OptimizationStrategy,
    PolicyOptions,
)


async def optimize_image(
    image: ImageBytes,
    policy: PolicyOptions,
    support: FormatSupport,
    override: dict | None = None,
) -> OptimizationOutcome:
    """Analyze, plan and re-encode one image.

    Args:
        image: Source bytes.
        policy: Validated policy options.
        support: Probed output format support.
        override: Strategy fields to force after selection
            (e.g. target_format for explicit conversions). A forced
            target_format skips format selection.

    Returns:
        OptimizationOutcome with analysis, strategy and encoded result.

    Raises:
        DecodeError: If the image cannot be decoded.
        EncodeError: If the target codec rejects the image.
        UnsupportedFormatError: If no policy format can be encoded.
    """
    override = override or {}
    analysis = await analyze(image)
    strategy = select_strategy(
        analysis, policy, support, target_format=override.get("target_format")
    )
    if override:
        strategy = OptimizationStrategy(**{**strategy.model_dump(), **override})

    result = await encode(image, strategy)

    return OptimizationOutcome(
        original_size=image.size,
        original_format=image.format,
        analysis=analysis,
        strategy=strategy,
        result=result,
    )
