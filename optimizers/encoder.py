import asyncio

from exceptions import EncodeError
from optimizers.surface import PillowSurface, RasterSurface
from schemas import ImageBytes, OptimizationStrategy, OptimizedResult
from utils.logging import get_logger

logger = get_logger("encoder")


def smart_crop_box(
    source_width: int,
    source_height: int,
    target_width: int,
    target_height: int,
) -> tuple[float, float, float, float]:
    """Centered source rectangle with the target aspect ratio.

    The longer axis (relative to the target ratio) is cropped symmetrically.

    Returns:
        (left, top, right, bottom) in source pixel coordinates.
    """
    source_ratio = source_width / source_height
    target_ratio = target_width / target_height

    if source_ratio > target_ratio:
        # Source is wider: trim left and right
        crop_height = source_height
        crop_width = source_height * target_ratio
        left = (source_width - crop_width) / 2
        top = 0.0
    else:
        # Source is taller: trim top and bottom
        crop_width = source_width
        crop_height = source_width / target_ratio
        left = 0.0
        top = (source_height - crop_height) / 2

    return (left, top, left + crop_width, top + crop_height)


def render(surface: RasterSurface, strategy: OptimizationStrategy) -> OptimizedResult:
    """Resize (optionally smart-cropped) and encode a decoded surface."""
    plan = strategy.resize
    width, height = plan.target_width, plan.target_height
    if width < 1 or height < 1:
        raise EncodeError(
            f"Invalid target size {width}x{height}",
            width=width,
            height=height,
        )

    crop_box = None
    if strategy.use_smart_crop:
        crop_box = smart_crop_box(surface.width, surface.height, width, height)

    target = surface.draw(width, height, crop_box)

    output = target.export(
        strategy.target_format,
        strategy.quality,
        progressive=strategy.use_progressive_encoding,
        preserve_metadata=strategy.preserve_metadata,
    )

    return OptimizedResult(
        output_bytes=output,
        byte_size=len(output),
        format=strategy.target_format,
        width=width,
        height=height,
        applied_quality=strategy.quality,
    )


def encode_sync(image: ImageBytes, strategy: OptimizationStrategy) -> OptimizedResult:
    surface = PillowSurface.decode(image.data)
    result = render(surface, strategy)
    logger.debug(
        "Image encoded",
        extra={
            "context": {
                "name": image.name,
                "format": result.format.value,
                "quality": result.applied_quality,
                "original_size": image.size,
                "optimized_size": result.byte_size,
                "width": result.width,
                "height": result.height,
            }
        },
    )
    return result


async def encode(image: ImageBytes, strategy: OptimizationStrategy) -> OptimizedResult:
    """Execute an encode plan.

    Output format and quality are exactly those of the strategy.

    Raises:
        DecodeError: If the source cannot be decoded.
        EncodeError: If the codec rejects the target format or produces nothing.
    """
    return await asyncio.to_thread(encode_sync, image, strategy)
