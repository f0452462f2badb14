from pydantic import ValidationError

from estimation.presets import thumbnail_overrides
from estimation.suggestions import suggest
from exceptions import BadRequestError, UnsupportedFormatError
from optimizers import analyzer, encoder, strategy
from optimizers.batch import optimize_batch
from optimizers.capabilities import probe_support
from optimizers.pipeline import optimize_image
from schemas import (
    BatchResult,
    FormatSupport,
    ImageAnalysis,
    ImageBytes,
    OptimizationOutcome,
    OptimizationStrategy,
    OptimizedResult,
    PolicyOptions,
    SuggestionReport,
)
from utils.format_detect import OUTPUT_FORMATS, ImageFormat

# Explicit conversions keep the source size
NO_RESIZE_LIMIT = 65535


class ImageOptimizer:
    """Pipeline entry point bound to one policy and one FormatSupport.

    Build once (FormatSupport probing is not free) and share. Holds no
    per-call state, so concurrent calls are safe.
    """

    def __init__(
        self,
        policy: PolicyOptions | None = None,
        support: FormatSupport | None = None,
    ):
        self.policy = policy or PolicyOptions()
        self.support = support if support is not None else probe_support()

    def resolve_policy(self, overrides: dict | None = None) -> PolicyOptions:
        """Instance policy with per-call overrides applied.

        Raises:
            BadRequestError: If the overrides do not validate.
        """
        try:
            return self.policy.merged(**(overrides or {}))
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'policy'}: {err['msg']}"
                for err in e.errors()
            )
            raise BadRequestError(f"Invalid policy options: {problems}") from e

    async def analyze(self, image: ImageBytes) -> ImageAnalysis:
        return await analyzer.analyze(image)

    def select_strategy(
        self,
        analysis: ImageAnalysis,
        policy: PolicyOptions | None = None,
    ) -> OptimizationStrategy:
        return strategy.select_strategy(analysis, policy or self.policy, self.support)

    async def encode(
        self, image: ImageBytes, plan: OptimizationStrategy
    ) -> OptimizedResult:
        return await encoder.encode(image, plan)

    async def optimize(self, image: ImageBytes, **overrides) -> OptimizationOutcome:
        return await optimize_image(image, self.resolve_policy(overrides), self.support)

    async def optimize_batch(self, images: list[ImageBytes], **overrides) -> BatchResult:
        return await optimize_batch(images, self.resolve_policy(overrides), self.support)

    async def suggest(self, image: ImageBytes) -> SuggestionReport:
        return await suggest(image)

    async def create_thumbnail(
        self, image: ImageBytes, size: int | None = None
    ) -> OptimizationOutcome:
        """Fit the image into a size x size box (default policy.thumbnail_size)."""
        policy = self.resolve_policy(thumbnail_overrides(size or self.policy.thumbnail_size))
        return await optimize_image(image, policy, self.support)

    async def convert_format(
        self,
        image: ImageBytes,
        target_format: ImageFormat | str,
        quality: float = 0.85,
        progressive: bool | None = None,
    ) -> OptimizationOutcome:
        """Re-encode into a specific format at a specific quality, without resizing.

        Raises:
            UnsupportedFormatError: If the runtime cannot encode target_format.
            BadRequestError: If quality is outside (0, 1].
        """
        fmt = self._require_encodable(target_format)
        if not 0 < quality <= 1:
            raise BadRequestError(f"Quality must be in (0, 1], got {quality}")

        policy = self.resolve_policy(
            {"max_width": NO_RESIZE_LIMIT, "max_height": NO_RESIZE_LIMIT}
        )
        override = {"target_format": fmt, "quality": quality}
        if progressive is not None:
            override["use_progressive_encoding"] = progressive
        return await optimize_image(image, policy, self.support, override=override)

    async def create_progressive_jpeg(
        self, image: ImageBytes, quality: float = 0.85
    ) -> OptimizationOutcome:
        return await self.convert_format(
            image, ImageFormat.JPEG, quality=quality, progressive=True
        )

    def _require_encodable(self, target_format: ImageFormat | str) -> ImageFormat:
        try:
            fmt = ImageFormat(target_format)
        except ValueError:
            raise UnsupportedFormatError(f"Unknown format: {target_format}")
        if fmt not in OUTPUT_FORMATS or not self.support.supports(fmt):
            raise UnsupportedFormatError(
                f"Format not supported by this runtime: {fmt.value}",
                format=fmt.value,
            )
        return fmt
