from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from exceptions import UnsupportedFormatError
from utils.format_detect import OUTPUT_FORMATS, ImageFormat, detect_format, format_from_mime


@dataclass(frozen=True)
class ImageBytes:
    """Raw image payload as handed over by the caller. Never mutated."""

    data: bytes
    mime_type: str = ""
    name: str = ""

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def format(self) -> ImageFormat | None:
        """Declared format, falling back to magic bytes when undeclared."""
        fmt = format_from_mime(self.mime_type)
        if fmt is not None:
            return fmt
        try:
            return detect_format(self.data)
        except UnsupportedFormatError:
            return None


class FormatSupport(BaseModel):
    """Which output encodings the runtime can actually produce."""

    model_config = ConfigDict(frozen=True)

    webp: bool = False
    avif: bool = False
    jpeg: bool = False
    png: bool = False

    def supports(self, fmt: ImageFormat | str) -> bool:
        return bool(getattr(self, ImageFormat(fmt).value, False))


def _require_output_format(fmt: ImageFormat) -> ImageFormat:
    if fmt not in OUTPUT_FORMATS:
        raise ValueError(
            f"'{fmt.value}' is not an output format. "
            f"Must be one of: {', '.join(f.value for f in OUTPUT_FORMATS)}."
        )
    return fmt


class PolicyOptions(BaseModel):
    """Optimization policy (all optional with defaults).

    Qualities are fractions in (0, 1], matching encoder quality factors.
    """

    model_config = ConfigDict(extra="forbid")

    default_quality: float = Field(default=0.85, gt=0, le=1)
    min_quality: float = Field(default=0.6, gt=0, le=1)
    max_quality: float = Field(default=0.95, gt=0, le=1)
    max_width: int = Field(default=1920, gt=0)
    max_height: int = Field(default=1080, gt=0)
    thumbnail_size: int = Field(default=300, gt=0)
    preferred_format: ImageFormat = ImageFormat.WEBP
    fallback_format: ImageFormat = ImageFormat.JPEG
    supported_formats: list[ImageFormat] = Field(
        default_factory=lambda: list(OUTPUT_FORMATS)
    )
    enable_progressive_encoding: bool = True
    preserve_metadata: bool = False
    enable_smart_crop: bool = False
    max_concurrent_batch_items: int = Field(default=3, ge=1)

    @field_validator("preferred_format", "fallback_format")
    @classmethod
    def _check_output_format(cls, value: ImageFormat) -> ImageFormat:
        return _require_output_format(value)

    @field_validator("supported_formats")
    @classmethod
    def _check_supported_formats(cls, value: list[ImageFormat]) -> list[ImageFormat]:
        for fmt in value:
            _require_output_format(fmt)
        return value

    @model_validator(mode="after")
    def _check_quality_bounds(self) -> "PolicyOptions":
        if self.min_quality > self.max_quality:
            raise ValueError(
                f"min_quality ({self.min_quality}) exceeds max_quality ({self.max_quality})"
            )
        return self

    def merged(self, **overrides) -> "PolicyOptions":
        """Return a validated copy with overrides applied."""
        if not overrides:
            return self
        return PolicyOptions(**{**self.model_dump(), **overrides})


class DominantColor(BaseModel):
    color: tuple[int, int, int]
    count: int


class ImageAnalysis(BaseModel):
    """Visual features of one image. Built fresh for every call."""

    width: int = Field(ge=0)
    height: int = Field(ge=0)
    aspect_ratio: float
    pixel_count: int = Field(ge=0)
    complexity: float = Field(ge=0, le=1)
    has_transparency: bool
    dominant_colors: list[DominantColor] = Field(default_factory=list, max_length=5)
    is_photographic: bool
    analysis_error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.analysis_error is not None


class ResizePlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_width: int
    target_height: int
    needs_resize: bool
    scale_ratio: float = 1.0


class OptimizationStrategy(BaseModel):
    """Concrete encode plan for one image."""

    model_config = ConfigDict(frozen=True)

    target_format: ImageFormat
    quality: float = Field(gt=0, le=1)
    resize: ResizePlan
    use_progressive_encoding: bool = False
    preserve_metadata: bool = False
    use_smart_crop: bool = False


class OptimizedResult(BaseModel):
    """Encoder output. Bytes are left out of JSON dumps."""

    output_bytes: bytes = Field(default=b"", exclude=True, repr=False)
    byte_size: int
    format: ImageFormat
    width: int
    height: int
    applied_quality: float

    def compression_ratio(self, original_size: int) -> float:
        """original_size / byte_size; 0.0 when the output is empty."""
        if self.byte_size <= 0:
            return 0.0
        return original_size / self.byte_size


class OptimizationOutcome(BaseModel):
    """End-to-end result of optimizing a single image."""

    original_size: int
    original_format: Optional[ImageFormat] = None
    analysis: ImageAnalysis
    strategy: OptimizationStrategy
    result: OptimizedResult

    @property
    def compression_ratio(self) -> float:
        return self.result.compression_ratio(self.original_size)

    @property
    def reduction_percent(self) -> float:
        if self.original_size <= 0:
            return 0.0
        return round((1 - self.result.byte_size / self.original_size) * 100, 1)


class BatchItemResult(BaseModel):
    index: int
    name: str = ""
    original_size: int
    success: bool
    result: Optional[OptimizedResult] = None
    strategy: Optional[OptimizationStrategy] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def effective_size(self) -> int:
        """Optimized size on success, original size otherwise."""
        if self.success and self.result is not None:
            return self.result.byte_size
        return self.original_size


class BatchResult(BaseModel):
    total: int
    successful: int
    failed: int
    results: list[BatchItemResult]
    total_original_size: int
    total_optimized_size: int

    @property
    def total_savings(self) -> int:
        return self.total_original_size - self.total_optimized_size


class Suggestion(BaseModel):
    type: Literal["resize", "format", "quality"]
    message: str
    impact: Literal["high", "medium", "low"]


class SavingsEstimate(BaseModel):
    """Heuristic estimate. Not the size of an actual re-encode."""

    estimated_ratio: float
    estimated_size: int
    savings: int
    savings_percentage: float
    confidence: str = "low"


class SuggestionReport(BaseModel):
    analysis: ImageAnalysis
    suggestions: list[Suggestion]
    estimated_savings: SavingsEstimate


# Editor-facing records: snake_case in Python, camelCase on the wire
_EDITOR_JSON = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadedImage(BaseModel):
    """One persisted image, in the shape the editor front-end consumes.

    JSON keys are camelCase (webPath, originalName, markdownRef) to match
    what the editor reads.
    """

    model_config = _EDITOR_JSON

    filename: str
    web_path: str
    original_name: str
    size: int
    category: str
    format: Optional[str] = None
    optimized: bool = False
    markdown_ref: str = ""


class UploadResponse(BaseModel):
    model_config = _EDITOR_JSON

    success: bool
    images: list[UploadedImage] = Field(default_factory=list)
    total_original_size: int = 0
    total_stored_size: int = 0
    failed: int = 0
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    success: bool = False
    error: str
    message: str


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str = "ok"
    formats: FormatSupport
    version: str
