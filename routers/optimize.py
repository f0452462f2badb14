from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import Response

from optimizers.image_optimizer import ImageOptimizer
from routers.dependencies import get_optimizer, parse_policy_overrides
from schemas import ImageBytes, OptimizationOutcome
from security.file_validation import validate_file
from utils.concurrency import processing_gate
from utils.format_detect import MIME_TYPES

router = APIRouter()

# Result headers the editor reads; exposed through CORS in main.py
RESULT_HEADERS = [
    "X-Original-Size",
    "X-Optimized-Size",
    "X-Reduction-Percent",
    "X-Compression-Ratio",
    "X-Output-Format",
    "X-Applied-Quality",
    "X-Output-Dimensions",
    "X-Request-ID",
]


@router.post("/optimize")
async def optimize(
    request: Request,
    file: UploadFile = File(...),
    options: str | None = Form(None),
    preset: str | None = Form(None),
    target_format: str | None = Form(None),
    quality: float | None = Form(None),
    progressive: bool | None = Form(None),
    thumbnail: bool = Form(False),
    thumbnail_size: int | None = Form(None),
    optimizer: ImageOptimizer = Depends(get_optimizer),
):
    """Optimize one image and return the encoded bytes.

    Three modes:
    1. Default: analyze, pick a strategy from the policy, re-encode
    2. thumbnail=true: fit into a thumbnail_size box
    3. target_format set: convert at `quality` without resizing
    """
    data = await file.read()
    validate_file(data, file.content_type)
    image = ImageBytes(
        data=data,
        mime_type=file.content_type or "",
        name=file.filename or "",
    )

    async with processing_gate.slot():
        if target_format:
            outcome = await optimizer.convert_format(
                image,
                target_format,
                quality=quality if quality is not None else 0.85,
                progressive=progressive,
            )
        elif thumbnail:
            outcome = await optimizer.create_thumbnail(image, thumbnail_size)
        else:
            overrides = parse_policy_overrides(optimizer, options, preset)
            outcome = await optimizer.optimize(image, **overrides)

    return _build_binary_response(outcome, request)


def _build_binary_response(outcome: OptimizationOutcome, request: Request) -> Response:
    """Build raw bytes response with X-* headers."""
    request_id = getattr(request.state, "request_id", "")
    result = outcome.result

    return Response(
        content=result.output_bytes,
        media_type=MIME_TYPES.get(result.format, "application/octet-stream"),
        headers={
            "Content-Length": str(result.byte_size),
            "X-Original-Size": str(outcome.original_size),
            "X-Optimized-Size": str(result.byte_size),
            "X-Reduction-Percent": str(outcome.reduction_percent),
            "X-Compression-Ratio": f"{outcome.compression_ratio:.3f}",
            "X-Output-Format": result.format.value,
            "X-Applied-Quality": str(result.applied_quality),
            "X-Output-Dimensions": f"{result.width}x{result.height}",
            "X-Request-ID": request_id,
        },
    )
