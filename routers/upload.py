from fastapi import APIRouter, Depends, File, Form, UploadFile

from config import settings
from exceptions import BadRequestError, StorageError
from optimizers.image_optimizer import ImageOptimizer
from routers.dependencies import get_optimizer, parse_policy_overrides
from schemas import ImageBytes, UploadedImage, UploadResponse
from security.file_validation import validate_file
from storage.local import image_storage
from utils.concurrency import processing_gate
from utils.format_detect import ImageFormat

router = APIRouter()


@router.post("/api/images/upload", response_model=UploadResponse)
async def upload_images(
    images: list[UploadFile] = File(...),
    category: str = Form("posts"),
    article_slug: str | None = Form(None, alias="articleSlug"),
    optimize: bool = Form(True),
    options: str | None = Form(None),
    preset: str | None = Form(None),
    optimizer: ImageOptimizer = Depends(get_optimizer),
):
    """Store uploaded images under static/images for use in posts.

    When optimize is set, images run through the batch pipeline first.
    GIFs are stored untouched to keep animation. A file that fails to
    optimize is stored as uploaded and counted in `failed`. If a file
    cannot be written, files already written for this request are removed
    and the request fails with StorageError.

    JSON keys are camelCase; the slug form field is `articleSlug`.
    """
    if not images:
        raise BadRequestError("No images uploaded")
    if len(images) > settings.max_files_per_upload:
        raise BadRequestError(
            f"Too many files: {len(images)} (limit {settings.max_files_per_upload})",
            limit=settings.max_files_per_upload,
        )

    sources: list[tuple[ImageBytes, ImageFormat]] = []
    for upload in images:
        data = await upload.read()
        fmt = validate_file(data, upload.content_type)
        sources.append(
            (
                ImageBytes(
                    data=data,
                    mime_type=upload.content_type or "",
                    name=upload.filename or "",
                ),
                fmt,
            )
        )

    pending = [
        i for i, (_, fmt) in enumerate(sources) if optimize and fmt != ImageFormat.GIF
    ]
    outputs: dict[int, tuple[bytes, ImageFormat]] = {}
    failed = 0

    if pending:
        overrides = parse_policy_overrides(optimizer, options, preset)
        async with processing_gate.slot():
            batch = await optimizer.optimize_batch(
                [sources[i][0] for i in pending], **overrides
            )

        failed = batch.failed
        for item in batch.results:
            if item.success and item.result is not None:
                outputs[pending[item.index]] = (item.result.output_bytes, item.result.format)

    stored: list[UploadedImage] = []
    try:
        for i, (image, fmt) in enumerate(sources):
            data, out_fmt = outputs.get(i, (image.data, fmt))
            stored.append(
                await image_storage.save(
                    data,
                    original_name=image.name,
                    category=category,
                    article_slug=article_slug,
                    fmt=out_fmt,
                    optimized=i in outputs,
                )
            )
    except StorageError:
        # All or nothing: a failed request leaves no files behind
        for item in stored:
            await image_storage.delete(item.web_path)
        raise

    return UploadResponse(
        success=True,
        images=stored,
        total_original_size=sum(image.size for image, _ in sources),
        total_stored_size=sum(item.size for item in stored),
        failed=failed,
    )
