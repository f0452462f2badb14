from fastapi import APIRouter, Depends, File, UploadFile

from optimizers.image_optimizer import ImageOptimizer
from routers.dependencies import get_optimizer
from schemas import ImageBytes, SuggestionReport
from security.file_validation import validate_file

router = APIRouter()


@router.post("/suggest", response_model=SuggestionReport)
async def suggest(
    file: UploadFile = File(...),
    optimizer: ImageOptimizer = Depends(get_optimizer),
):
    """Recommend optimizations without re-encoding.

    estimated_savings is a fixed-ratio heuristic, not a measured result.
    """
    data = await file.read()
    validate_file(data, file.content_type)

    return await optimizer.suggest(
        ImageBytes(data=data, mime_type=file.content_type or "", name=file.filename or "")
    )
