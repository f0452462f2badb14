from fastapi import APIRouter, Depends

from optimizers.image_optimizer import ImageOptimizer
from routers.dependencies import get_optimizer
from schemas import HealthResponse

router = APIRouter()

VERSION = "0.1.0"


@router.get("/health", response_model=HealthResponse)
async def health(optimizer: ImageOptimizer = Depends(get_optimizer)):
    """Report probed output format support.

    status is "degraded" when any output format cannot be encoded.
    """
    support = optimizer.support
    all_available = all(support.model_dump().values())
    return HealthResponse(
        status="ok" if all_available else "degraded",
        formats=support,
        version=VERSION,
    )
