import asyncio

from exceptions import PixpressError
from optimizers.pipeline import optimize_image
from schemas import (
    BatchItemResult,
    BatchResult,
    FormatSupport,
    ImageBytes,
    OptimizationOutcome,
    PolicyOptions,
)
from utils.concurrency import chunked
from utils.logging import get_logger

logger = get_logger("batch")


def _item_result(
    index: int,
    image: ImageBytes,
    outcome: OptimizationOutcome | BaseException,
) -> BatchItemResult:
    if isinstance(outcome, OptimizationOutcome):
        return BatchItemResult(
            index=index,
            name=image.name,
            original_size=image.size,
            success=True,
            result=outcome.result,
            strategy=outcome.strategy,
        )

    if isinstance(outcome, PixpressError):
        error, error_code = outcome.message, outcome.error_code
    else:
        logger.error(
            f"Unexpected failure optimizing batch item {index}",
            exc_info=(type(outcome), outcome, outcome.__traceback__),
            extra={"context": {"index": index, "name": image.name}},
        )
        error, error_code = str(outcome) or type(outcome).__name__, "internal_error"

    return BatchItemResult(
        index=index,
        name=image.name,
        original_size=image.size,
        success=False,
        error=error,
        error_code=error_code,
    )


async def optimize_batch(
    images: list[ImageBytes],
    policy: PolicyOptions,
    support: FormatSupport,
) -> BatchResult:
    """Optimize many images with bounded concurrency.

    Chunks of policy.max_concurrent_batch_items run one after another;
    items within a chunk run concurrently. A failing item is recorded in
    its own BatchItemResult and never aborts the batch.

    Failed items count at their original size in total_optimized_size.
    """
    results: list[BatchItemResult] = []
    indexed = list(enumerate(images))

    for chunk in chunked(indexed, policy.max_concurrent_batch_items):
        outcomes = await asyncio.gather(
            *(optimize_image(image, policy, support) for _, image in chunk),
            return_exceptions=True,
        )
        for (index, image), outcome in zip(chunk, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            results.append(_item_result(index, image, outcome))

    successful = sum(1 for r in results if r.success)
    batch = BatchResult(
        total=len(images),
        successful=successful,
        failed=len(results) - successful,
        results=results,
        total_original_size=sum(r.original_size for r in results),
        total_optimized_size=sum(r.effective_size for r in results),
    )

    logger.info(
        "Batch optimization finished",
        extra={
            "context": {
                "total": batch.total,
                "successful": batch.successful,
                "failed": batch.failed,
                "total_original_size": batch.total_original_size,
                "total_optimized_size": batch.total_optimized_size,
            }
        },
    )
    return batch
