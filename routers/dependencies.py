import json

from fastapi import Request

from config import settings
from estimation.presets import get_policy_for_preset
from exceptions import BadRequestError
from optimizers.image_optimizer import ImageOptimizer
from schemas import PolicyOptions


def get_optimizer(request: Request) -> ImageOptimizer:
    """The optimizer built at startup; built on first use if lifespan did not run."""
    optimizer = getattr(request.app.state, "optimizer", None)
    if optimizer is None:
        optimizer = ImageOptimizer(PolicyOptions(**settings.policy_defaults()))
        request.app.state.optimizer = optimizer
    return optimizer


def parse_policy_overrides(
    optimizer: ImageOptimizer,
    options: str | None,
    preset: str | None,
) -> dict:
    """Turn the 'preset' and 'options' form fields into policy overrides.

    The preset is applied first; explicit options win over it.
    """
    overrides: dict = {}

    if preset:
        try:
            preset_policy = get_policy_for_preset(preset, optimizer.policy)
        except ValueError as e:
            raise BadRequestError(str(e))
        overrides.update(preset_policy.model_dump())

    if options:
        try:
            data = json.loads(options)
        except json.JSONDecodeError as e:
            raise BadRequestError(f"Invalid JSON in 'options' field: {e}")
        if not isinstance(data, dict):
            raise BadRequestError("'options' must be a JSON object")
        overrides.update(data)

    # Validate eagerly so bad options surface as 400 before any work
    optimizer.resolve_policy(overrides)
    return overrides
