"""Preset -> PolicyOptions overrides."""

from schemas import PolicyOptions

PRESET_OVERRIDES = {
    "high": {"default_quality": 0.7, "min_quality": 0.5, "max_quality": 0.85},
    "medium": {"default_quality": 0.85, "min_quality": 0.6, "max_quality": 0.95},
    "low": {
        "default_quality": 0.92,
        "min_quality": 0.85,
        "max_quality": 0.98,
        "preserve_metadata": True,
    },
}


def thumbnail_overrides(size: int) -> dict:
    """Bounding box of `size` pixels, quality 0.8, webp preferred."""
    return {
        "max_width": size,
        "max_height": size,
        "default_quality": 0.8,
        "preferred_format": "webp",
    }


def get_policy_for_preset(preset: str, base: PolicyOptions | None = None) -> PolicyOptions:
    """Apply a named preset on top of a base policy.

    Args:
        preset: "high", "medium", "low" (compression level) or "thumbnail"
            (case-insensitive).
        base: Policy to start from; defaults to PolicyOptions().

    Returns:
        Validated PolicyOptions.

    Raises:
        ValueError: If preset is not recognized.
    """
    if base is None:
        base = PolicyOptions()

    key = preset.lower()
    if key == "thumbnail":
        return base.merged(**thumbnail_overrides(base.thumbnail_size))
    if key not in PRESET_OVERRIDES:
        raise ValueError(
            f"Invalid preset: '{preset}'. Must be 'high', 'medium', 'low' or 'thumbnail'."
        )
    return base.merged(**PRESET_OVERRIDES[key])
