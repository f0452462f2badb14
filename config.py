import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # --- Server ---
    port: int = 8080
    workers: int = 1
    allowed_origins: str = "*"

    # --- Upload Limits ---
    max_file_size_mb: int = 10
    max_file_size_bytes: int = 0  # Computed in model_post_init
    max_files_per_upload: int = 10
    allowed_mime_types: str = "image/jpeg,image/png,image/gif,image/webp,image/avif"

    # --- Storage ---
    storage_root: str = "static"
    images_dir: str = "images"

    # --- Pipeline Policy Defaults ---
    default_quality: float = 0.85
    min_quality: float = 0.6
    max_quality: float = 0.95
    max_width: int = 1920
    max_height: int = 1080
    thumbnail_size: int = 300
    preferred_format: str = "webp"
    fallback_format: str = "jpeg"
    enable_progressive_encoding: bool = True
    preserve_metadata: bool = False
    enable_smart_crop: bool = False
    max_concurrent_batch_items: int = 3

    # --- Concurrency ---
    processing_semaphore_size: int = 0  # 0 = use CPU count
    max_queue_depth: int = 0  # 0 = 2 * semaphore size

    # --- Logging ---
    log_level: str = "INFO"

    model_config = {"env_prefix": "", "case_sensitive": False}

    def model_post_init(self, __context) -> None:
        if self.max_file_size_bytes == 0:
            self.max_file_size_bytes = self.max_file_size_mb * 1024 * 1024
        if self.processing_semaphore_size == 0:
            self.processing_semaphore_size = os.cpu_count() or 4
        if self.max_queue_depth == 0:
            self.max_queue_depth = 2 * self.processing_semaphore_size

    @property
    def allowed_mime_list(self) -> list[str]:
        return [m.strip() for m in self.allowed_mime_types.split(",") if m.strip()]

    def policy_defaults(self) -> dict:
        """Policy fields as keyword arguments for PolicyOptions."""
        return {
            "default_quality": self.default_quality,
            "min_quality": self.min_quality,
            "max_quality": self.max_quality,
            "max_width": self.max_width,
            "max_height": self.max_height,
            "thumbnail_size": self.thumbnail_size,
            "preferred_format": self.preferred_format,
            "fallback_format": self.fallback_format,
            "enable_progressive_encoding": self.enable_progressive_encoding,
            "preserve_metadata": self.preserve_metadata,
            "enable_smart_crop": self.enable_smart_crop,
            "max_concurrent_batch_items": self.max_concurrent_batch_items,
        }


settings = Settings()
