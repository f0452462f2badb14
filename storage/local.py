import asyncio
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from config import settings
from exceptions import StorageError
from schemas import UploadedImage
from utils.format_detect import FILE_EXTENSIONS, ImageFormat
from utils.logging import get_logger

logger = get_logger("storage")

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9\u4e00-\u9fff._-]")
_DASH_RUNS = re.compile(r"-+")


def sanitize_name(name: str, fallback: str = "image") -> str:
    """Replace anything outside [A-Za-z0-9._-] and CJK ideographs with dashes."""
    cleaned = _DASH_RUNS.sub("-", _UNSAFE_CHARS.sub("-", name)).strip("-")
    # Dots alone would allow "." / ".." path segments
    if not cleaned.strip("."):
        return fallback
    return cleaned


class LocalImageStorage:
    """Persists images under <root>/<images_dir>/<category>/<slug or YYYY/MM>/.

    Web paths are relative to <root>, which Hugo serves as the site root.
    """

    def __init__(self, root: str | Path, images_dir: str = "images"):
        self.root = Path(root)
        self.images_dir = images_dir

    def _relative_dir(self, category: str, article_slug: str | None) -> PurePosixPath:
        base = PurePosixPath(self.images_dir, sanitize_name(category, "posts"))
        if article_slug:
            return base / sanitize_name(article_slug, "article")
        now = datetime.now(timezone.utc)
        return base / f"{now:%Y}" / f"{now:%m}"

    def _filename(self, original_name: str, fmt: ImageFormat | None) -> str:
        source = PurePosixPath(original_name or "image")
        ext = FILE_EXTENSIONS[fmt] if fmt is not None else source.suffix.lower()
        return f"{sanitize_name(source.stem)}-{uuid.uuid4().hex[:8]}{ext}"

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def save(
        self,
        data: bytes,
        original_name: str,
        category: str = "posts",
        article_slug: str | None = None,
        fmt: ImageFormat | None = None,
        optimized: bool = False,
    ) -> UploadedImage:
        """Write bytes and return the descriptor the editor inserts into Markdown.

        Raises:
            StorageError: If the file cannot be written.
        """
        relative_dir = self._relative_dir(category, article_slug)
        filename = self._filename(original_name, fmt)
        path = self.root.joinpath(*relative_dir.parts, filename)

        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            raise StorageError(
                f"Failed to write image: {e}",
                filename=filename,
            ) from e

        web_path = f"/{relative_dir}/{filename}"
        logger.info(
            "Image stored",
            extra={"context": {"web_path": web_path, "size": len(data)}},
        )

        return UploadedImage(
            filename=filename,
            web_path=web_path,
            original_name=original_name,
            size=len(data),
            category=sanitize_name(category, "posts"),
            format=fmt.value if fmt is not None else None,
            optimized=optimized,
            markdown_ref=f"![{PurePosixPath(filename).stem}]({web_path})",
        )

    async def delete(self, web_path: str) -> None:
        """Remove a previously saved image by its web path. Missing files are ignored."""
        relative = PurePosixPath(web_path.lstrip("/"))
        if ".." in relative.parts:
            raise StorageError(f"Refusing to delete outside storage root: {web_path}")
        path = self.root.joinpath(*relative.parts)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete image: {e}", web_path=web_path) from e
        logger.info("Image removed", extra={"context": {"web_path": web_path}})


# Module-level singleton
image_storage = LocalImageStorage(settings.storage_root, settings.images_dir)
