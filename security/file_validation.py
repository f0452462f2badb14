from config import settings
from exceptions import FileTooLargeError, UnsupportedFormatError
from utils.format_detect import MIME_TYPES, ImageFormat, detect_format


def validate_file(data: bytes, declared_mime: str | None = None) -> ImageFormat:
    """Validate size, magic bytes and MIME allowlist before the pipeline runs.

    Args:
        data: Raw file bytes.
        declared_mime: Content type sent by the client, if any.

    Returns:
        Detected ImageFormat.

    Raises:
        FileTooLargeError: If file exceeds max_file_size_mb.
        UnsupportedFormatError: If magic bytes don't match a known format
            or the format is not in the allowlist.
    """
    if len(data) > settings.max_file_size_bytes:
        raise FileTooLargeError(
            f"File size {len(data)} bytes exceeds limit of {settings.max_file_size_mb} MB",
            file_size=len(data),
            limit=settings.max_file_size_bytes,
        )

    fmt = detect_format(data)

    allowed = settings.allowed_mime_list
    if MIME_TYPES[fmt] not in allowed:
        raise UnsupportedFormatError(
            f"Image format not allowed: {MIME_TYPES[fmt]}",
            format=fmt.value,
            declared_mime=declared_mime,
        )

    return fmt
