import struct
from enum import Enum

from exceptions import UnsupportedFormatError


class ImageFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"
    AVIF = "avif"
    GIF = "gif"
    BMP = "bmp"
    TIFF = "tiff"


# Encodings the pipeline can produce, in probe order
OUTPUT_FORMATS = (ImageFormat.WEBP, ImageFormat.AVIF, ImageFormat.JPEG, ImageFormat.PNG)

MIME_TYPES = {fmt: f"image/{fmt.value}" for fmt in ImageFormat}

_MIME_ALIASES = {
    "image/jpg": ImageFormat.JPEG,
    "image/pjpeg": ImageFormat.JPEG,
    "image/x-png": ImageFormat.PNG,
}

# Image.save(format=...) names
PILLOW_FORMATS = {fmt: fmt.value.upper() for fmt in ImageFormat}

FILE_EXTENSIONS = {fmt: f".{fmt.value}" for fmt in ImageFormat}
FILE_EXTENSIONS[ImageFormat.JPEG] = ".jpg"

# (offset, magic) pairs; first match wins
_SIGNATURES = (
    (0, b"\x89PNG\r\n\x1a\n", ImageFormat.PNG),
    (0, b"\xff\xd8\xff", ImageFormat.JPEG),
    (0, b"GIF87a", ImageFormat.GIF),
    (0, b"GIF89a", ImageFormat.GIF),
    (8, b"WEBP", ImageFormat.WEBP),
    (0, b"BM", ImageFormat.BMP),
    (0, b"II\x2a\x00", ImageFormat.TIFF),
    (0, b"MM\x00\x2a", ImageFormat.TIFF),
)

_AVIF_BRANDS = (b"avif", b"avis")


def format_from_mime(mime_type: str | None) -> ImageFormat | None:
    """Declared MIME type -> ImageFormat. Parameters and case are ignored."""
    if not mime_type:
        return None
    mime = mime_type.split(";", 1)[0].strip().lower()
    if mime in _MIME_ALIASES:
        return _MIME_ALIASES[mime]
    return next((fmt for fmt, known in MIME_TYPES.items() if known == mime), None)


def detect_format(data: bytes) -> ImageFormat:
    """Identify an image by its leading bytes.

    Declared content types are not trusted; this is what upload
    validation relies on.

    Raises:
        UnsupportedFormatError: If the bytes match no known format.
    """
    if len(data) < 4:
        raise UnsupportedFormatError("File too small to identify format")

    for offset, magic, fmt in _SIGNATURES:
        if data[offset : offset + len(magic)] != magic:
            continue
        # WEBP at offset 8 only counts inside a RIFF container
        if fmt == ImageFormat.WEBP and data[:4] != b"RIFF":
            continue
        return fmt

    if data[4:8] == b"ftyp" and _is_avif(data):
        return ImageFormat.AVIF

    raise UnsupportedFormatError(
        "Unrecognized file format",
        detected_bytes=data[:16].hex(),
    )


def _is_avif(data: bytes) -> bool:
    """ISO BMFF ftyp box whose major or compatible brands include avif/avis."""
    if data[8:12] in _AVIF_BRANDS:
        return True

    box_end = min(struct.unpack(">I", data[:4])[0], len(data))
    # Compatible brands follow size, type, major brand and minor version
    return any(
        data[offset : offset + 4] in _AVIF_BRANDS for offset in range(16, box_end - 3, 4)
    )
