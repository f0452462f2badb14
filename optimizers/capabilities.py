import io

from PIL import Image

from exceptions import EncodeError
from schemas import FormatSupport
from optimizers.surface import PillowSurface, register_plugins
from utils.format_detect import OUTPUT_FORMATS, PILLOW_FORMATS, ImageFormat
from utils.logging import get_logger

logger = get_logger("capabilities")


def probe_format(fmt: ImageFormat) -> bool:
    """Encode a 1x1 surface as `fmt` and check the output decodes as `fmt`."""
    try:
        data = PillowSurface.blank(1, 1).export(fmt, 0.8)
    except EncodeError:
        return False

    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.format == PILLOW_FORMATS[fmt]
    except Exception:
        return False


def probe_support() -> FormatSupport:
    """Determine which output encodings this runtime can produce.

    Absence of a codec is a normal False, never an exception. The result
    is stable for the process lifetime; build it once at startup and pass
    it to the pipeline.
    """
    register_plugins()
    support = FormatSupport(**{fmt.value: probe_format(fmt) for fmt in OUTPUT_FORMATS})
    logger.info(
        "Output format support probed",
        extra={"context": support.model_dump()},
    )
    return support
