import io
from abc import ABC, abstractmethod

from PIL import Image, ImageOps

from exceptions import DecodeError, EncodeError
from utils.format_detect import PILLOW_FORMATS, ImageFormat


def register_plugins() -> None:
    """Register optional Pillow codec plugins (AVIF via pillow-avif-plugin).

    Pillow builds with a native AVIF codec don't need the plugin.
    """
    try:
        # Importing the plugin registers the AVIF codec with Pillow
        import pillow_avif  # noqa: F401
    except ImportError:
        pass


class RasterSurface(ABC):
    """Decoded pixel grid the pipeline can sample, draw and export."""

    @property
    @abstractmethod
    def width(self) -> int: ...

    @property
    @abstractmethod
    def height(self) -> int: ...

    @abstractmethod
    def sample(self, size: int) -> bytes:
        """RGBA bytes of the top-left `size` x `size` window (clipped to the image)."""

    @abstractmethod
    def draw(
        self,
        width: int,
        height: int,
        crop_box: tuple[float, float, float, float] | None = None,
    ) -> "RasterSurface":
        """Resample (optionally a source region of) this surface to width x height."""

    @abstractmethod
    def export(
        self,
        fmt: ImageFormat,
        quality: float,
        progressive: bool = False,
        preserve_metadata: bool = False,
    ) -> bytes:
        """Encode the surface. Raises EncodeError if the codec rejects it."""


class PillowSurface(RasterSurface):
    """RasterSurface backed by a Pillow image."""

    def __init__(self, image: Image.Image, info: dict | None = None):
        self._image = image
        self._info = info if info is not None else dict(image.info)

    @classmethod
    def decode(cls, data: bytes) -> "PillowSurface":
        """Decode bytes and load pixel data. Raises DecodeError."""
        register_plugins()
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
            info = dict(img.info)
            # Match browser decoding: honor EXIF orientation
            img = _to_8bit(ImageOps.exif_transpose(img))
        except Exception as e:
            raise DecodeError(f"Cannot decode image: {e}") from e

        return cls(img, info)

    @classmethod
    def blank(cls, width: int = 1, height: int = 1) -> "PillowSurface":
        return cls(Image.new("RGBA", (width, height), (0, 0, 0, 0)), {})

    @property
    def image(self) -> Image.Image:
        return self._image

    @property
    def width(self) -> int:
        return self._image.width

    @property
    def height(self) -> int:
        return self._image.height

    def sample(self, size: int) -> bytes:
        w = min(size, self.width)
        h = min(size, self.height)
        region = self._image.crop((0, 0, w, h))
        if region.mode != "RGBA":
            region = region.convert("RGBA")
        return region.tobytes()

    def draw(self, width, height, crop_box=None):
        img = self._image
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if _has_alpha(img) else "RGB")
        resized = img.resize((width, height), Image.Resampling.LANCZOS, box=crop_box)
        # Metadata travels in self._info; encoders must not pick it up implicitly
        resized.info = {}
        return PillowSurface(resized, self._info)

    def export(self, fmt, quality, progressive=False, preserve_metadata=False):
        register_plugins()
        img = self._image
        save_kwargs: dict = {"format": PILLOW_FORMATS[fmt]}
        pillow_quality = max(1, min(100, round(quality * 100)))

        if fmt == ImageFormat.JPEG:
            img = _flatten(img)
            save_kwargs.update(quality=pillow_quality, optimize=True)
            if progressive:
                save_kwargs["progressive"] = True
        elif fmt == ImageFormat.WEBP:
            save_kwargs.update(quality=pillow_quality, method=4)
        elif fmt == ImageFormat.AVIF:
            save_kwargs.update(quality=pillow_quality, speed=6)
        elif fmt == ImageFormat.PNG:
            save_kwargs["optimize"] = True

        if fmt in (ImageFormat.WEBP, ImageFormat.AVIF):
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA" if _has_alpha(img) else "RGB")
        elif img.mode not in ("RGB", "RGBA", "L", "LA"):
            img = img.convert("RGBA" if _has_alpha(img) else "RGB")

        if preserve_metadata:
            if self._info.get("icc_profile"):
                save_kwargs["icc_profile"] = self._info["icc_profile"]
            if self._info.get("exif") and fmt != ImageFormat.PNG:
                save_kwargs["exif"] = self._info["exif"]

        output = io.BytesIO()
        try:
            img.save(output, **save_kwargs)
        except (KeyError, OSError, ValueError) as e:
            raise EncodeError(
                f"Encoder rejected {fmt.value}: {e}",
                format=fmt.value,
            ) from e

        result = output.getvalue()
        if not result:
            raise EncodeError(f"Encoder produced no {fmt.value} output", format=fmt.value)
        return result


def _to_8bit(img: Image.Image) -> Image.Image:
    """Scale high bit depth grayscale down to 8-bit "L".

    Plain convert() clips I/F values above 255 to white. 16-bit samples
    keep their high byte; float images are treated as 0-1 when they fit,
    else 8-bit when they fit, else 16-bit.
    """
    if img.mode.startswith("I;16"):
        img = img.convert("I")
    if img.mode == "I":
        return img.point(lambda v: v * (1 / 256)).convert("L")
    if img.mode == "F":
        _, high = img.getextrema()
        if high <= 1.0:
            scale = 255.0
        elif high <= 255.0:
            scale = 1.0
        else:
            scale = 1 / 256
        return img.point(lambda v: v * scale).convert("L")
    return img


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or (
        img.mode == "P" and "transparency" in img.info
    )


def _flatten(img: Image.Image) -> Image.Image:
    """Composite onto white and drop alpha (JPEG has no alpha channel)."""
    if not _has_alpha(img):
        return img if img.mode in ("RGB", "L") else img.convert("RGB")
    rgba = img.convert("RGBA")
    background = Image.new("RGB", rgba.size, (255, 255, 255))
    background.paste(rgba, mask=rgba.getchannel("A"))
    return background
