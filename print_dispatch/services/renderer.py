"""Produce print-ready JPEG and TIFF renditions of a source image."""
from __future__ import annotations

import io
import logging
import secrets
import time
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from print_dispatch.errors import RenderError
from print_dispatch.models import RenditionPair

logger = logging.getLogger(__name__)

# Modes the TIFF writer stores without conversion
_TIFF_MODES = {"1", "L", "RGB", "RGBA", "CMYK", "I;16"}


def _decode(source: bytes) -> Image.Image:
    if not source:
        raise RenderError("Empty image data")
    try:
        img = Image.open(io.BytesIO(source))
        img.load()
    except Image.DecompressionBombError as exc:
        raise RenderError(f"Image too large to render: {exc}") from exc
    except (UnidentifiedImageError, OSError, SyntaxError, EOFError, ValueError) as exc:
        raise RenderError(f"Cannot decode image: {exc}") from exc
    # Respect camera orientation so prints are not rotated
    return ImageOps.exif_transpose(img)


def _for_jpeg(img: Image.Image) -> Image.Image:
    """Flatten onto white; JPEG has no alpha channel."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        canvas = Image.new("RGB", rgba.size, (255, 255, 255))
        canvas.paste(rgba, mask=rgba.getchannel("A"))
        return canvas
    return img.convert("RGB")


def _for_tiff(img: Image.Image) -> Image.Image:
    if img.mode in _TIFF_MODES:
        return img
    if img.mode == "P" and "transparency" in img.info:
        return img.convert("RGBA")
    return img.convert("RGB")


class FormatRenderer:
    """Write a fast lossy and an archival lossless rendition into *output_dir*.

    Rendering is synchronous; async callers run it in a worker thread.
    """

    def __init__(self, output_dir: Path | str, jpeg_quality: int = 90) -> None:
        self.output_dir = Path(output_dir)
        self.jpeg_quality = jpeg_quality

    def _new_pair(self) -> RenditionPair:
        token = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"
        return RenditionPair(
            fast_path=self.output_dir / f"image-{token}.jpg",
            archival_path=self.output_dir / f"image-{token}.tiff",
        )

    def render(self, source: bytes) -> RenditionPair:
        img = _decode(source)
        logger.info("Decoded source image: %dx%d %s", img.width, img.height, img.mode)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        pair = self._new_pair()
        try:
            t0 = time.monotonic()
            _for_jpeg(img).save(
                pair.fast_path,
                format="JPEG",
                quality=self.jpeg_quality,
                optimize=True,
                progressive=True,
            )
            logger.info("Converted to JPEG in %.2fs: %s", time.monotonic() - t0, pair.fast_path)

            t0 = time.monotonic()
            _for_tiff(img).save(pair.archival_path, format="TIFF", compression="tiff_lzw")
            logger.info("Converted to TIFF in %.2fs: %s", time.monotonic() - t0, pair.archival_path)
        except (OSError, ValueError) as exc:
            pair.cleanup()
            raise RenderError(f"Cannot write renditions: {exc}") from exc

        return pair
