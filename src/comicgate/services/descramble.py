"""Tile descrambling for pages shuffled by the content provider.

Newer chapters are served with their rows cut into N horizontal bands that
are stacked in reverse order. ``segmentation_num`` reproduces how N is
chosen per picture; ``descramble`` puts the bands back.

Band layout for height H and N bands: every band is ``H // N`` rows high
except the last one, which also carries the ``H % N`` remainder rows.
"""

import hashlib
import io
from collections.abc import Iterator
from enum import Enum

from PIL import Image, UnidentifiedImageError

from comicgate.core.exceptions import ImageError
from comicgate.services.cancellation import CancelToken

# Chapters at or after this id but below the second threshold use 10 bands
LEGACY_SEGMENT_LIMIT = 268850
LEGACY_SEGMENTS = 10
# Above this id the hash digit is reduced modulo 8 instead of 10
MODERN_THRESHOLD = 421926

CHECKPOINT_ROWS = 64


class ImageFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"

    @property
    def mime(self) -> str:
        return f"image/{self.value}"

    @property
    def extension(self) -> str:
        return "jpg" if self is ImageFormat.JPEG else self.value


def detect_format(data: bytes) -> ImageFormat:
    """Guess the format from magic bytes, defaulting to JPEG."""
    if data[:4] == b"\x89PNG":
        return ImageFormat.PNG
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return ImageFormat.WEBP
    return ImageFormat.JPEG


def segmentation_num(eps_id: int, scramble_id: int, picture_name: str) -> int:
    """Number of bands a picture of chapter ``eps_id`` was cut into.

    Args:
        eps_id: Chapter (episode) id
        scramble_id: First chapter id the shuffle applies to
        picture_name: File name without extension, e.g. ``"00001"``

    Returns:
        0 when the chapter predates scrambling, otherwise an even count
        between 2 and 20
    """
    if eps_id < scramble_id:
        return 0
    if eps_id < LEGACY_SEGMENT_LIMIT:
        return LEGACY_SEGMENTS

    digest = hashlib.md5(f"{eps_id}{picture_name}".encode()).hexdigest()
    last = ord(digest[-1])
    modulus = 8 if eps_id > MODERN_THRESHOLD else 10
    return 2 + 2 * (last % modulus)


def band_bounds(height: int, segments: int) -> list[tuple[int, int]]:
    """``(start, end)`` row ranges of each band, top to bottom."""
    copy_height, remainder = divmod(height, segments)
    bounds = []
    start = 0
    for i in range(segments):
        end = copy_height * (i + 1)
        if i == segments - 1:
            end += remainder
        bounds.append((start, end))
        start = end
    return bounds


def _row_chunks(start: int, end: int, chunk: int) -> Iterator[tuple[int, int]]:
    for top in range(start, end, chunk):
        yield top, min(top + chunk, end)


def _open_rgba(data: bytes) -> Image.Image:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.convert("RGBA")
    except (UnidentifiedImageError, OSError) as e:
        raise ImageError(message=f"decode image failed: {e}") from e


def _encode(img: Image.Image, fmt: ImageFormat) -> bytes:
    buf = io.BytesIO()
    try:
        if fmt is ImageFormat.JPEG:
            img.convert("RGB").save(buf, format="JPEG")
        else:
            img.save(buf, format="PNG")
    except OSError as e:
        raise ImageError(message=f"encode image failed: {e}") from e
    return buf.getvalue()


def _restack(
    src: Image.Image,
    bounds: list[tuple[int, int]],
    cancel: CancelToken | None,
) -> Image.Image:
    """Write ``bounds`` of ``src`` top-down in reverse band order."""
    width, height = src.size
    out = Image.new("RGBA", (width, height))
    y = 0
    for start, end in reversed(bounds):
        if cancel is not None:
            cancel.raise_if_cancelled("descramble")
        for top, bottom in _row_chunks(start, end, CHECKPOINT_ROWS):
            if cancel is not None:
                cancel.raise_if_cancelled("descramble")
            out.paste(src.crop((0, top, width, bottom)), (0, y + top - start))
        y += end - start
    return out


def descramble(
    data: bytes,
    segments: int,
    cancel: CancelToken | None = None,
) -> tuple[bytes, ImageFormat]:
    """Undo the band shuffle.

    ``segments <= 1`` returns the input bytes untouched. Otherwise JPEG input
    is re-encoded as JPEG and everything else as lossless PNG.

    Raises:
        ImageError: If the image cannot be decoded or encoded
        ReadCancelledError: If ``cancel`` is set before a band or a
            64-row chunk is copied
    """
    fmt_in = detect_format(data)
    if segments <= 1:
        return data, fmt_in

    src = _open_rgba(data)
    width, height = src.size
    if width == 0 or height == 0:
        return data, fmt_in

    out = _restack(src, band_bounds(height, segments), cancel)
    fmt_out = ImageFormat.JPEG if fmt_in is ImageFormat.JPEG else ImageFormat.PNG
    return _encode(out, fmt_out), fmt_out


def scramble(data: bytes, segments: int) -> bytes:
    """Apply the provider's shuffle to a page, producing PNG output.

    ``descramble(scramble(page, n), n)`` restores the pixels of ``page``.
    The shuffle cuts the remainder rows into the top band, which is why
    it is not the same operation as ``descramble``.
    """
    if segments <= 1:
        return data
    src = _open_rgba(data)
    width, height = src.size
    copy_height, remainder = divmod(height, segments)
    bounds = [(0, copy_height + remainder)]
    for i in range(1, segments):
        start = copy_height * i + remainder
        bounds.append((start, start + copy_height))
    return _encode(_restack(src, bounds, None), ImageFormat.PNG)
