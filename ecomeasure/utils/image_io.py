"""Caller-side photograph validation and decoding."""

from __future__ import annotations

from pathlib import Path
import warnings

import numpy as np
import rasterio
from loguru import logger
from rasterio.errors import NotGeoreferencedWarning, RasterioIOError

from ecomeasure.core.errors import InvalidImage
from ecomeasure.core.models import RasterImage


SUPPORTED_SUFFIXES = (".jpg", ".jpeg", ".png", ".webp", ".tif", ".tiff")
MAX_IMAGE_BYTES = 20 * 1024 * 1024


def validate_image_file(
    file_path: str | Path, max_bytes: int = MAX_IMAGE_BYTES
) -> Path:
    """Check that ``file_path`` is an analyzable photograph.

    Parameters
    ----------
    file_path : str | Path
        Candidate image file.
    max_bytes : int, optional
        Largest accepted file size, by default 20 MiB.

    Returns
    -------
    Path
        The validated path.

    Raises
    ------
    InvalidImage
        When the file is missing, empty, too large, or has an
        unsupported suffix.
    """
    path = Path(file_path)
    if not path.is_file():
        raise InvalidImage(f"File not found: {path}")
    if path.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise InvalidImage(
            f"Unsupported image type {path.suffix!r}; "
            f"expected one of {', '.join(SUPPORTED_SUFFIXES)}"
        )
    size = path.stat().st_size
    if size == 0:
        raise InvalidImage(f"Image file is empty: {path}")
    if size > max_bytes:
        raise InvalidImage(
            f"Image file is {size} bytes, larger than the {max_bytes} byte limit"
        )
    return path


def load_image(file_path: str | Path, max_bytes: int = MAX_IMAGE_BYTES) -> RasterImage:
    """Decode a photograph into a :class:`RasterImage`.

    Parameters
    ----------
    file_path : str | Path
        JPEG, PNG, WebP or TIFF file with 8-bit RGB(A) bands.
    max_bytes : int, optional
        Passed to :func:`validate_image_file`.

    Returns
    -------
    RasterImage
        ``(H, W, 3)`` or ``(H, W, 4)`` pixels.
    """
    path = validate_image_file(file_path, max_bytes)
    try:
        with warnings.catch_warnings():
            # Field photographs carry no geotransform.
            warnings.simplefilter("ignore", NotGeoreferencedWarning)
            with rasterio.open(path) as dataset:
                logger.debug(
                    f"Loading image {path.name}: {dataset.width} x {dataset.height}, "
                    f"{dataset.count} bands"
                )
                if dataset.count < 3:
                    raise InvalidImage(
                        f"Expected 3 or 4 color bands, got {dataset.count}"
                    )
                if dataset.dtypes[0] != "uint8":
                    raise InvalidImage(
                        f"Expected 8-bit bands, got {dataset.dtypes[0]}"
                    )
                band_count = 4 if dataset.count >= 4 else 3
                bands = dataset.read(indexes=list(range(1, band_count + 1)))
    except RasterioIOError as exc:
        raise InvalidImage(f"Cannot decode image {path}: {exc}") from exc
    pixels = np.ascontiguousarray(np.transpose(bands, (1, 2, 0)))
    return RasterImage.from_array(pixels)
