"""Tests for photograph validation and decoding."""

import numpy as np
import pytest
import rasterio

from ecomeasure.core.errors import InvalidImage
from ecomeasure.utils.image_io import load_image, validate_image_file


def _write_tiff(path, data: np.ndarray) -> None:
    """Write a band-first array as an un-georeferenced GeoTIFF."""
    count, height, width = data.shape
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=count,
        dtype=data.dtype,
    ) as dataset:
        dataset.write(data)


def test_load_image_returns_pixel_rows(tmp_path) -> None:
    """Bands are transposed into interleaved ``(H, W, C)`` pixels."""
    image_path = tmp_path / "quadrat.tif"
    data = np.zeros((3, 6, 8), dtype=np.uint8)
    data[1] = 255
    data[0, 2, 3] = 7
    _write_tiff(image_path, data)

    image = load_image(image_path)

    assert (image.width, image.height, image.channels) == (8, 6, 3)
    assert image.rgb[0, 0].tolist() == [0, 255, 0]
    assert image.rgb[2, 3].tolist() == [7, 255, 0]


def test_load_image_keeps_alpha_band(tmp_path) -> None:
    """Four-band files decode to RGBA."""
    image_path = tmp_path / "rgba.tif"
    _write_tiff(image_path, np.full((4, 5, 5), 9, dtype=np.uint8))

    image = load_image(image_path)

    assert image.channels == 4


def test_load_image_rejects_single_band(tmp_path) -> None:
    """Gray scale files lack color information."""
    image_path = tmp_path / "gray.tif"
    _write_tiff(image_path, np.zeros((1, 4, 4), dtype=np.uint8))

    with pytest.raises(InvalidImage, match="bands"):
        load_image(image_path)


def test_load_image_rejects_16_bit(tmp_path) -> None:
    """Only 8-bit channels are analyzed."""
    image_path = tmp_path / "deep.tif"
    _write_tiff(image_path, np.zeros((3, 4, 4), dtype=np.uint16))

    with pytest.raises(InvalidImage, match="8-bit"):
        load_image(image_path)


def test_load_image_rejects_corrupt_file(tmp_path) -> None:
    """Undecodable bytes are an invalid image, not a crash."""
    image_path = tmp_path / "broken.jpg"
    image_path.write_bytes(b"definitely not a jpeg")

    with pytest.raises(InvalidImage):
        load_image(image_path)


def test_validate_image_file_checks_existence_type_and_size(tmp_path) -> None:
    """Missing, empty, unsupported and oversized files are rejected."""
    good = tmp_path / "photo.png"
    good.write_bytes(b"x" * 32)
    empty = tmp_path / "empty.jpg"
    empty.write_bytes(b"")
    bitmap = tmp_path / "photo.bmp"
    bitmap.write_bytes(b"x" * 32)

    assert validate_image_file(good) == good
    with pytest.raises(InvalidImage, match="not found"):
        validate_image_file(tmp_path / "missing.jpg")
    with pytest.raises(InvalidImage, match="empty"):
        validate_image_file(empty)
    with pytest.raises(InvalidImage, match="Unsupported"):
        validate_image_file(bitmap)
    with pytest.raises(InvalidImage, match="limit"):
        validate_image_file(good, max_bytes=16)
