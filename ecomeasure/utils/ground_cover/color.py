"""RGB to HSV conversion helpers."""

from __future__ import annotations

import numpy as np


def rgb_to_hsv(r: int, g: int, b: int) -> tuple[float, float, float]:
    """Convert one byte triple to hue, saturation and value.

    Parameters
    ----------
    r, g, b : int
        Channel values in ``[0, 255]``.

    Returns
    -------
    tuple[float, float, float]
        ``(h, s, v)`` with ``h`` in ``[0, 360)`` degrees and ``s, v`` in
        ``[0, 1]``. Gray pixels (``r == g == b``) map to ``h = s = 0``.

    Examples
    --------
    >>> rgb_to_hsv(0, 255, 0)
    (120.0, 1.0, 1.0)
    """
    red = r / 255.0
    green = g / 255.0
    blue = b / 255.0
    max_c = max(red, green, blue)
    min_c = min(red, green, blue)
    diff = max_c - min_c
    saturation = 0.0 if max_c == 0 else diff / max_c
    if diff == 0:
        return 0.0, saturation, max_c
    if max_c == red:
        hue = ((green - blue) / diff) % 6.0
    elif max_c == green:
        hue = (blue - red) / diff + 2.0
    else:
        hue = (red - green) / diff + 4.0
    hue *= 60.0
    if hue >= 360.0:
        hue -= 360.0
    return hue, saturation, max_c


def rgb_to_hsv_array(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Vectorized :func:`rgb_to_hsv` over an ``(..., 3)`` array.

    Parameters
    ----------
    rgb : numpy.ndarray
        Byte channels with trailing dimension ``3``.

    Returns
    -------
    tuple[numpy.ndarray, numpy.ndarray, numpy.ndarray]
        Float64 ``(hue, saturation, value)`` arrays shaped like
        ``rgb[..., 0]``.
    """
    channels = np.asarray(rgb, dtype=np.float64) / 255.0
    red = channels[..., 0]
    green = channels[..., 1]
    blue = channels[..., 2]
    max_c = channels.max(axis=-1)
    min_c = channels.min(axis=-1)
    diff = max_c - min_c
    safe_max = np.where(max_c == 0, 1.0, max_c)
    saturation = np.where(max_c == 0, 0.0, diff / safe_max)
    safe_diff = np.where(diff == 0, 1.0, diff)
    hue_red = np.mod((green - blue) / safe_diff, 6.0)
    hue_green = (blue - red) / safe_diff + 2.0
    hue_blue = (red - green) / safe_diff + 4.0
    # Same branch order as the scalar version: red wins ties, then green.
    hue = np.where(
        max_c == red,
        hue_red,
        np.where(max_c == green, hue_green, hue_blue),
    )
    hue = np.where(diff == 0, 0.0, hue * 60.0)
    hue = np.where(hue >= 360.0, hue - 360.0, hue)
    return hue, saturation, max_c


def excess_green_array(rgb: np.ndarray) -> np.ndarray:
    """Excess green index ``(2g - r - b) / (r + g + b)``; ``0`` for black."""
    channels = np.asarray(rgb, dtype=np.float64)
    red = channels[..., 0]
    green = channels[..., 1]
    blue = channels[..., 2]
    total = red + green + blue
    safe_total = np.where(total == 0, 1.0, total)
    return np.where(total == 0, 0.0, (2.0 * green - red - blue) / safe_total)


def green_ratios_array(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(r / g, b / g)``; both ratios are ``inf`` where ``g == 0``."""
    channels = np.asarray(rgb, dtype=np.float64)
    green = channels[..., 1]
    safe_green = np.where(green == 0, 1.0, green)
    red_ratio = np.where(green == 0, np.inf, channels[..., 0] / safe_green)
    blue_ratio = np.where(green == 0, np.inf, channels[..., 2] / safe_green)
    return red_ratio, blue_ratio
