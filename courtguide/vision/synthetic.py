"""Synthetic court frames for self-testing and tests."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from courtguide.core.models import ColorFormat, Frame


def synthetic_frame(
    width: int = 640,
    height: int = 480,
    rows: Sequence[int] = (),
    columns: Sequence[int] = (),
    *,
    thickness: int = 3,
    background: int = 40,
    line_value: int = 255,
    noise_std: float = 0.0,
    color_format: ColorFormat = ColorFormat.RGB,
    seed: int = 0,
) -> Frame:
    """Uniform background with full-length bright rows and columns.

    Each row/column is drawn ``thickness`` pixels wide, centred on the given
    coordinate.
    """
    image = np.full((height, width), float(background), dtype=np.float64)
    half = thickness // 2
    for y in rows:
        image[max(0, y - half) : min(height, y + half + 1), :] = line_value
    for x in columns:
        image[:, max(0, x - half) : min(width, x + half + 1)] = line_value

    if noise_std > 0:
        rng = np.random.default_rng(seed)
        image += rng.normal(0.0, noise_std, image.shape)

    gray = np.clip(np.rint(image), 0, 255).astype(np.uint8)
    if color_format == ColorFormat.GRAYSCALE:
        data = gray
    elif color_format == ColorFormat.RGB:
        data = np.stack([gray, gray, gray], axis=-1)
    else:
        alpha = np.full_like(gray, 255)
        data = np.stack([gray, gray, gray, alpha], axis=-1)

    return Frame(width, height, data, color_format)


def court_frame(
    width: int = 640,
    height: int = 480,
    *,
    row_shift: int = 0,
    **kwargs,
) -> Frame:
    """Frame with the three guide lines at their expected positions.

    ``row_shift`` moves the top line down and the baseline up by that many
    pixels, pushing both out of their tolerance windows when large enough.
    """
    top = round(0.15 * height) + row_shift
    baseline = round(0.75 * height) - row_shift
    center = round(0.5 * width)
    return synthetic_frame(width, height, rows=(top, baseline), columns=(center,), **kwargs)
