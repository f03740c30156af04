"""Frame reconstruction from upscaled luma and chroma planes."""

import numpy as np

from pipeline.errors import DimensionMismatch
from preprocessor import yuv_to_rgb


def _check_plane(name: str, plane: np.ndarray, width: int, height: int) -> None:
    if plane.shape != (height, width):
        raise DimensionMismatch(f"{name} plane is {plane.shape}, expected ({height}, {width})")


def merge(
    up_y: np.ndarray,
    up_u: np.ndarray,
    up_v: np.ndarray,
    width: int,
    height: int,
) -> np.ndarray:
    """
    Merge upscaled planes back into RGBA pixels.

    Args:
        up_y: Luma plane in [0, 1], shape (height, width).
        up_u: U plane in [0, 255], shape (height, width).
        up_v: V plane in [0, 255], shape (height, width).

    Returns:
        (height, width, 4) uint8 RGBA with alpha 255.
    """
    _check_plane("Y", up_y, width, height)
    _check_plane("U", up_u, width, height)
    _check_plane("V", up_v, width, height)

    y = np.asarray(up_y, dtype=np.float64) * 255.0
    u = np.clip(up_u, 0.0, 255.0)
    v = np.clip(up_v, 0.0, 255.0)

    out = np.empty((height, width, 4), dtype=np.uint8)
    out[..., :3] = yuv_to_rgb(y, u, v)
    out[..., 3] = 255
    return out


def luma_preview(up_y: np.ndarray) -> np.ndarray:
    """Render a [0, 1] luma plane as grayscale RGBA."""
    gray = np.clip(np.floor(np.asarray(up_y, dtype=np.float64) * 255.0 + 0.5), 0, 255).astype(np.uint8)
    out = np.empty(gray.shape + (4,), dtype=np.uint8)
    out[..., 0] = gray
    out[..., 1] = gray
    out[..., 2] = gray
    out[..., 3] = 255
    return out
