"""Preprocessor for splitting source frames into neural and classical inputs.

Interface contract:
- process_frame(frame) -> PreprocessedFrame
- classical_upscale(frame, scale) -> RGBA array

Behavior:
- BT.601 RGB -> YUV split per pixel over the full frame
- Luma normalized to [0, 1] (model I/O convention), shaped [1, 1, H, W]
- Chroma kept in [0, 255] (classical convention)
- Nearest-neighbor chroma resize to the model's output size
- Inverse BT.601 with clamp to [0, 255] and round-half-up
- Cubic spline resize of the whole frame for the classical path
"""

from typing import NamedTuple, Tuple

import numpy as np
from scipy.ndimage import zoom

from buffer import RawFrame
from config import SCALE_FACTOR

# BT.601 forward coefficients
# Rows: [Y, U, V], Columns: [R, G, B]
RGB_TO_YUV = np.array(
    [
        [0.299, 0.587, 0.114],
        [-0.168736, -0.331264, 0.5],
        [0.5, -0.418688, -0.081312],
    ],
    dtype=np.float64,
)
CHROMA_OFFSET = 128.0

# Inverse BT.601 coefficients (applied to U-128, V-128)
V_TO_R = 1.402
U_TO_G = 0.344136
V_TO_G = 0.714136
U_TO_B = 1.772


class PreprocessedFrame(NamedTuple):
    """Planes extracted from one source frame."""

    timestamp: float
    width: int
    height: int
    luma: np.ndarray      # float32 [1, 1, H, W], range [0, 1]
    chroma_u: np.ndarray  # float32 [H, W], range [0, 255]
    chroma_v: np.ndarray  # float32 [H, W], range [0, 255]


def rgb_to_yuv(rgb: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split (..., 3) RGB samples into Y, U, V planes, all in [0, 255]."""

    rgb = np.asarray(rgb, dtype=np.float64)
    yuv = rgb @ RGB_TO_YUV.T
    y = yuv[..., 0]
    u = yuv[..., 1] + CHROMA_OFFSET
    v = yuv[..., 2] + CHROMA_OFFSET
    return y, u, v


def yuv_to_rgb(y: np.ndarray, u: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Merge Y, U, V planes (all [0, 255] scale) into clamped uint8 RGB (..., 3)."""

    y = np.asarray(y, dtype=np.float64)
    u = np.asarray(u, dtype=np.float64) - CHROMA_OFFSET
    v = np.asarray(v, dtype=np.float64) - CHROMA_OFFSET

    r = y + V_TO_R * v
    g = y - U_TO_G * u - V_TO_G * v
    b = y + U_TO_B * u

    rgb = np.stack([r, g, b], axis=-1)
    # Saturated colors routinely leave [0, 255]; clamp before the uint8 cast.
    rgb = np.clip(rgb, 0.0, 255.0)
    return np.floor(rgb + 0.5).astype(np.uint8)


def resize_plane(plane: np.ndarray, src_w: int, src_h: int, dst_w: int, dst_h: int) -> np.ndarray:
    """Nearest-neighbor resize of a single-channel plane."""

    plane = np.asarray(plane)
    if plane.shape != (src_h, src_w):
        raise ValueError(f"Plane shape {plane.shape} does not match {src_h}x{src_w}")

    rows = (np.arange(dst_h) * src_h) // dst_h
    cols = (np.arange(dst_w) * src_w) // dst_w
    return plane[rows[:, None], cols[None, :]]


def classical_upscale(frame: RawFrame, scale: int = SCALE_FACTOR) -> np.ndarray:
    """Cubic resize of the whole frame. Returns (H*scale, W*scale, 4) uint8 RGBA."""

    dst_h = frame.height * scale
    dst_w = frame.width * scale
    src = frame.pixels.astype(np.float64)
    out = np.empty((dst_h, dst_w, 4), dtype=np.uint8)
    for channel in range(3):
        resized = zoom(src[..., channel], (dst_h / frame.height, dst_w / frame.width), order=3, mode="nearest")
        out[..., channel] = np.clip(np.floor(resized + 0.5), 0, 255).astype(np.uint8)
    out[..., 3] = 255
    return out


class Preprocessor:
    """Converts decoded RGB frames into model-ready luma and classical chroma."""

    def process_frame(self, frame: RawFrame) -> PreprocessedFrame:
        """Split a frame into normalized luma tensor and chroma planes."""

        pixels = frame.pixels
        if pixels.shape != (frame.height, frame.width, 3):
            raise ValueError(
                f"Frame pixels {pixels.shape} do not match {frame.height}x{frame.width}x3"
            )

        y, u, v = rgb_to_yuv(pixels)
        luma = (y / 255.0).astype(np.float32).reshape(1, 1, frame.height, frame.width)

        return PreprocessedFrame(
            timestamp=frame.timestamp,
            width=frame.width,
            height=frame.height,
            luma=luma,
            chroma_u=u.astype(np.float32),
            chroma_v=v.astype(np.float32),
        )

    def resample_chroma(
        self,
        preprocessed: PreprocessedFrame,
        dst_w: int,
        dst_h: int,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Resize both chroma planes to the neural output size."""

        up_u = resize_plane(preprocessed.chroma_u, preprocessed.width, preprocessed.height, dst_w, dst_h)
        up_v = resize_plane(preprocessed.chroma_v, preprocessed.width, preprocessed.height, dst_w, dst_h)
        return up_u, up_v
