'''
Seam repair after decryption
============================
Two ways to hide the block edges that survive lossy transport of a
scrambled image:

  smooth_block_seams  — single view: a 1-D Gaussian across every interior
                        seam, confined to a strip 2*smooth_width wide.
  blend_with_boundary — dual view: fuse the plain decode with the decode of
                        the half-block-shifted copy, favouring the copy near
                        the plain decode's seams.
'''

import numpy as np
from scipy import ndimage

from block_scramble import BlockGrid, shift_wrap


def _work_dtype(dtype):
    return dtype if np.issubdtype(dtype, np.floating) else np.float32


def _restore_dtype(arr: np.ndarray, dtype) -> np.ndarray:
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.rint(arr), info.min, info.max).astype(dtype)
    return arr.astype(dtype, copy=False)


# ─────────────────────────────────────────────────────────────
# Seam smoothing
# ─────────────────────────────────────────────────────────────
def gaussian_sigma(ksize: int) -> float:
    """Sigma picked for an odd kernel size when none is given."""
    return 0.3 * ((ksize - 1) * 0.5 - 1) + 0.8


def _smooth_axis(out: np.ndarray, seams, smooth_width: int, axis: int) -> None:
    ksize  = 2 * smooth_width + 1
    sigma  = gaussian_sigma(ksize)
    extent = out.shape[axis]

    for seam in seams:
        lo = max(0, seam - 2 * smooth_width)
        hi = min(extent, seam + 2 * smooth_width)
        if hi - lo < ksize:
            continue
        window  = np.take(out, np.arange(lo, hi), axis=axis)
        blurred = ndimage.gaussian_filter1d(window, sigma, axis=axis,
                                            mode="mirror", radius=smooth_width)

        s_lo = max(0, seam - smooth_width)
        s_hi = min(extent, seam + smooth_width)
        strip = np.take(blurred, np.arange(s_lo - lo, s_hi - lo), axis=axis)
        if axis == 0:
            out[s_lo:s_hi] = strip
        else:
            out[:, s_lo:s_hi] = strip


def smooth_block_seams(img: np.ndarray, grid: BlockGrid,
                       smooth_width: int = 2) -> np.ndarray:
    """
    Blur across interior seams only. Horizontal seams first, then vertical.
    Image border seams have no neighbour block and are left alone.
    """
    smooth_width = max(1, int(smooth_width))
    out = img.astype(_work_dtype(img.dtype), copy=True)

    rows = [k * grid.block_h for k in range(1, grid.blocks_y)]
    cols = [k * grid.block_w for k in range(1, grid.blocks_x)]
    _smooth_axis(out, rows, smooth_width, axis=0)
    _smooth_axis(out, cols, smooth_width, axis=1)

    return _restore_dtype(out, img.dtype)


# ─────────────────────────────────────────────────────────────
# Dual-view boundary blending
#
# w(x, y) = 1 - (dist / edge)^2   for dist < edge, else 0
#   dist = distance to the nearest seam of the block containing (x, y)
#   edge = max(1, min(block_w, block_h) // 4)
#
# out = a * (1 - w) + b * w   (alpha copied from a)
# ─────────────────────────────────────────────────────────────
def boundary_weight(height: int, width: int, block_w: int, block_h: int,
                    offset_x: int = 0, offset_y: int = 0) -> np.ndarray:
    block_w, block_h = max(1, int(block_w)), max(1, int(block_h))
    xs = np.arange(width)  % block_w
    ys = np.arange(height) % block_h
    dx = np.minimum(xs, block_w - 1 - xs)
    dy = np.minimum(ys, block_h - 1 - ys)

    dist  = np.minimum(dy[:, None], dx[None, :]).astype(np.float32)
    edge  = max(1, min(block_w, block_h) // 4)
    ratio = dist / edge
    weight = np.where(ratio < 1.0, 1.0 - ratio * ratio, 0.0).astype(np.float32)

    if offset_x != 0 or offset_y != 0:
        weight = shift_wrap(weight, offset_x, offset_y)
    return weight


def blend_with_boundary(img_a: np.ndarray, img_b: np.ndarray,
                        block_w: int, block_h: int,
                        mask_offset_x: int = 0, mask_offset_y: int = 0) -> np.ndarray:
    if img_a.shape != img_b.shape:
        raise ValueError(f"cannot blend {img_a.shape} with {img_b.shape}")

    h, w   = img_a.shape[:2]
    weight = boundary_weight(h, w, block_w, block_h, mask_offset_x, mask_offset_y)
    work = _work_dtype(img_a.dtype)
    a = img_a.astype(work)
    b = img_b.astype(work)

    if a.ndim == 2:
        fused = a * (1.0 - weight) + b * weight
    else:
        color = 3 if a.shape[2] == 4 else a.shape[2]
        wc    = weight[:, :, None]
        fused = a.copy()
        fused[..., :color] = a[..., :color] * (1.0 - wc) + b[..., :color] * wc

    return _restore_dtype(fused, img_a.dtype)
