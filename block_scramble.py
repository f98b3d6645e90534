'''
Block-Scramble Image Obfuscation — core transform
==================================================
Reversible, seed-keyed shuffling of an image's spatial blocks together with
a per-block reordering of its colour channels.

  Encrypt:
    1. Crop to the largest top-left region divisible by the block grid
    2. Move block i to position forward[i]
    3. Reorder its RGB channels by the order stored at the destination

  Decrypt (exact reverse):
    1. Move scrambled block i to position inverse[i]
    2. Undo the channel order stored at i (the same physical entry)

Alpha is never reordered. This is visual obfuscation, not a cipher: the
block and channel key space is small and the generator is not
cryptographically secure.
'''

import numpy as np


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
DEFAULT_SEED      = 12345
DEFAULT_BLOCKS    = 32
LEGACY_BLOCK_SIZE = 16

ENCRYPT = "encrypt"
DECRYPT = "decrypt"

_U64_MASK = 0xFFFFFFFFFFFFFFFF

# The six orders of three colour channels. Output channel k of a forward
# reorder reads input channel CHANNEL_PERMS[p][k].
CHANNEL_PERMS = np.array([
    [0, 1, 2], [0, 2, 1],
    [1, 0, 2], [1, 2, 0],
    [2, 0, 1], [2, 1, 0],
], dtype=np.intp)
CHANNEL_PERMS_INV = np.argsort(CHANNEL_PERMS, axis=1)
N_CHANNEL_PERMS   = len(CHANNEL_PERMS)


class GridError(ValueError):
    """Block grid cannot be built for the requested image / block counts."""


# ─────────────────────────────────────────────────────────────
# Block grid planning
# ─────────────────────────────────────────────────────────────
class BlockGrid:
    """
    Block layout for one image.

    blocks_x, blocks_y : number of blocks across / down
    block_w,  block_h  : block size in pixels
    crop_rect          : (0, 0, block_w*blocks_x, block_h*blocks_y)
    """

    def __init__(self, blocks_x: int, blocks_y: int, block_w: int, block_h: int):
        self.blocks_x = int(blocks_x)
        self.blocks_y = int(blocks_y)
        self.block_w  = int(block_w)
        self.block_h  = int(block_h)

    @property
    def n_blocks(self) -> int:
        return self.blocks_x * self.blocks_y

    @property
    def crop_w(self) -> int:
        return self.block_w * self.blocks_x

    @property
    def crop_h(self) -> int:
        return self.block_h * self.blocks_y

    @property
    def crop_rect(self) -> tuple:
        return (0, 0, self.crop_w, self.crop_h)

    def __eq__(self, other):
        if not isinstance(other, BlockGrid):
            return NotImplemented
        return (self.blocks_x, self.blocks_y, self.block_w, self.block_h) == \
               (other.blocks_x, other.blocks_y, other.block_w, other.block_h)

    def __repr__(self):
        return (f"BlockGrid(blocks={self.blocks_x}x{self.blocks_y}  "
                f"block={self.block_w}x{self.block_h}  "
                f"crop={self.crop_w}x{self.crop_h})")


def plan_grid(width: int, height: int, blocks_x: int, blocks_y: int) -> BlockGrid:
    """Block size from block counts: floor(size / count), at least 1 px."""
    blocks_x, blocks_y = int(blocks_x), int(blocks_y)
    if blocks_x < 1 or blocks_y < 1:
        raise GridError(f"block counts must be positive, got {blocks_x}x{blocks_y}")
    if width < blocks_x or height < blocks_y:
        raise GridError(f"image {width}x{height} is smaller than one block "
                        f"for a {blocks_x}x{blocks_y} grid")
    block_w = max(1, width  // blocks_x)
    block_h = max(1, height // blocks_y)
    return BlockGrid(blocks_x, blocks_y, block_w, block_h)


def plan_grid_for_block_size(width: int, height: int,
                             block_size: int = LEGACY_BLOCK_SIZE) -> BlockGrid:
    """Fixed square blocks of block_size px; the count follows the image."""
    block_size = int(block_size)
    if block_size < 1:
        raise GridError(f"block size must be positive, got {block_size}")
    blocks_x = width  // block_size
    blocks_y = height // block_size
    if blocks_x < 1 or blocks_y < 1:
        raise GridError(f"image {width}x{height} is smaller than one "
                        f"{block_size}x{block_size} block")
    return BlockGrid(blocks_x, blocks_y, block_size, block_size)


def crop_to_grid(img: np.ndarray, grid: BlockGrid) -> np.ndarray:
    """Copy of the top-left crop_rect region. Pixels outside are dropped."""
    if img.shape[0] < grid.crop_h or img.shape[1] < grid.crop_w:
        raise GridError(f"image {img.shape[1]}x{img.shape[0]} is smaller than "
                        f"crop {grid.crop_w}x{grid.crop_h}")
    return img[:grid.crop_h, :grid.crop_w].copy()


# ─────────────────────────────────────────────────────────────
# Permutation layer  (Fisher-Yates via numpy default_rng)
# ─────────────────────────────────────────────────────────────
class PermutationMap:
    """
    forward      : block i  -> destination index
    inverse      : destination index -> block i
    channel_perm : CHANNEL_PERMS row per destination index (0..5)
    """

    def __init__(self, forward: np.ndarray, inverse: np.ndarray,
                 channel_perm: np.ndarray):
        self.forward      = forward
        self.inverse      = inverse
        self.channel_perm = channel_perm

    def __len__(self):
        return len(self.forward)

    def __repr__(self):
        return f"PermutationMap(n_blocks={len(self)})"


def _make_rng(seed: int) -> np.random.Generator:
    # default_rng rejects negative seeds; use the unsigned 64-bit pattern.
    return np.random.default_rng(int(seed) & _U64_MASK)


def _make_inv_perm(perm: np.ndarray) -> np.ndarray:
    inv = np.empty_like(perm)
    inv[perm] = np.arange(len(perm))
    return inv


def build_permutation(seed: int, block_count: int) -> PermutationMap:
    """
    Block permutation and channel orders from one seeded stream.
    The channel draw follows the permutation draw on the same generator,
    so the whole map depends on (seed, block_count) only.
    """
    block_count = int(block_count)
    if block_count <= 0:
        raise GridError(f"block count must be positive, got {block_count}")
    rng          = _make_rng(seed)
    forward      = rng.permutation(block_count)
    inverse      = _make_inv_perm(forward)
    channel_perm = rng.integers(0, N_CHANNEL_PERMS, size=block_count)
    return PermutationMap(forward, inverse, channel_perm)


def apply_channel_order(pixels: np.ndarray, perm_index: int,
                        encrypt: bool = True) -> np.ndarray:
    """Reorder the first three channels of pixels (last axis); alpha kept."""
    pixels = np.asarray(pixels)
    out    = pixels.copy()
    if pixels.ndim == 0 or pixels.shape[-1] < 3:
        return out
    order = CHANNEL_PERMS[perm_index] if encrypt else CHANNEL_PERMS_INV[perm_index]
    out[..., :3] = pixels[..., order]
    return out


# ─────────────────────────────────────────────────────────────
# Block scrambling
#
# Blocks are gathered into one (n, block_h, block_w, C) stack, reordered
# with a single scatter, and folded back. No Python loop over blocks.
# ─────────────────────────────────────────────────────────────
def _to_blocks(img: np.ndarray, grid: BlockGrid) -> np.ndarray:
    # Always a copy: with a single block column the reshape can be a view.
    c = img.shape[2]
    stack = img.reshape(grid.blocks_y, grid.block_h, grid.blocks_x, grid.block_w, c)
    return stack.transpose(0, 2, 1, 3, 4).reshape(
        grid.n_blocks, grid.block_h, grid.block_w, c).copy()


def _from_blocks(blocks: np.ndarray, grid: BlockGrid) -> np.ndarray:
    c = blocks.shape[3]
    stack = blocks.reshape(grid.blocks_y, grid.blocks_x, grid.block_h, grid.block_w, c)
    return stack.transpose(0, 2, 1, 3, 4).reshape(grid.crop_h, grid.crop_w, c)


def scramble(img: np.ndarray, grid: BlockGrid, perm: PermutationMap,
             direction: str = ENCRYPT) -> np.ndarray:
    """
    Encrypt: block i -> forward[i], channels by channel_perm[forward[i]].
    Decrypt: block i -> inverse[i], channels by inverse of channel_perm[i].
    img must already be cropped to the grid. Returns a new array.
    """
    if direction not in (ENCRYPT, DECRYPT):
        raise ValueError(f"direction must be {ENCRYPT!r} or {DECRYPT!r}, got {direction!r}")
    if img.shape[:2] != (grid.crop_h, grid.crop_w):
        raise ValueError(f"image {img.shape[1]}x{img.shape[0]} does not match "
                         f"grid crop {grid.crop_w}x{grid.crop_h}")
    if len(perm) != grid.n_blocks:
        raise ValueError(f"permutation covers {len(perm)} blocks, grid has {grid.n_blocks}")

    gray   = img.ndim == 2
    blocks = _to_blocks(img[:, :, None] if gray else img, grid)

    if direction == ENCRYPT:
        dest   = perm.forward
        orders = CHANNEL_PERMS[perm.channel_perm[dest]]
    else:
        dest   = perm.inverse
        orders = CHANNEL_PERMS_INV[perm.channel_perm]

    if blocks.shape[3] >= 3:
        blocks[..., :3] = np.take_along_axis(blocks[..., :3], orders[:, None, None, :], axis=-1)

    out_blocks       = np.empty_like(blocks)
    out_blocks[dest] = blocks
    out = _from_blocks(out_blocks, grid)
    return out[:, :, 0] if gray else out


def encrypt_image(img: np.ndarray, seed: int = DEFAULT_SEED,
                  blocks_x: int = DEFAULT_BLOCKS, blocks_y: int = DEFAULT_BLOCKS) -> np.ndarray:
    """Crop + scramble an (H x W [x C]) image."""
    grid = plan_grid(img.shape[1], img.shape[0], blocks_x, blocks_y)
    perm = build_permutation(seed, grid.n_blocks)
    return scramble(crop_to_grid(img, grid), grid, perm, ENCRYPT)


def decrypt_image(img: np.ndarray, seed: int = DEFAULT_SEED,
                  blocks_x: int = DEFAULT_BLOCKS, blocks_y: int = DEFAULT_BLOCKS) -> np.ndarray:
    """Inverse of encrypt_image for the same seed and block counts."""
    grid = plan_grid(img.shape[1], img.shape[0], blocks_x, blocks_y)
    perm = build_permutation(seed, grid.n_blocks)
    return scramble(crop_to_grid(img, grid), grid, perm, DECRYPT)


# ─────────────────────────────────────────────────────────────
# Toroidal shift
# ─────────────────────────────────────────────────────────────
def shift_wrap(img: np.ndarray, dx: int, dy: int) -> np.ndarray:
    """
    Cyclic shift: pixel (x, y) moves to ((x+dx) mod W, (y+dy) mod H).
    A shift that reduces to (0, 0) returns img itself.
    """
    h, w = img.shape[:2]
    dx, dy = int(dx) % w, int(dy) % h
    if dx == 0 and dy == 0:
        return img
    return np.roll(img, (dy, dx), axis=(0, 1))


# ─────────────────────────────────────────────────────────────
# Statistical metrics  (float images are quantized to 8 bits)
# ─────────────────────────────────────────────────────────────
def to_uint8(arr: np.ndarray) -> np.ndarray:
    if np.issubdtype(arr.dtype, np.floating):
        return np.clip(np.rint(arr * 255.0), 0, 255).astype(np.uint8)
    return arr.astype(np.uint8)


def npcr(c1: np.ndarray, c2: np.ndarray) -> float:
    """Number of Pixel Change Rate (%)."""
    a, b = to_uint8(c1), to_uint8(c2)
    return 100.0 * (a != b).sum() / a.size


def uaci(c1: np.ndarray, c2: np.ndarray) -> float:
    """Unified Average Changing Intensity (%)."""
    a, b = to_uint8(c1), to_uint8(c2)
    return 100.0 * np.abs(a.astype(np.int32) - b.astype(np.int32)).sum() \
           / (255.0 * a.size)


def adj_corr(arr: np.ndarray, direction: str) -> float:
    """Adjacent pixel correlation along 'H', 'V' or 'D'."""
    a = to_uint8(arr).astype(np.float64)
    if direction == 'H':   x, y = a[:, :-1].flatten(), a[:, 1:].flatten()
    elif direction == 'V': x, y = a[:-1, :].flatten(), a[1:, :].flatten()
    else:                  x, y = a[:-1, :-1].flatten(), a[1:, 1:].flatten()
    return float(np.corrcoef(x, y)[0, 1])


def psnr(ref: np.ndarray, test: np.ndarray) -> float:
    """Peak signal-to-noise ratio in dB on the 8-bit scale; inf when equal."""
    a, b = to_uint8(ref).astype(np.float64), to_uint8(test).astype(np.float64)
    mse  = float(np.mean((a - b) ** 2))
    if mse == 0.0:
        return float("inf")
    return 10.0 * np.log10(255.0 ** 2 / mse)
