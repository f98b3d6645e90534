"""
Block-Scramble Image Encryptor / Decryptor  (RGB / RGBA — dual view)
====================================================================
One call of the block-scramble node:

  Encrypt:
    1. Crop to the block grid
    2. Scramble blocks + per-block channel order (seeded)
    3. Emit the result and a copy shifted by half a block

  Decrypt:
    1. Unscramble the main input
    2a. Shifted copy supplied -> realign, unscramble, blend across seams
    2b. Otherwise             -> optional Gaussian smoothing across seams
    3. Emit the result and its half-block-shifted copy

Requirements:
  pip install numpy pillow scipy

Usage:
  python block_scramble_encryptor.py --mode encrypt --input photo.png --output enc.png --key 12345 --shifted-output enc_shifted.png
  python block_scramble_encryptor.py --mode decrypt --input enc.png   --output dec.png --key 12345 --shifted-input enc_shifted.png
  python block_scramble_encryptor.py --mode encrypt --input ./images/ --output ./enc/  --key 12345
  python block_scramble_encryptor.py --mode test    --input photo.png
"""

import argparse
import logging
import os
import secrets
import sys
import time
from contextlib import contextmanager
from pathlib import Path

import numpy as np
from PIL import Image

from block_scramble import (
    DEFAULT_BLOCKS, DEFAULT_SEED, ENCRYPT, DECRYPT,
    BlockGrid, GridError,
    plan_grid, plan_grid_for_block_size, crop_to_grid,
    build_permutation, scramble, shift_wrap,
    to_uint8, npcr, uaci, adj_corr, psnr,
)
from seam_repair import smooth_block_seams, blend_with_boundary

logger = logging.getLogger("block_scramble")

# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
DEFAULT_SMOOTH_WIDTH = 2
SHIFTED_SUFFIX       = "_shifted"
SUPPORTED_EXTS       = {".png", ".jpg", ".jpeg", ".bmp", ".tiff", ".tif", ".webp"}


# ─────────────────────────────────────────────────────────────
# Parameters
# ─────────────────────────────────────────────────────────────
class ScrambleConfig:
    """
    Parameters of one node call.

    seed                 : integer key (any sign)
    encrypt              : True = scramble, False = unscramble
    blocks_x, blocks_y   : block counts across / down
    block_size           : fixed block size in px; overrides the counts
    smooth_artifacts     : seam smoothing on single-view decode
    smooth_width         : half-width of the smoothed strip (>= 1)
    mask_offset_x / _y   : manual shift of the blend weight mask
    debug                : trace each step on the "block_scramble" logger
    """

    def __init__(self, seed: int = DEFAULT_SEED, encrypt: bool = True,
                 blocks_x: int = DEFAULT_BLOCKS, blocks_y: int = DEFAULT_BLOCKS,
                 block_size=None,
                 smooth_artifacts: bool = True,
                 smooth_width: int = DEFAULT_SMOOTH_WIDTH,
                 mask_offset_x: int = 0, mask_offset_y: int = 0,
                 debug: bool = False):
        self.seed             = int(seed)
        self.encrypt          = bool(encrypt)
        self.blocks_x         = int(blocks_x)
        self.blocks_y         = int(blocks_y)
        self.block_size       = None if block_size is None else int(block_size)
        self.smooth_artifacts = bool(smooth_artifacts)
        self.smooth_width     = max(1, int(smooth_width))
        self.mask_offset_x    = int(mask_offset_x)
        self.mask_offset_y    = int(mask_offset_y)
        self.debug            = bool(debug)

    def plan(self, width: int, height: int) -> BlockGrid:
        if self.block_size is not None:
            return plan_grid_for_block_size(width, height, self.block_size)
        return plan_grid(width, height, self.blocks_x, self.blocks_y)

    def __repr__(self):
        grid = (f"block_size={self.block_size}" if self.block_size is not None
                else f"blocks={self.blocks_x}x{self.blocks_y}")
        return (f"ScrambleConfig(seed={self.seed}  "
                f"mode={'encrypt' if self.encrypt else 'decrypt'}  {grid}  "
                f"smooth={self.smooth_artifacts}/{self.smooth_width}  "
                f"mask_offset=({self.mask_offset_x},{self.mask_offset_y}))")


@contextmanager
def debug_log(enabled: bool):
    """Trace on the "block_scramble" logger for the duration of one call only."""
    if not enabled:
        yield
        return
    previous = logger.level
    handler  = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[block-scramble] %(message)s"))
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    try:
        yield
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous)


# ─────────────────────────────────────────────────────────────
# Node call
# ─────────────────────────────────────────────────────────────
def _emit_shifted(img: np.ndarray, grid: BlockGrid) -> np.ndarray:
    shifted = shift_wrap(img, -(grid.block_w // 2), grid.block_h // 2)
    return img.copy() if shifted is img else shifted


def _usable_shifted(shifted, image: np.ndarray):
    if shifted is None or shifted.size == 0:
        logger.debug("no shifted input, skipping blend")
        return None
    if shifted.shape != image.shape:
        logger.warning("shifted input %s does not match main input %s, ignored",
                       shifted.shape, image.shape)
        return None
    return shifted


def process(image, config: ScrambleConfig, shifted=None) -> dict:
    """
    Run one encrypt or decrypt call.

    Returns {"image": main output, "shifted": half-block-shifted output},
    or {} when there is no primary input. Raises GridError on a bad grid.
    """
    with debug_log(config.debug):
        return _run(image, config, shifted)


def _run(image, config: ScrambleConfig, shifted) -> dict:
    if image is None or image.size == 0:
        logger.debug("primary input missing or empty, nothing to do")
        return {}

    grid = config.plan(image.shape[1], image.shape[0])
    logger.debug("start  %r  %r", config, grid)

    cropped = crop_to_grid(image, grid)
    perm    = build_permutation(config.seed, grid.n_blocks)
    logger.debug("block map and channel orders generated (%d blocks)", len(perm))

    if config.encrypt:
        result = scramble(cropped, grid, perm, ENCRYPT)
        logger.debug("encrypt done")
        return {"image": result, "shifted": _emit_shifted(result, grid)}

    decoded = scramble(cropped, grid, perm, DECRYPT)
    logger.debug("main input decoded")

    shifted = _usable_shifted(shifted, image)
    if shifted is not None:
        half_x, half_y = grid.block_w // 2, grid.block_h // 2
        aligned = shift_wrap(shifted, half_x, -half_y)[:grid.crop_h, :grid.crop_w]
        second  = scramble(aligned, grid, perm, DECRYPT)
        logger.debug("shifted input decoded, blending")
        result  = blend_with_boundary(decoded, second, grid.block_w, grid.block_h,
                                      config.mask_offset_x, config.mask_offset_y)
    elif config.smooth_artifacts:
        logger.debug("smoothing seams (width=%d)", config.smooth_width)
        result = smooth_block_seams(decoded, grid, config.smooth_width)
    else:
        result = decoded

    logger.debug("decrypt done")
    return {"image": result, "shifted": _emit_shifted(result, grid)}


# ─────────────────────────────────────────────────────────────
# Statistical Analysis
# ─────────────────────────────────────────────────────────────
def print_stats(label: str, arr: np.ndarray):
    flat    = to_uint8(arr).flatten().astype(np.float64)
    hist, _ = np.histogram(flat, bins=16, range=(0, 255))
    entropy = 0.0
    total   = flat.size
    for h in hist:
        if h > 0:
            p        = h / total
            entropy -= p * np.log2(p)
    print(f"    {label:<8}  mean={flat.mean():6.2f}  std={flat.std():5.2f}  entropy={entropy:.4f}/4.0")


def run_security_tests(img: np.ndarray, seed: int,
                       blocks_x: int = DEFAULT_BLOCKS, blocks_y: int = DEFAULT_BLOCKS) -> dict:
    """Round trip, seed sensitivity, neighbour correlation and blend quality."""
    r   = {}
    t0  = time.time()
    enc = process(img, ScrambleConfig(seed, True, blocks_x, blocks_y))
    r['time_ms'] = (time.time() - t0) * 1000
    r['mp_s']    = (img.shape[0] * img.shape[1] / 1e6) / max(r['time_ms'] / 1000, 1e-9)

    plain_cfg = ScrambleConfig(seed, False, blocks_x, blocks_y, smooth_artifacts=False)
    dec       = process(enc['image'], plain_cfg)['image']
    blended   = process(enc['image'], plain_cfg, shifted=enc['shifted'])['image']

    grid     = plan_grid(img.shape[1], img.shape[0], blocks_x, blocks_y)
    original = crop_to_grid(img, grid)
    other    = process(img, ScrambleConfig(seed + 1, True, blocks_x, blocks_y))['image']

    ch = enc['image'] if enc['image'].ndim == 2 else enc['image'][:, :, 0]
    r['lossless']   = bool(np.array_equal(original, dec))
    r['npcr_seed']  = npcr(enc['image'], other)
    r['uaci_seed']  = uaci(enc['image'], other)
    r['corr_H']     = adj_corr(ch, 'H')
    r['corr_V']     = adj_corr(ch, 'V')
    r['corr_D']     = adj_corr(ch, 'D')
    r['blend_psnr'] = psnr(original, blended)
    return r


def print_report(r: dict, name: str = "") -> None:
    sep = "=" * 60
    print(f"\n{sep}")
    print(f"  Obfuscation Report{(' — ' + name) if name else ''}")
    print(sep)
    print(f"  Lossless   : {'PASS  ✓' if r['lossless'] else 'FAIL  ✗'}")
    print(f"  NPCR seed  : {r['npcr_seed']:.4f} %   (seed vs seed+1)")
    print(f"  UACI seed  : {r['uaci_seed']:.4f} %")
    print(f"  Corr H     : {r['corr_H']:+.6f}")
    print(f"  Corr V     : {r['corr_V']:+.6f}")
    print(f"  Corr D     : {r['corr_D']:+.6f}")
    print(f"  Blend PSNR : {r['blend_psnr']:.2f} dB")
    print(f"  Time       : {r['time_ms']:.1f} ms")
    print(f"  Throughput : {r['mp_s']:.3f} MP/s")
    print(sep)


# ─────────────────────────────────────────────────────────────
# File helpers
# ─────────────────────────────────────────────────────────────
def load_image(path: str) -> np.ndarray:
    """RGB or RGBA (when the file carries alpha), float32 in [0, 1]."""
    img  = Image.open(path)
    mode = "RGBA" if img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info else "RGB"
    return np.asarray(img.convert(mode), dtype=np.float32) / 255.0


def save_image(arr: np.ndarray, path: str) -> None:
    Image.fromarray(to_uint8(arr)).save(path)


def shifted_path(path) -> Path:
    path = Path(path)
    return path.with_name(f"{path.stem}{SHIFTED_SUFFIX}{path.suffix}")


def process_file(src: str, dst: str, config: ScrambleConfig,
                 shifted_src=None, shifted_dst=None):
    mode = "encrypt" if config.encrypt else "decrypt"
    img  = load_image(src)
    print(f"\n  [{mode.upper()}] {os.path.basename(src)}  shape={img.shape}  key={config.seed}")

    shifted = load_image(shifted_src) if shifted_src else None
    if shifted is not None:
        print(f"  Shifted input : {os.path.basename(shifted_src)}")

    t0      = time.time()
    out     = process(img, config, shifted=shifted)
    elapsed = time.time() - t0

    if config.encrypt:
        print("  Before:")
        for c, name in enumerate(["R", "G", "B"]):
            print_stats(name, img[:, :, c])
        print("  After:")
        for c, name in enumerate(["R", "G", "B"]):
            print_stats(name, out['image'][:, :, c])

    save_image(out['image'], dst)
    if shifted_dst:
        save_image(out['shifted'], shifted_dst)
        print(f"  Shifted output → {shifted_dst}")
    print(f"  Done in {elapsed:.3f}s  →  {dst}")


# ─────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="block-scramble",
        description="Block-Scramble Image Encryptor / Decryptor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python block_scramble_encryptor.py --mode encrypt --input photo.png --output enc.png --key 99999 --shifted-output enc_shifted.png
  python block_scramble_encryptor.py --mode decrypt --input enc.png   --output dec.png --key 99999 --shifted-input enc_shifted.png
  python block_scramble_encryptor.py --mode encrypt --input ./images/ --output ./enc/  --key 99999
        """
    )
    parser.add_argument("--mode",   required=True, choices=["encrypt", "decrypt", "test"])
    parser.add_argument("--input",  required=True, help="Image file or folder")
    parser.add_argument("--output", default=None,  help="Output file or folder")
    parser.add_argument("--key",    type=int, default=DEFAULT_SEED, help="Integer seed")
    parser.add_argument("--blocks-x",   type=int, default=DEFAULT_BLOCKS, help="Blocks across")
    parser.add_argument("--blocks-y",   type=int, default=DEFAULT_BLOCKS, help="Blocks down")
    parser.add_argument("--block-size", type=int, default=None,
                        help="Fixed square block size in px (overrides --blocks-x/-y)")
    parser.add_argument("--shifted-input",  default=None, help="Half-block-shifted encrypted copy (decrypt)")
    parser.add_argument("--shifted-output", default=None, help="Where to write the shifted copy")
    parser.add_argument("--no-smooth",      action="store_true", help="Disable seam smoothing on decrypt")
    parser.add_argument("--smooth-width",   type=int, default=DEFAULT_SMOOTH_WIDTH, help="Seam strip half-width (px)")
    parser.add_argument("--mask-offset-x",  type=int, default=0, help="Blend mask X offset (px)")
    parser.add_argument("--mask-offset-y",  type=int, default=0, help="Blend mask Y offset (px)")
    parser.add_argument("--debug",          action="store_true", help="Trace each processing step")
    return parser


def config_from_args(args, encrypt: bool) -> ScrambleConfig:
    return ScrambleConfig(
        seed=args.key, encrypt=encrypt,
        blocks_x=args.blocks_x, blocks_y=args.blocks_y, block_size=args.block_size,
        smooth_artifacts=not args.no_smooth, smooth_width=args.smooth_width,
        mask_offset_x=args.mask_offset_x, mask_offset_y=args.mask_offset_y,
        debug=args.debug,
    )


def _run_test_mode(src: Path, args) -> None:
    img  = load_image(str(src))
    seed = secrets.randbits(32)
    print(f"\n  Image : {src.name}  shape={img.shape}")
    print(f"  Seed  : {seed}")
    try:
        r = run_security_tests(img, seed, args.blocks_x, args.blocks_y)
    except GridError as e:
        print(f"[ERROR] {e}")
        sys.exit(1)
    print_report(r, src.name)
    status = "[PASS]" if r['lossless'] else "[FAIL]"
    print(f"\n  {status}")
    sys.exit(0 if r['lossless'] else 1)


def _run_batch(src: Path, dst: Path, args) -> None:
    encrypt = args.mode == "encrypt"
    config  = config_from_args(args, encrypt)
    dst.mkdir(parents=True, exist_ok=True)
    images    = sorted(f for f in src.iterdir() if f.suffix.lower() in SUPPORTED_EXTS)
    files     = [f for f in images if not f.stem.endswith(SHIFTED_SUFFIX)]
    companion = [f for f in images if f.stem.endswith(SHIFTED_SUFFIX)]
    # "*_shifted" names are reserved for the companion outputs.
    if encrypt:
        for f in companion:
            print(f"  [!] Skipped {f.name}: '{SHIFTED_SUFFIX}' names are reserved for shifted outputs")
    if not files:
        print(f"[ERROR] No supported images in {src}")
        sys.exit(1)
    print(f"[*] Batch {args.mode}  |  {len(files)} files  |  key={args.key}")
    ok, fail = 0, 0
    for f in sorted(files):
        sibling     = shifted_path(f)
        shifted_src = str(sibling) if not encrypt and sibling.is_file() else None
        shifted_dst = str(shifted_path(dst / f.name)) if encrypt or args.shifted_output else None
        try:
            process_file(str(f), str(dst / f.name), config, shifted_src, shifted_dst)
            ok += 1
        except Exception as e:
            print(f"  [!] Skipped {f.name}: {e}")
            fail += 1
    print(f"\n[✓] Done — {ok} succeeded, {fail} failed  →  {dst}/")


def main(argv=None):
    args = build_parser().parse_args(argv)
    src  = Path(args.input)

    if args.mode == "test":
        if not src.is_file():
            print(f"[ERROR] Not found: {src}")
            sys.exit(1)
        _run_test_mode(src, args)

    if args.output is None:
        print("[ERROR] --output required")
        sys.exit(1)
    dst = Path(args.output)

    if src.is_dir():
        _run_batch(src, dst, args)

    elif src.is_file():
        if src.suffix.lower() not in SUPPORTED_EXTS:
            print(f"[ERROR] Unsupported extension: {src.suffix}")
            sys.exit(1)
        if args.shifted_input and not Path(args.shifted_input).is_file():
            print(f"[ERROR] Shifted input not found: {args.shifted_input}")
            sys.exit(1)
        dst.parent.mkdir(parents=True, exist_ok=True)
        config = config_from_args(args, args.mode == "encrypt")
        try:
            process_file(str(src), str(dst), config,
                         args.shifted_input if not config.encrypt else None,
                         args.shifted_output)
        except GridError as e:
            print(f"[ERROR] {e}")
            sys.exit(1)
        print("\n[✓] Done.")

    else:
        print(f"[ERROR] Input not found: {src}")
        sys.exit(1)


if __name__ == "__main__":
    main()
