import numpy as np
import pytest
from PIL import Image

from block_scramble_encryptor import load_image, main, save_image, shifted_path


def _write_png(path, h=64, w=64, c=3, seed=0):
    arr = np.random.default_rng(seed).integers(0, 256, (h, w, c), dtype=np.uint8)
    Image.fromarray(arr).save(path)
    return arr


def _read_png(path):
    return np.asarray(Image.open(path))


def test_encrypt_decrypt_files_round_trip(tmp_path):
    src = tmp_path / "photo.png"
    arr = _write_png(src)
    enc, dec = tmp_path / "enc.png", tmp_path / "dec.png"

    main(["--mode", "encrypt", "--input", str(src), "--output", str(enc),
          "--key", "12345", "--blocks-x", "4", "--blocks-y", "4"])
    main(["--mode", "decrypt", "--input", str(enc), "--output", str(dec),
          "--key", "12345", "--blocks-x", "4", "--blocks-y", "4", "--no-smooth"])

    assert not np.array_equal(_read_png(enc), arr)
    assert np.array_equal(_read_png(dec), arr)


def test_dual_view_files(tmp_path):
    src = tmp_path / "photo.png"
    arr = _write_png(src, 48, 64, 4, seed=1)
    enc, enc_s, dec = tmp_path / "enc.png", tmp_path / "enc_s.png", tmp_path / "dec.png"

    common = ["--key", "-77", "--blocks-x", "4", "--blocks-y", "3"]
    main(["--mode", "encrypt", "--input", str(src), "--output", str(enc),
          "--shifted-output", str(enc_s)] + common)
    main(["--mode", "decrypt", "--input", str(enc), "--output", str(dec),
          "--shifted-input", str(enc_s)] + common)

    out = _read_png(dec)
    assert out.shape == (48, 64, 4)
    assert np.array_equal(out, arr)


def test_batch_folder(tmp_path, capsys):
    in_dir, enc_dir, dec_dir = tmp_path / "in", tmp_path / "enc", tmp_path / "dec"
    in_dir.mkdir()
    a = _write_png(in_dir / "a.png", seed=2)
    b = _write_png(in_dir / "b.png", 32, 48, seed=3)
    (in_dir / "notes.txt").write_text("skip me")

    args = ["--key", "5", "--blocks-x", "4", "--blocks-y", "4", "--no-smooth"]
    main(["--mode", "encrypt", "--input", str(in_dir), "--output", str(enc_dir)] + args)
    assert (enc_dir / "a.png").is_file()
    assert shifted_path(enc_dir / "a.png").is_file()

    main(["--mode", "decrypt", "--input", str(enc_dir), "--output", str(dec_dir)] + args)
    assert np.array_equal(_read_png(dec_dir / "a.png"), a)
    assert np.array_equal(_read_png(dec_dir / "b.png"), b)
    assert not (dec_dir / "a_shifted.png").exists()
    assert "2 succeeded, 0 failed" in capsys.readouterr().out


def test_batch_encrypt_reports_reserved_shifted_names(tmp_path, capsys):
    in_dir, enc_dir = tmp_path / "in", tmp_path / "enc"
    in_dir.mkdir()
    _write_png(in_dir / "a.png", seed=6)
    _write_png(in_dir / "holiday_shifted.png", seed=7)

    main(["--mode", "encrypt", "--input", str(in_dir), "--output", str(enc_dir),
          "--key", "5", "--blocks-x", "4", "--blocks-y", "4"])
    out = capsys.readouterr().out
    assert "Skipped holiday_shifted.png" in out
    assert "1 succeeded, 0 failed" in out
    assert not (enc_dir / "holiday_shifted_shifted.png").exists()


def test_batch_decrypt_uses_companions_quietly(tmp_path, capsys):
    in_dir, enc_dir, dec_dir = tmp_path / "in", tmp_path / "enc", tmp_path / "dec"
    in_dir.mkdir()
    _write_png(in_dir / "a.png", seed=8)
    args = ["--key", "5", "--blocks-x", "4", "--blocks-y", "4"]
    main(["--mode", "encrypt", "--input", str(in_dir), "--output", str(enc_dir)] + args)
    capsys.readouterr()

    main(["--mode", "decrypt", "--input", str(enc_dir), "--output", str(dec_dir)] + args)
    out = capsys.readouterr().out
    assert "Skipped" not in out
    assert "1 succeeded, 0 failed" in out


def test_missing_input_exits(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["--mode", "encrypt", "--input", str(tmp_path / "nope.png"),
              "--output", str(tmp_path / "out.png")])
    assert exc.value.code == 1


def test_grid_error_exits(tmp_path, capsys):
    src = tmp_path / "tiny.png"
    _write_png(src, 8, 8)
    with pytest.raises(SystemExit) as exc:
        main(["--mode", "encrypt", "--input", str(src), "--output", str(tmp_path / "o.png")])
    assert exc.value.code == 1
    assert "[ERROR]" in capsys.readouterr().out


def test_test_mode_reports_lossless(tmp_path, capsys):
    src = tmp_path / "photo.png"
    _write_png(src, seed=4)
    with pytest.raises(SystemExit) as exc:
        main(["--mode", "test", "--input", str(src), "--blocks-x", "8", "--blocks-y", "8"])
    assert exc.value.code == 0
    assert "PASS" in capsys.readouterr().out


def test_load_keeps_alpha_and_normalizes(tmp_path):
    path = tmp_path / "rgba.png"
    arr  = _write_png(path, 8, 8, 4, seed=5)
    img  = load_image(str(path))
    assert img.dtype == np.float32 and img.shape == (8, 8, 4)
    assert img.min() >= 0.0 and img.max() <= 1.0
    out = tmp_path / "copy.png"
    save_image(img, str(out))
    assert np.array_equal(_read_png(out), arr)
