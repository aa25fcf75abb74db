from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

from conftest import ROOT, write_file
from ghash import __version__
from ghash.cli import main
from ghash.dups import DuplicateReport
from ghash.hashes import available_algorithms


def _tree(tmp_path: Path) -> Path:
    root = tmp_path / "tree"
    write_file(root / "a.txt", b"alpha\n")
    write_file(root / "sub" / "b.txt", b"beta\n")
    write_file(root / ".git" / "config", b"[core]\n")
    return root


def test_generate_then_verify(tmp_path: Path, capsys):
    root = _tree(tmp_path)
    manifest = tmp_path / "sums.ghash"
    conf = tmp_path / "conf"

    assert main(["-r", "-o", str(manifest), "--config-dir", str(conf), str(root)]) == 0
    lines = manifest.read_text().splitlines()
    assert lines[0] == f"#!ghash sha256 {__version__}"
    assert sorted(line.rsplit("|", 1)[1] for line in lines[1:]) == [str(root / "a.txt"), str(root / "sub" / "b.txt")]

    assert main(["-v", str(manifest)]) == 0
    assert capsys.readouterr().err == ""


def test_tampered_tree_fails_verification(tmp_path: Path, capsys):
    root = _tree(tmp_path)
    manifest = tmp_path / "sums.ghash"
    main(["-r", "-H", "blake2b", "-o", str(manifest), "--config-dir", str(tmp_path), str(root)])
    (root / "a.txt").write_bytes(b"ALPHA\n")

    assert main(["-v", str(manifest)]) == 1
    err = capsys.readouterr().err
    assert "file modified" in err
    assert str(root / "a.txt") in err


def test_manifest_to_stdout(tmp_path: Path, capsys):
    target = write_file(tmp_path / "one.bin", b"x" * 10)
    assert main([str(target)]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0].startswith("#!ghash sha256 ")
    assert out[1].endswith(f"|10|{target}")


def test_missing_input_exits_one(tmp_path: Path, capsys):
    target = write_file(tmp_path / "one.bin", b"x")
    out = tmp_path / "sums.ghash"
    assert main(["-o", str(out), str(target), str(tmp_path / "missing")]) == 1
    assert "missing" in capsys.readouterr().err
    assert len(out.read_text().splitlines()) == 2


def test_unknown_algorithm_is_fatal_and_writes_nothing(tmp_path: Path, capsys):
    target = write_file(tmp_path / "one.bin", b"x")
    out = tmp_path / "sums.ghash"
    assert main(["-H", "md5", "-o", str(out), str(target)]) == 2
    assert "md5" in capsys.readouterr().err
    assert not out.exists()


def test_existing_output_needs_force(tmp_path: Path):
    target = write_file(tmp_path / "one.bin", b"x")
    out = write_file(tmp_path / "sums.ghash", b"keep me\n")
    assert main(["-o", str(out), str(target)]) == 2
    assert out.read_bytes() == b"keep me\n"
    assert main(["-f", "-o", str(out), str(target)]) == 0
    assert out.read_text().startswith("#!ghash")


def test_no_names_is_fatal(capsys):
    assert main([]) == 2
    assert "Insufficient arguments" in capsys.readouterr().err


def test_corrupt_manifest_is_fatal(tmp_path: Path):
    bad = write_file(tmp_path / "bad.ghash", b"not a manifest\n")
    assert main(["-v", str(bad)]) == 2


def test_list_hashes(capsys):
    assert main(["--list-hashes"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "ghash: Available hash algorithms:"
    assert [line.strip() for line in lines[1:]] == available_algorithms()


def test_verify_report(tmp_path: Path):
    target = write_file(tmp_path / "one.bin", b"x")
    manifest = tmp_path / "sums.ghash"
    main(["-o", str(manifest), str(target)])
    report = tmp_path / "report.json"
    assert main(["-v", str(manifest), "--report", str(report)]) == 0
    assert report.exists()


def test_dups_shell_output(tmp_path: Path, capsys):
    old = write_file(tmp_path / "d" / "old.txt", b"same\n")
    new = write_file(tmp_path / "d" / "new.txt", b"same\n")
    write_file(tmp_path / "d" / "other.txt", b"different\n")
    os.utime(old, (1_000_000, 1_000_000))

    assert main(["--dups", "-s", "--config-dir", str(tmp_path), str(tmp_path / "d")]) == 0
    out = capsys.readouterr().out
    assert f"# rm -f {new}" in out
    assert f"\nrm -f {old}" in out
    assert "other.txt" not in out


def test_module_entry_point(tmp_path: Path):
    target = write_file(tmp_path / "one.bin", b"x")
    env = dict(os.environ, PYTHONPATH=str(ROOT))
    proc = subprocess.run(
        [sys.executable, "-m", "ghash", str(target)],
        capture_output=True,
        text=True,
        env=env,
        check=False,
    )
    assert proc.returncode == 0
    assert proc.stdout.startswith("#!ghash sha256")


def test_dups_passes_one_filesystem(tmp_path: Path, monkeypatch):
    seen = {}

    def _fake(names, **kwargs):
        seen.update(kwargs)
        return DuplicateReport()

    monkeypatch.setattr("ghash.cli.find_duplicates", _fake)
    assert main(["--dups", "-x", "--config-dir", str(tmp_path), str(tmp_path)]) == 0
    assert seen["one_filesystem"] is True
