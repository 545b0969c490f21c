"""Directory scanner tests."""

from __future__ import annotations

from pathlib import Path

from dupkeep.ingestion import DirectoryScanner


def _tree(root: Path) -> None:
    (root / "sub").mkdir(parents=True)
    (root / ".cache").mkdir()
    (root / "a.txt").write_text("a", encoding="utf-8")
    (root / "big.pdf").write_bytes(b"x" * 64)
    (root / "sub" / "b.docx").write_bytes(b"b")
    (root / ".cache" / "c.txt").write_text("c", encoding="utf-8")
    (root / "image.png").write_bytes(b"png")


def test_scan_filters_hidden_and_formats(tmp_path: Path) -> None:
    _tree(tmp_path)
    scanner = DirectoryScanner(formats=["txt", "pdf", "docx"])

    names = [pending.path.name for pending in scanner.scan(tmp_path)]

    assert names == ["a.txt", "big.pdf", "b.docx"]


def test_scan_non_recursive_and_hidden(tmp_path: Path) -> None:
    _tree(tmp_path)
    scanner = DirectoryScanner(recursive=False, include_hidden=True)

    names = {pending.path.name for pending in scanner.scan(tmp_path)}

    assert names == {"a.txt", "big.pdf", "image.png"}


def test_scan_flags_oversized_files(tmp_path: Path) -> None:
    _tree(tmp_path)
    scanner = DirectoryScanner(max_size_bytes=10, formats=["pdf"])

    pending = list(scanner.scan(tmp_path))

    assert len(pending) == 1
    assert pending[0].oversized
    assert pending[0].size_bytes == 64


def test_scan_missing_root_yields_nothing(tmp_path: Path) -> None:
    assert list(DirectoryScanner().scan(tmp_path / "absent")) == []


def test_scan_single_file_root(tmp_path: Path) -> None:
    target = tmp_path / "one.txt"
    target.write_text("1", encoding="utf-8")

    pending = list(DirectoryScanner().scan(target))

    assert [item.path for item in pending] == [target.resolve()]
