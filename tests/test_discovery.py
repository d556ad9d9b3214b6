import logging

from pdf_layout_diff.discovery import discover_pairs


def _touch(directory, *names):
    directory.mkdir(exist_ok=True)
    for name in names:
        (directory / name).write_bytes(b"%PDF-1.4\n")


def test_pairs_are_matched_case_insensitively(tmp_path):
    a, b = tmp_path / "a", tmp_path / "b"
    _touch(a, "Report.PDF", "invoice.pdf", "notes.txt")
    _touch(b, "report.pdf", "INVOICE.pdf")

    pairs = discover_pairs(str(a), str(b))

    assert [p.name for p in pairs] == ["Report.PDF", "invoice.pdf"]
    assert pairs[0].path_b.endswith("report.pdf")
    assert pairs[1].path_b.endswith("INVOICE.pdf")
    assert not any(p.different for p in pairs)


def test_prefix_is_case_sensitive(tmp_path):
    a, b = tmp_path / "a", tmp_path / "b"
    _touch(a, "inv_1.pdf", "Inv_2.pdf", "other.pdf")
    _touch(b, "inv_1.pdf", "Inv_2.pdf", "other.pdf")

    assert [p.name for p in discover_pairs(str(a), str(b), "inv_")] == ["inv_1.pdf"]


def test_unmatched_files_are_logged(tmp_path, caplog):
    a, b = tmp_path / "a", tmp_path / "b"
    _touch(a, "only_a.pdf", "both.pdf")
    _touch(b, "both.pdf", "only_b.pdf")

    with caplog.at_level(logging.INFO, logger="pdf_layout_diff"):
        pairs = discover_pairs(str(a), str(b))

    assert [p.name for p in pairs] == ["both.pdf"]
    assert "Could not find only_a.pdf" in caplog.text
    assert "Could not find only_b.pdf" in caplog.text


def test_invalid_directory(tmp_path, caplog):
    a = tmp_path / "a"
    _touch(a, "x.pdf")

    with caplog.at_level(logging.ERROR, logger="pdf_layout_diff"):
        assert discover_pairs(str(a), str(tmp_path / "missing")) == []
    assert "The path is not valid" in caplog.text
