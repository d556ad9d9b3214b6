import logging

from pdf_layout_diff.difference_log import DifferenceLogger, configure_logging, format_number


def test_format_number():
    assert format_number(12.5) == "12.5"
    assert format_number(3.0) == "3"
    assert format_number(0.125) == "0.125"
    assert format_number(1.23456) == "1.235"
    assert format_number(-0.0001) == "0"


def test_log_file_is_created_lazily(tmp_path):
    difflog = DifferenceLogger(str(tmp_path), "Invoice.pdf")
    assert difflog.path == tmp_path / "Invoice.log"
    assert not difflog.path.exists()

    with difflog:
        difflog.log("Invoice.pdf: first")
        difflog.log("Invoice.pdf: second")

    assert difflog.path.read_text(encoding="utf-8").splitlines() == ["Invoice.pdf: first", "Invoice.pdf: second"]
    assert difflog.lines == ["Invoice.pdf: first", "Invoice.pdf: second"]


def test_without_log_dir_lines_are_kept_in_memory():
    difflog = DifferenceLogger(None, "x.pdf")
    difflog.log("x.pdf: something")
    difflog.close()
    assert difflog.path is None
    assert difflog.lines == ["x.pdf: something"]


def test_configure_logging_splits_errors_and_results(tmp_path):
    configure_logging(str(tmp_path))
    log = logging.getLogger("pdf_layout_diff.batch")
    try:
        log.info("a.pdf: no differences found")
        log.warning("only a warning")
        log.error("a.pdf: broken")
    finally:
        for h in logging.getLogger("pdf_layout_diff").handlers:
            h.flush()

    results = (tmp_path / "_results.log").read_text(encoding="utf-8")
    errors = (tmp_path / "_error.log").read_text(encoding="utf-8")
    assert "no differences found" in results
    assert "broken" not in results and "warning" not in results
    assert "broken" in errors
    assert "no differences found" not in errors

    # reconfiguring replaces the file handlers
    configure_logging(None)
    assert all(not isinstance(h, logging.FileHandler) for h in logging.getLogger("pdf_layout_diff").handlers)
