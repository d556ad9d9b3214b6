import pytest

from pdf_layout_diff.batch import BatchComparator, compare_pair_job, result_line
from pdf_layout_diff.models import CompareConfig, ComparisonMode, DocumentPair, PairState
from pdf_layout_diff.pdf_service import PdfDocumentService

INVOICE = {"texts": [(72, 100, "Invoice"), (72, 130, "Total 42")]}
INVOICE_WITH_IMAGE = {
    "texts": [(72, 100, "Invoice"), (72, 130, "Total 42")],
    "images": [((150, 180, 230, 260), 60)],
}


def _pair(tmp_path, make_pdf, pages_a, pages_b, name="invoice.pdf"):
    (tmp_path / "a").mkdir(exist_ok=True)
    (tmp_path / "b").mkdir(exist_ok=True)
    a = make_pdf(tmp_path / "a" / name, pages_a)
    b = make_pdf(tmp_path / "b" / name, pages_b)
    return DocumentPair(name=name, path_a=str(a), path_b=str(b))


@pytest.mark.parametrize("mode", list(ComparisonMode))
def test_identical_pdfs(tmp_path, make_pdf, mode):
    pair = _pair(tmp_path, make_pdf, [INVOICE_WITH_IMAGE], [INVOICE_WITH_IMAGE])
    out = tmp_path / "out"
    config = CompareConfig(mode=mode, output_dir=str(out))

    result = compare_pair_job(pair, config)

    assert result.state is PairState.DONE
    assert not result.different
    assert result.differing_pages == []
    assert result_line(result) == "invoice.pdf: no differences found"
    assert not out.exists()


def test_added_image_is_found_and_visualised(tmp_path, make_pdf):
    pair = _pair(tmp_path, make_pdf, [INVOICE], [INVOICE_WITH_IMAGE])
    out = tmp_path / "out"
    logs = tmp_path / "logs"
    config = CompareConfig(mode=ComparisonMode.SIMPLE, output_dir=str(out), log_dir=str(logs))

    result = compare_pair_job(pair, config)

    assert result.different
    assert result.state is PairState.DONE
    assert result.differing_pages == [1]
    assert not any(result.layout_a.page(0).flags)
    assert result_line(result) == "invoice.pdf: found differences on pages: 1"
    assert (out / "invoice_pdf" / "page_1.png").exists()
    assert "Could not find similar image" in (logs / "invoice.log").read_text(encoding="utf-8")


def test_visual_mode_finds_recoloured_image(tmp_path, make_pdf):
    dark = {"images": [((50, 50, 150, 150), 0)]}
    light = {"images": [((50, 50, 150, 150), 255)]}
    pair = _pair(tmp_path, make_pdf, [dark], [light])
    out = tmp_path / "out"

    result = compare_pair_job(pair, CompareConfig(mode=ComparisonMode.VISUAL, output_dir=str(out)))

    assert result.different
    assert result.differing_pages == [1]
    assert result.layout_a.page(0).flags == [True]
    assert (out / "invoice_pdf" / "page_1.png").exists()


def test_structural_modes_ignore_recoloured_image(tmp_path, make_pdf):
    dark = {"images": [((50, 50, 150, 150), 0)]}
    light = {"images": [((50, 50, 150, 150), 255)]}
    pair = _pair(tmp_path, make_pdf, [dark], [light])

    result = compare_pair_job(pair, CompareConfig(mode=ComparisonMode.STRUCTURAL))
    assert not result.different


def test_page_count_mismatch(tmp_path, make_pdf):
    pair = _pair(tmp_path, make_pdf, [INVOICE], [INVOICE, INVOICE])
    out = tmp_path / "out"
    logs = tmp_path / "logs"

    result = compare_pair_job(pair, CompareConfig(output_dir=str(out), log_dir=str(logs)))

    assert result.different
    assert result.layout_a is None
    assert result.differing_pages == [2]
    assert "Different amount of pages: 1 to 2" in (logs / "invoice.log").read_text(encoding="utf-8")
    # the surplus page is painted red, the shared one is not compared
    assert (out / "invoice_pdf" / "page_2.png").exists()
    assert not (out / "invoice_pdf" / "page_1.png").exists()


def test_unloadable_pdf(tmp_path, make_pdf):
    pair = _pair(tmp_path, make_pdf, [INVOICE, INVOICE], [INVOICE])
    with open(pair.path_b, "w") as fh:
        fh.write("not a pdf")
    out = tmp_path / "out"

    result = compare_pair_job(pair, CompareConfig(output_dir=str(out)))

    assert result.different
    assert result.state is PairState.FAILED
    assert "Unable to load PDF" in result.error
    assert sorted(p.name for p in (out / "invoice_pdf").iterdir()) == ["page_1.png", "page_2.png"]
    assert result_line(result).startswith("invoice.pdf: found differences")


def test_job_failure_marks_pair_failed(tmp_path, make_pdf):
    pair = _pair(tmp_path, make_pdf, [INVOICE], [INVOICE])

    class ExplodingService:
        def open(self, path):
            return path

        def close(self, handle):
            pass

        def page_count(self, handle):
            raise RuntimeError("boom")

    result = compare_pair_job(pair, CompareConfig(), service=ExplodingService())

    assert result.state is PairState.FAILED
    assert result.different
    assert result.error == "boom"



class FirstPageRenderFails(PdfDocumentService):
    def render_page_to_rgba(self, handle, page_index, scale):
        if page_index == 0:
            raise RuntimeError("render failed")
        return super().render_page_to_rgba(handle, page_index, scale)


def test_visual_page_failure_does_not_stop_other_pages(tmp_path, make_pdf):
    pair = _pair(tmp_path, make_pdf, [INVOICE, INVOICE], [INVOICE, INVOICE_WITH_IMAGE])
    out = tmp_path / "out"
    logs = tmp_path / "logs"
    config = CompareConfig(mode=ComparisonMode.VISUAL, output_dir=str(out), log_dir=str(logs))

    result = compare_pair_job(pair, config, service=FirstPageRenderFails())

    assert result.state is PairState.DONE
    assert result.different
    assert result.differing_pages == [1, 2]
    assert (out / "invoice_pdf" / "page_2.png").exists()
    assert not (out / "invoice_pdf" / "page_1.png").exists()
    assert "page 1 could not be compared" in (logs / "invoice.log").read_text(encoding="utf-8")


def test_structural_page_failure_does_not_stop_other_pages(tmp_path, make_pdf):
    pair = _pair(tmp_path, make_pdf, [INVOICE, INVOICE], [INVOICE_WITH_IMAGE, INVOICE_WITH_IMAGE])
    out = tmp_path / "out"
    config = CompareConfig(mode=ComparisonMode.SIMPLE, output_dir=str(out))

    result = compare_pair_job(pair, config, service=FirstPageRenderFails())

    assert result.state is PairState.DONE
    assert result.differing_pages == [1, 2]
    assert (out / "invoice_pdf" / "page_2.png").exists()
    assert not (out / "invoice_pdf" / "page_1.png").exists()

def _corpus(tmp_path, make_pdf):
    for d in ("a", "b"):
        (tmp_path / d).mkdir()
    make_pdf(tmp_path / "a" / "same.pdf", [INVOICE])
    make_pdf(tmp_path / "b" / "same.pdf", [INVOICE])
    make_pdf(tmp_path / "a" / "changed.pdf", [INVOICE])
    make_pdf(tmp_path / "b" / "changed.pdf", [INVOICE_WITH_IMAGE])
    make_pdf(tmp_path / "a" / "lonely.pdf", [INVOICE])
    return str(tmp_path / "a"), str(tmp_path / "b")


@pytest.mark.parametrize("workers", [1, 2])
def test_batch_run(tmp_path, make_pdf, workers):
    dir_a, dir_b = _corpus(tmp_path, make_pdf)
    out = tmp_path / "out"
    comparator = BatchComparator(CompareConfig(workers=workers))

    assert comparator.run(dir_a, dir_b, output_dir=str(out)) is True

    assert [(p.name, p.different) for p in comparator.results] == [("changed.pdf", True), ("same.pdf", False)]
    assert (out / "changed_pdf" / "page_1.png").exists()
    assert not (out / "same_pdf").exists()


def test_batch_without_differences(tmp_path, make_pdf):
    for d in ("a", "b"):
        (tmp_path / d).mkdir()
        make_pdf(tmp_path / d / "same.pdf", [INVOICE])

    comparator = BatchComparator(CompareConfig(workers=1))
    assert comparator.run(str(tmp_path / "a"), str(tmp_path / "b")) is False
    assert comparator.results[0].state is PairState.DONE


def test_batch_with_prefix(tmp_path, make_pdf):
    dir_a, dir_b = _corpus(tmp_path, make_pdf)
    comparator = BatchComparator(CompareConfig(workers=1))

    assert comparator.run(dir_a, dir_b, prefix="same") is False
    assert [p.name for p in comparator.results] == ["same.pdf"]


def test_batch_on_invalid_directory(tmp_path):
    comparator = BatchComparator(CompareConfig(workers=1))
    assert comparator.run(str(tmp_path / "nope"), str(tmp_path)) is False
    assert comparator.results == []


def test_batch_logs_progress(tmp_path, make_pdf, caplog):
    dir_a, dir_b = _corpus(tmp_path, make_pdf)
    comparator = BatchComparator(CompareConfig(workers=1))

    with caplog.at_level("DEBUG", logger="pdf_layout_diff"):
        comparator.run(dir_a, dir_b)

    assert "Compared 1/2 pair(s)" in caplog.text
    assert "Compared 2/2 pair(s)" in caplog.text
