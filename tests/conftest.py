import pytest

fitz = pytest.importorskip("fitz")


def _gray_pixmap(value: int, size: int = 32):
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, size, size), False)
    pix.clear_with(value)
    return pix


def write_pdf(path, pages, width=300, height=300):
    """
    pages: list of dicts with optional
      "texts":  [(x, baseline_y, text), ...]
      "images": [((x0, y0, x1, y1), gray_value), ...]
    """
    doc = fitz.open()
    for content in pages:
        page = doc.new_page(width=width, height=height)
        for x, y, text in content.get("texts", []):
            page.insert_text((x, y), text, fontsize=14)
        for rect, value in content.get("images", []):
            page.insert_image(fitz.Rect(*rect), pixmap=_gray_pixmap(value))
    doc.save(str(path))
    doc.close()
    return path


@pytest.fixture
def make_pdf():
    return write_pdf
