from dataclasses import replace

from digicertify.rendering.document import build_document
from digicertify.rendering.layout import layout_document, layout_qr, layout_text, load_font


def test_qr_matrix_is_square(certificate):
    doc = build_document(certificate)
    code = layout_qr(doc.element("qr"))
    assert code.modules >= 21
    assert all(len(row) == code.modules for row in code.matrix)
    assert any(any(row) for row in code.matrix)


def test_short_name_keeps_full_size(certificate):
    element = build_document(certificate).element("name")
    laid = layout_text(element)
    assert laid.size == 48
    assert len(laid.lines) == 1


def test_long_name_shrinks_to_floor_then_wraps(certificate):
    long_name = "Maximilian Alexander Bartholomew Fitzgerald-Worthington the Third"
    element = build_document(replace(certificate, name=long_name)).element("name")
    laid = layout_text(element)
    assert laid.size == 32
    assert len(laid.lines) >= 2
    assert " ".join(line.text for line in laid.lines) == long_name


def test_verify_url_breaks_anywhere_within_width(certificate):
    element = build_document(certificate, verify_base_url="https://verification.example-university.edu/certificates/verify").element("verify-url")
    laid = layout_text(element)
    font = load_font(element.font, laid.size)
    assert len(laid.lines) >= 2
    assert "".join(line.text for line in laid.lines) == element.text
    for line in laid.lines:
        assert font.getlength(line.text) <= element.max_width


def test_centered_text_is_centered(certificate):
    element = build_document(certificate).element("signatory")
    laid = layout_text(element)
    line = laid.lines[0]
    width = load_font(element.font, laid.size).getlength(line.text)
    assert abs((line.x - element.x) - (element.max_width - width) / 2) < 0.01


def test_layout_document_covers_text_and_codes(certificate):
    doc = build_document(certificate)
    laid = layout_document(doc)
    assert set(laid.texts) == {el.key for el in doc if hasattr(el, "text")}
    assert set(laid.codes) == {"qr"}
    assert (laid.width, laid.height) == (1120, 790)
