import io

import pytest
from PIL import Image

from certx.compose import RENDER_SCALE, ComposedDocument, compose
from certx.errors import SerializationError
from certx.export import ExportFormat, certificate_filename, export, sanitize_filename_part
from certx.generator import qr_symbol
from certx.models import NamePosition, QRPosition

from conftest import decode_qr, make_template

QR_TEXT = "Email: a@x.com\nName: Alice Smith"
QR_POS = QRPosition(x=700, y=500, size=80)


@pytest.fixture
def document():
    return compose(make_template(), "Alice Smith", NamePosition(x=400, y=300, font_size=24),
                   qr_symbol(QR_TEXT), QR_POS)


def test_filename_pattern():
    assert certificate_filename("Bootcamp 2025", "Alice Smith") == "Bootcamp 2025-Alice Smith-certificate.pdf"
    assert certificate_filename("Bootcamp 2025", "Alice Smith", "png") == "Bootcamp 2025-Alice Smith-certificate.png"


def test_filename_sanitizing_is_opt_in():
    raw = certificate_filename("Q1/Q2: Review", "Ann <Admin>")
    assert raw == "Q1/Q2: Review-Ann <Admin>-certificate.pdf"
    clean = certificate_filename("Q1/Q2: Review", "Ann <Admin>", sanitize=True)
    assert clean == "Q1_Q2_ Review-Ann _Admin_-certificate.pdf"


def test_sanitize_keeps_spaces_and_unicode():
    assert sanitize_filename_part(" Zoë Ångström\t") == "Zoë Ångström_"


def test_format_parsing():
    assert ExportFormat.parse("PDF") is ExportFormat.PDF
    assert ExportFormat.parse(".png") is ExportFormat.PNG
    assert ExportFormat.PNG.media_type == "image/png"
    with pytest.raises(ValueError):
        ExportFormat.parse("docx")


def test_pdf_export_is_single_800x600_page(document):
    from pypdf import PdfReader

    artifact = export(document, "Bootcamp 2025", "Alice Smith")
    assert artifact.content.startswith(b"%PDF")
    assert artifact.media_type == "application/pdf"
    assert artifact.filename == "Bootcamp 2025-Alice Smith-certificate.pdf"

    reader = PdfReader(io.BytesIO(artifact.content))
    assert len(reader.pages) == 1
    box = reader.pages[0].mediabox
    assert (float(box.width), float(box.height)) == (800.0, 600.0)


def test_pdf_export_is_byte_identical_across_runs(document):
    first = export(document, "Bootcamp 2025", "Alice Smith").content
    clone = ComposedDocument(document.base.copy(), document.qr.copy(), QR_POS)
    second = export(clone, "Bootcamp 2025", "Alice Smith").content
    assert first == second


def test_pdf_places_qr_symbol_as_separate_image(document):
    from pypdf import PdfReader

    page = PdfReader(io.BytesIO(export(document, "E", "N").content)).pages[0]
    sizes = sorted(image.image.size for image in page.images)
    assert sizes == [document.qr.size, (800 * RENDER_SCALE, 600 * RENDER_SCALE)]

    qr = next(image.image for image in page.images if image.image.size == document.qr.size)
    assert decode_qr(qr) == QR_TEXT


def test_png_export_is_flattened_page(document):
    artifact = export(document, "Bootcamp 2025", "Alice Smith", fmt=ExportFormat.PNG)
    img = Image.open(io.BytesIO(artifact.content))
    assert img.size == (800 * RENDER_SCALE, 600 * RENDER_SCALE)
    assert img.info["dpi"] == pytest.approx((72 * RENDER_SCALE, 72 * RENDER_SCALE), abs=0.1)
    assert img.convert("RGB").tobytes() == document.render().tobytes()


def test_png_qr_decodes_at_page_geometry(document):
    artifact = export(document, "E", "N", fmt="png")
    page = Image.open(io.BytesIO(artifact.content)).convert("RGB")
    assert decode_qr(page.crop(document.qr_box())) == QR_TEXT


@pytest.mark.parametrize("bad", [
    Image.new("RGB", (800, 600)),
    ComposedDocument(Image.new("RGB", (640, 480)), Image.new("RGB", (21, 21)), QR_POS, scale=1),
    ComposedDocument(Image.new("RGBA", (800, 600)), Image.new("RGB", (21, 21)), QR_POS, scale=1),
    ComposedDocument(Image.new("RGB", (800, 600)), "not an image", QR_POS, scale=1),
    "not an image",
])
def test_corrupt_document_raises_serialization_error(bad):
    with pytest.raises(SerializationError) as excinfo:
        export(bad, "E", "N")
    assert excinfo.value.kind == "serialization"


def test_encoder_failure_raises_serialization_error(document, monkeypatch):
    from certx import export as export_module

    def boom(_document):
        raise OSError("disk full")

    monkeypatch.setitem(export_module._RENDERERS, ExportFormat.PNG, boom)
    with pytest.raises(SerializationError, match="png encoding failed"):
        export(document, "E", "N", fmt="png")


def test_artifact_save(tmp_path, document):
    artifact = export(document, "Bootcamp 2025", "Alice Smith", fmt="png")
    path = artifact.save(tmp_path / "out")
    assert path.name == "Bootcamp 2025-Alice Smith-certificate.png"
    assert path.read_bytes() == artifact.content
