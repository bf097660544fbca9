"""Certificate export: serialize a composed document to PDF or PNG bytes."""

import io
import re
from enum import Enum

from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas as pdf_canvas

from certx.compose import CANVAS_SIZE, ComposedDocument, canvas_pixels
from certx.errors import SerializationError
from certx.logging import audit, get_logger, trace
from certx.models import CertificateArtifact

log = get_logger("export")

_ILLEGAL_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


class ExportFormat(Enum):
    PDF = ("pdf", "application/pdf")
    PNG = ("png", "image/png")

    @property
    def extension(self) -> str:
        return self.value[0]

    @property
    def media_type(self) -> str:
        return self.value[1]

    @classmethod
    def parse(cls, value: "str | ExportFormat") -> "ExportFormat":
        if isinstance(value, cls):
            return value
        for fmt in cls:
            if fmt.extension == str(value).lower().lstrip("."):
                return fmt
        raise ValueError(f"unsupported export format {value!r}, expected pdf or png")


def sanitize_filename_part(text: str) -> str:
    """Replace characters most filesystems reject; spaces are kept."""
    return _ILLEGAL_FILENAME_CHARS.sub("_", text).strip()


def certificate_filename(
    event_name: str,
    registrant_name: str,
    fmt: "str | ExportFormat" = ExportFormat.PDF,
    sanitize: bool = False,
) -> str:
    """``<eventName>-<registrantName>-certificate.<ext>``."""
    fmt = ExportFormat.parse(fmt)
    if sanitize:
        event_name = sanitize_filename_part(event_name)
        registrant_name = sanitize_filename_part(registrant_name)
    return f"{event_name}-{registrant_name}-certificate.{fmt.extension}"


def _check_document(document: ComposedDocument):
    if not isinstance(document, ComposedDocument):
        raise SerializationError(f"expected a composed document, got {type(document).__name__}")
    base = document.base
    expected = canvas_pixels(document.scale)
    if not isinstance(base, Image.Image) or base.size != expected:
        got = f"{base.size[0]}x{base.size[1]}" if isinstance(base, Image.Image) else type(base).__name__
        raise SerializationError(f"page raster is {got}, expected {expected[0]}x{expected[1]}")
    if base.mode != "RGB":
        raise SerializationError(f"page raster mode {base.mode} is not RGB")
    if not isinstance(document.qr, Image.Image):
        raise SerializationError(f"QR layer is {type(document.qr).__name__}, not an image")


def _render_pdf(document: ComposedDocument) -> bytes:
    width, height = CANVAS_SIZE
    buf = io.BytesIO()
    # invariant=1 pins creation date and document id so equal documents give equal bytes
    doc = pdf_canvas.Canvas(buf, pagesize=(width, height), invariant=1, pageCompression=1)
    doc.setTitle("Certificate")
    doc.drawImage(ImageReader(document.base), 0, 0, width=width, height=height)
    pos = document.qr_position
    # PDF y grows upward from the bottom edge
    doc.drawImage(ImageReader(document.qr.convert("RGB")),
                  pos.x, height - pos.y - pos.size, width=pos.size, height=pos.size)
    doc.showPage()
    doc.save()
    return buf.getvalue()


def _render_png(document: ComposedDocument) -> bytes:
    buf = io.BytesIO()
    dpi = 72 * document.scale
    document.render().save(buf, format="PNG", optimize=False, dpi=(dpi, dpi))
    return buf.getvalue()


_RENDERERS = {
    ExportFormat.PDF: _render_pdf,
    ExportFormat.PNG: _render_png,
}


@trace
def export(
    document: ComposedDocument,
    event_name: str,
    registrant_name: str,
    fmt: "str | ExportFormat" = ExportFormat.PDF,
    sanitize: bool = False,
) -> CertificateArtifact:
    """Serialize *document* as a single 800x600 page and name the artifact.

    The PDF page is 800x600 points with the page raster stretched over it
    and the QR symbol placed as a separate image. The PNG is the flattened
    page at the document's render scale, tagged with the matching dpi.

    Raises:
        SerializationError: wrong page geometry or an encoder failure.
    """
    fmt = ExportFormat.parse(fmt)
    _check_document(document)
    try:
        content = _RENDERERS[fmt](document)
    except (OSError, ValueError, TypeError) as exc:
        raise SerializationError(f"{fmt.extension} encoding failed: {exc}", format=fmt.extension) from exc

    artifact = CertificateArtifact(
        content=content,
        filename=certificate_filename(event_name, registrant_name, fmt, sanitize=sanitize),
        media_type=fmt.media_type,
    )
    audit("certificate.exported", logger=log,
          format=fmt.extension, bytes=len(content), filename=artifact.filename)
    return artifact
