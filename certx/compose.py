"""Certificate compositing: template background, name text and QR code on a fixed canvas."""

import base64
import binascii
import io
import math
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageColor, ImageDraw, ImageFont, UnidentifiedImageError

from certx.errors import AssetLoadError
from certx.logging import audit, get_logger, trace
from certx.models import AssetRef, NamePosition, QRPosition

log = get_logger("compose")

# Landscape page in layout units; one unit is one PDF point.
CANVAS_SIZE = (800, 600)

# Raster pixels per layout unit (4 -> 288 dpi on the PDF page).
RENDER_SCALE = 4

BOLD_FONT_CANDIDATES = (
    "DejaVuSans-Bold.ttf",
    "LiberationSans-Bold.ttf",
    "FreeSansBold.ttf",
    "arialbd.ttf",
    "Arial Bold.ttf",
)


# ---------------------------------------------------------------------------
# Template loading
# ---------------------------------------------------------------------------

def _decode_data_url(url: str) -> bytes:
    header, sep, data = url.partition(",")
    if not sep:
        raise AssetLoadError("malformed data URL: missing ','")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(data, validate=True)
        except binascii.Error as exc:
            raise AssetLoadError("data URL is not valid base64") from exc
    raise AssetLoadError(f"unsupported data URL encoding {header!r}")


def _read_source(source: AssetRef) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if isinstance(source, str) and source.startswith("data:"):
        return _decode_data_url(source)
    try:
        path = Path(source)
        return path.read_bytes()
    # ValueError: embedded NUL byte; TypeError: not a path at all
    except (OSError, ValueError, TypeError) as exc:
        raise AssetLoadError(f"cannot read template image {str(source)[:120]!r}", path=str(source)[:120]) from exc


@trace
def load_template(source: AssetRef | Image.Image) -> Image.Image:
    """Fetch and fully decode the template image.

    This is the only blocking step of a generation request; it returns a
    decoded image or raises, never a half-loaded one.

    Raises:
        AssetLoadError: missing file, bad data URL, oversized or undecodable
            image data.
    """
    if isinstance(source, Image.Image):
        return source
    if source is None or source == "":
        raise AssetLoadError("event has no template image")

    raw = _read_source(source)
    try:
        img = Image.open(io.BytesIO(raw))
        # Pillow plugins report some corrupt streams as SyntaxError
        img.load()
    except Image.DecompressionBombError as exc:
        raise AssetLoadError(f"template image is too large to decode: {exc}") from exc
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise AssetLoadError(f"template image could not be decoded ({len(raw)} bytes)") from exc

    audit("template.loaded", logger=log, format=img.format, size=f"{img.size[0]}x{img.size[1]}", mode=img.mode)
    return img


# ---------------------------------------------------------------------------
# Typography
# ---------------------------------------------------------------------------

def load_font(font_size: int, font_path: str | None = None) -> ImageFont.FreeTypeFont:
    """Bold font at *font_size*.

    Tries *font_path*, then common bold system fonts, then Pillow's bundled
    scalable default. Regular-weight faces are emboldened at draw time, see
    :func:`bold_stroke`.
    """
    candidates = ((font_path,) if font_path else ()) + BOLD_FONT_CANDIDATES
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, font_size)
        except OSError:
            continue
    log.warning("no bold TrueType font found (tried %s); using Pillow default with synthetic bold",
                ", ".join(candidates))
    return ImageFont.load_default(size=font_size)


def bold_stroke(font: ImageFont.FreeTypeFont) -> int:
    """Stroke width that makes *font* read as bold: 0 for bold faces."""
    try:
        style = font.getname()[1] or ""
    except AttributeError:
        style = ""
    if any(weight in style.lower() for weight in ("bold", "black", "heavy")):
        return 0
    return max(1, round(getattr(font, "size", 10) / 30))


def _ink_extent(text: str, font, stroke_width: int) -> tuple[int, int, int, int]:
    """Painted-pixel box of *text* relative to its left baseline origin."""
    box = font.getbbox(text, anchor="ls", stroke_width=stroke_width)
    left, top = math.floor(box[0]), math.floor(box[1])
    right, bottom = math.ceil(box[2]), math.ceil(box[3])
    if right <= left or bottom <= top:
        return left, top, right, bottom
    mask = Image.new("L", (right - left, bottom - top))
    ImageDraw.Draw(mask).text((-left, -top), text, fill=255, font=font, anchor="ls", stroke_width=stroke_width)
    ink = mask.getbbox()
    if ink is None:
        return left, top, right, bottom
    return left + ink[0], top + ink[1], left + ink[2], top + ink[3]


def _centered_origin(text: str, font, stroke_width: int, cx: float, cy: float) -> tuple[float, float]:
    left, top, right, bottom = _ink_extent(text, font, stroke_width)
    return cx - (left + right) / 2, cy - (top + bottom) / 2


def name_bbox(
    name: str,
    name_position: NamePosition,
    font_path: str | None = None,
) -> tuple[float, float, float, float]:
    """Box (left, top, right, bottom) of the painted name, in layout units."""
    scale = RENDER_SCALE
    font = load_font(round(name_position.font_size * scale), font_path)
    left, top, right, bottom = _ink_extent(name, font, bold_stroke(font))
    half_w = (right - left) / (2 * scale)
    half_h = (bottom - top) / (2 * scale)
    x, y = float(name_position.x), float(name_position.y)
    return x - half_w, y - half_h, x + half_w, y + half_h


# ---------------------------------------------------------------------------
# Canvas assembly
# ---------------------------------------------------------------------------

def canvas_pixels(scale: int) -> tuple[int, int]:
    return CANVAS_SIZE[0] * scale, CANVAS_SIZE[1] * scale


@dataclass(frozen=True, eq=False)
class ComposedDocument:
    """An 800x600 certificate page held as layers.

    ``base`` is the template with the name drawn on it, rasterised at
    ``scale`` pixels per unit. ``qr`` is the QR symbol, kept at its own
    resolution until it is placed as a ``qr_position.size`` square.
    """
    base: Image.Image
    qr: Image.Image
    qr_position: QRPosition
    scale: int = RENDER_SCALE

    @property
    def size(self) -> tuple[int, int]:
        return CANVAS_SIZE

    def qr_box(self, scale: int | None = None) -> tuple[int, int, int, int]:
        """Pixel box the QR covers in :meth:`render` output."""
        scale = scale or self.scale
        left = round(self.qr_position.x * scale)
        top = round(self.qr_position.y * scale)
        side = round(self.qr_position.size * scale)
        return left, top, left + side, top + side

    def render(self, scale: int | None = None) -> Image.Image:
        """Flatten all layers into one RGB image at *scale* pixels per unit."""
        scale = scale or self.scale
        if scale == self.scale:
            page = self.base.copy()
        else:
            page = self.base.resize(canvas_pixels(scale), Image.LANCZOS)
        left, top, right, _ = self.qr_box(scale)
        side = right - left
        if side > 0:
            qr = self.qr.convert("RGB")
            if qr.size != (side, side):
                qr = qr.resize((side, side), Image.NEAREST)
            page.paste(qr, (left, top))
        return page


def _fit_background(template_image: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Stretch the template over the full canvas. Aspect ratio is not kept."""
    background = template_image
    if background.mode in ("RGBA", "LA", "P"):
        rgba = background.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
    else:
        background = background.convert("RGB")
    if background.size != size:
        w, h = template_image.size
        if h and abs(w / h - CANVAS_SIZE[0] / CANVAS_SIZE[1]) > 0.01:
            log.debug("template %dx%d is not 4:3; stretching to fill", w, h)
        background = background.resize(size, Image.LANCZOS)
    return background


@trace
def compose(
    template_image: Image.Image,
    name: str,
    name_position: NamePosition,
    qr_image: Image.Image,
    qr_position: QRPosition,
    font_path: str | None = None,
    scale: int = RENDER_SCALE,
) -> ComposedDocument:
    """Layer template, name and QR onto an 800x600 page.

    The name is bold, and its painted pixels are centered horizontally and
    vertically on ``(name_position.x, name_position.y)``. The QR becomes a
    ``qr_position.size`` square with its top-left corner at
    ``(qr_position.x, qr_position.y)``. Coordinates are not clipped.
    """
    if int(scale) != scale or scale < 1:
        raise ValueError(f"render scale must be a positive integer, got {scale}")
    scale = int(scale)
    base = _fit_background(template_image, canvas_pixels(scale))

    font = load_font(round(name_position.font_size * scale), font_path)
    stroke = bold_stroke(font)
    fill = ImageColor.getrgb(name_position.font_color)
    origin = _centered_origin(name, font, stroke, name_position.x * scale, name_position.y * scale)
    ImageDraw.Draw(base).text(origin, name, font=font, fill=fill, anchor="ls",
                              stroke_width=stroke, stroke_fill=fill)

    document = ComposedDocument(base=base, qr=qr_image, qr_position=qr_position, scale=scale)
    audit("canvas.composed", logger=log,
          size=f"{CANVAS_SIZE[0]}x{CANVAS_SIZE[1]}", scale=scale,
          name_at=f"{name_position.x},{name_position.y}",
          font_size=name_position.font_size, synthetic_bold=bool(stroke),
          qr_at=f"{qr_position.x},{qr_position.y}", qr_size=qr_position.size,
          qr_px=f"{qr_image.width}x{qr_image.height}")
    return document
