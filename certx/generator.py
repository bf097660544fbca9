"""QR image generation for certificate verification codes."""

import math
from enum import Enum

import qrcode
import qrcode.constants
from qrcode.exceptions import DataOverflowError
from PIL import Image

from certx.errors import EncodingError
from certx.logging import audit, get_logger, trace

log = get_logger("generator")

# Pixels per module for print symbols; big enough to survive any page scaling.
QR_BOX_SIZE = 10


class ECCLevel(Enum):
    L = qrcode.constants.ERROR_CORRECT_L  # 7%
    M = qrcode.constants.ERROR_CORRECT_M  # 15%
    Q = qrcode.constants.ERROR_CORRECT_Q  # 25%
    H = qrcode.constants.ERROR_CORRECT_H  # 30%


ECC_NAMES = {level.name: level for level in ECCLevel}


def parse_ecc(ecc: str | ECCLevel) -> ECCLevel:
    if isinstance(ecc, ECCLevel):
        return ecc
    try:
        return ECC_NAMES[ecc.upper()]
    except KeyError:
        raise ValueError(f"unknown error correction level {ecc!r}, expected one of L/M/Q/H") from None


def _build_matrix(text: str, ecc_level: ECCLevel) -> qrcode.QRCode:
    qr = qrcode.QRCode(
        version=None,
        error_correction=ecc_level.value,
        box_size=1,
        border=0,
    )
    qr.add_data(text)
    try:
        qr.make(fit=True)
    # qrcode 8 trips its own version setter ("Invalid version (was 41 ...)")
    # before it gets to DataOverflowError.
    except (DataOverflowError, ValueError) as exc:
        raise EncodingError(
            f"payload of {len(text.encode('utf-8'))} bytes exceeds QR capacity at ECC {ecc_level.name}",
            ecc=ecc_level.name,
            length=len(text),
        ) from exc
    return qr


def _rasterize(qr: qrcode.QRCode, box_size: int) -> Image.Image:
    qr.box_size = box_size
    return qr.make_image(fill_color="black", back_color="white").convert("RGB")


@trace
def qr_symbol(text: str, ecc: str | ECCLevel = "H", box_size: int = QR_BOX_SIZE) -> Image.Image:
    """Render *text* with every module exactly ``box_size`` pixels wide.

    The image side is ``modules * box_size``. Certificates keep this symbol
    as its own layer and scale it only when placing it on the page.
    """
    if box_size <= 0:
        raise ValueError(f"box size must be positive, got {box_size}")
    ecc_level = parse_ecc(ecc)
    qr = _build_matrix(text, ecc_level)
    img = _rasterize(qr, box_size)

    audit("qr.generated", logger=log,
          version=qr.version, modules=f"{qr.modules_count}x{qr.modules_count}",
          ecc=ecc_level.name, image_px=f"{img.width}x{img.height}", px_per_module=box_size)
    return img


@trace
def render_qr(text: str, size: int, ecc: str | ECCLevel = "H") -> Image.Image:
    """Render *text* as a square QR image of exactly ``size`` pixels.

    Version is picked automatically, the quiet zone is zero and modules are
    pure black on white. The symbol is drawn at the smallest whole number of
    pixels per module that covers ``size`` and then trimmed down with
    nearest-neighbour, so module widths differ by at most one pixel.

    Raises:
        EncodingError: the text does not fit a version 40 symbol at *ecc*.
        ValueError: non-positive size or unknown ECC level.
    """
    if size <= 0:
        raise ValueError(f"QR size must be positive, got {size}")
    ecc_level = parse_ecc(ecc)

    qr = _build_matrix(text, ecc_level)
    modules = qr.modules_count
    box_size = max(1, math.ceil(size / modules))
    img = _rasterize(qr, box_size)
    if img.size != (size, size):
        img = img.resize((size, size), Image.NEAREST)

    audit("qr.generated", logger=log,
          version=qr.version, modules=f"{modules}x{modules}",
          ecc=ecc_level.name, image_px=f"{size}x{size}",
          px_per_module=round(size / modules, 2))
    if size < modules:
        log.warning("QR rendered at %dpx for %d modules; it will not scan", size, modules)
    return img


def qr_version(text: str, ecc: str | ECCLevel = "H") -> int:
    """Smallest QR version that holds *text* at *ecc*."""
    return _build_matrix(text, parse_ecc(ecc)).version
