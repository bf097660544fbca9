import base64
import io
import json
import logging

import pytest
from PIL import Image, ImageDraw

from certx.models import EventTemplate
from certx.store import InMemoryEventStore

TEMPLATE_BG = (250, 248, 240)


def make_template(size=(800, 600), color=TEMPLATE_BG) -> Image.Image:
    img = Image.new("RGB", size, color)
    draw = ImageDraw.Draw(img)
    draw.rectangle([0, 0, size[0] - 1, size[1] - 1], outline=(120, 90, 30), width=4)
    return img


def png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def decode_qr(image: Image.Image, quiet_zone: int = 40) -> str | None:
    """Decode the QR in *image* with pyzbar, falling back to OpenCV.

    A white quiet zone is added first; certificates embed the code with none.
    """
    padded = Image.new("RGB", (image.width + 2 * quiet_zone, image.height + 2 * quiet_zone), "white")
    padded.paste(image.convert("RGB"), (quiet_zone, quiet_zone))

    decoders_available = False
    try:
        from pyzbar.pyzbar import decode as pyzbar_decode
    except ImportError:
        pass
    else:
        decoders_available = True
        results = pyzbar_decode(padded)
        if results:
            return results[0].data.decode("utf-8")

    try:
        import cv2
        import numpy as np
    except ImportError:
        pass
    else:
        decoders_available = True
        gray = cv2.cvtColor(np.array(padded), cv2.COLOR_RGB2GRAY)
        data, _, _ = cv2.QRCodeDetector().detectAndDecode(gray)
        if data:
            return data

    if not decoders_available:
        pytest.skip("no QR decoder available (pyzbar or opencv)")
    return None


BOOTCAMP = {
    "id": "e1",
    "name": "Bootcamp 2025",
    "date": "2025-01-05",
    "namePosition": {"x": 400, "y": 300, "fontSize": 24, "fontColor": "#000"},
    "qrPosition": {"x": 700, "y": 500, "size": 80},
}


@pytest.fixture(autouse=True)
def _reset_certx_logging():
    yield
    logger = logging.getLogger("certx")
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def template_image():
    return make_template()


@pytest.fixture
def template_path(tmp_path, template_image):
    path = tmp_path / "template.png"
    template_image.save(path)
    return path


@pytest.fixture
def bootcamp_event(template_path):
    return EventTemplate.from_dict({**BOOTCAMP, "templateImage": str(template_path)})


@pytest.fixture
def store(bootcamp_event):
    return InMemoryEventStore(
        [bootcamp_event],
        {"e1": {"a@x.com": "Alice Smith", "bob@x.com": "Bob Jones"}},
    )


@pytest.fixture
def events_file(tmp_path, template_image):
    template_image.save(tmp_path / "bootcamp.png")
    data = {
        "events": [
            {**BOOTCAMP, "templateImage": "bootcamp.png"},
            {
                **BOOTCAMP,
                "id": "e2",
                "name": "Inline Workshop",
                "templateImage": "data:image/png;base64,"
                + base64.b64encode(png_bytes(make_template((400, 300)))).decode("ascii"),
            },
        ],
        "registrants": {
            "e1": {"A@X.com": "Alice Smith"},
            "e2": {"carol@x.com": "Carol Diaz"},
        },
    }
    path = tmp_path / "events.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path
