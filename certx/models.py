"""Event and certificate records shared by the pipeline stages."""

import datetime
from dataclasses import dataclass
from pathlib import Path

# A template reference: filesystem path, ``data:`` URL, or raw image bytes.
AssetRef = str | bytes | Path


def _pick(data: dict, *keys, default=None):
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass(frozen=True)
class NamePosition:
    """Anchor point and typography for the registrant's name."""
    x: float
    y: float
    font_size: int
    font_color: str = "#000000"

    @classmethod
    def from_dict(cls, data: dict) -> "NamePosition":
        return cls(
            x=data["x"],
            y=data["y"],
            font_size=int(_pick(data, "fontSize", "font_size")),
            font_color=_pick(data, "fontColor", "font_color", default="#000000"),
        )


@dataclass(frozen=True)
class QRPosition:
    """Top-left corner and side length of the QR square."""
    x: float
    y: float
    size: int

    @classmethod
    def from_dict(cls, data: dict) -> "QRPosition":
        return cls(x=data["x"], y=data["y"], size=int(data["size"]))


@dataclass(frozen=True)
class EventTemplate:
    """An event and the layout of its certificate. Read-only to the pipeline."""
    id: str
    name: str
    date: str | datetime.date
    template_image: AssetRef
    name_position: NamePosition
    qr_position: QRPosition

    @classmethod
    def from_dict(cls, data: dict) -> "EventTemplate":
        """Build from a stored record; camelCase and snake_case keys both work."""
        return cls(
            id=str(data["id"]),
            name=data["name"],
            date=data["date"],
            template_image=_pick(data, "templateImage", "template_image"),
            name_position=NamePosition.from_dict(_pick(data, "namePosition", "name_position")),
            qr_position=QRPosition.from_dict(_pick(data, "qrPosition", "qr_position")),
        )


@dataclass(frozen=True)
class CertificateArtifact:
    """Exported document bytes plus the name it should be saved under."""
    content: bytes
    filename: str
    media_type: str

    def __len__(self) -> int:
        return len(self.content)

    def save(self, directory: str | Path = ".") -> Path:
        """Write the artifact into *directory* and return the file path."""
        path = Path(directory) / self.filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.content)
        return path
