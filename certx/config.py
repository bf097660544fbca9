"""Runtime settings, read from ``CERTX_*`` environment variables."""

import os
from dataclasses import dataclass, replace

from certx.payload import DEFAULT_VERIFIER

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(environ, key: str, default: bool) -> bool:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{key} must be a boolean, got {raw!r}")


def _env_int(environ, key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{key} must be at least 1, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    verifier: str = DEFAULT_VERIFIER
    font_path: str | None = None
    export_format: str = "pdf"
    qr_ecc: str = "H"
    sanitize_filenames: bool = True
    render_scale: int = 4
    log_level: str = "INFO"
    log_file: str | None = None
    events_file: str | None = None

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            verifier=env.get("CERTX_VERIFIER") or DEFAULT_VERIFIER,
            font_path=env.get("CERTX_FONT_PATH") or None,
            export_format=(env.get("CERTX_EXPORT_FORMAT") or "pdf").lower(),
            qr_ecc=(env.get("CERTX_QR_ECC") or "H").upper(),
            sanitize_filenames=_env_bool(env, "CERTX_SANITIZE_FILENAMES", True),
            render_scale=_env_int(env, "CERTX_RENDER_SCALE", 4),
            log_level=(env.get("CERTX_LOG_LEVEL") or "INFO").upper(),
            log_file=env.get("CERTX_LOG_FILE") or None,
            events_file=env.get("CERTX_EVENTS_FILE") or None,
        )

    def override(self, **changes) -> "Settings":
        """Copy with the non-None *changes* applied (CLI flags over env)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
