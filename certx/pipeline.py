"""Certificate generation pipeline.

One request walks a fixed sequence of stages::

    IDLE -> VALIDATING -> LOADING -> COMPOSING -> EXPORTING -> DONE

and drops into FAILED from whichever stage raised. The pipeline keeps no
state between requests, so one instance can serve concurrent callers.
"""

from dataclasses import dataclass, field
from enum import Enum

from certx.compose import compose, load_template
from certx.config import Settings
from certx.errors import CertificateError, EventNotFoundError, NotRegisteredError
from certx.export import ExportFormat, export
from certx.generator import qr_symbol
from certx.logging import audit, get_logger, mask_email, trace
from certx.models import CertificateArtifact, EventTemplate
from certx.payload import encode_payload
from certx.store import EventStore

log = get_logger("pipeline")


class Stage(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    LOADING = "loading"
    COMPOSING = "composing"
    EXPORTING = "exporting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class GenerationResult:
    """Outcome of one request: DONE with an artifact, or FAILED with the error."""
    stage: Stage
    artifact: CertificateArtifact | None = None
    error: CertificateError | None = None
    history: list[Stage] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.stage is Stage.DONE

    @property
    def failed_at(self) -> Stage | None:
        """Stage that was running when the request failed."""
        if self.ok or len(self.history) < 2:
            return None
        return self.history[-2]


class _Run:
    """Stage bookkeeping for a single request."""

    def __init__(self):
        self.history = [Stage.IDLE]

    @property
    def stage(self) -> Stage:
        return self.history[-1]

    def enter(self, stage: Stage):
        log.debug("stage %s -> %s", self.stage.value, stage.value)
        self.history.append(stage)


class CertificatePipeline:
    """Generate certificates for registrants found in *store*.

    Args:
        store: Read-only event lookups (see :class:`certx.store.EventStore`).
        settings: Verifier label, font, export format and ECC defaults.
    """

    def __init__(self, store: EventStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or Settings()

    def _validate(self, event_id: str, email: str) -> tuple[EventTemplate, str, str]:
        email = (email or "").strip()
        if not email:
            raise NotRegisteredError("an email address is required", event_id=event_id)
        event = self.store.find_event(event_id)
        if event is None:
            raise EventNotFoundError(f"event {event_id!r} not found", event_id=event_id)
        name = self.store.resolve_registrant_name(event_id, email)
        if not name:
            raise NotRegisteredError("Email not registered for this event", event_id=event_id)
        return event, email, name

    def _compose(self, event: EventTemplate, template, email: str, name: str):
        text = encode_payload(email, name, event.name, event.date, verifier=self.settings.verifier)
        qr = qr_symbol(text, ecc=self.settings.qr_ecc)
        return compose(template, name, event.name_position, qr, event.qr_position,
                       font_path=self.settings.font_path, scale=self.settings.render_scale)

    @trace
    def generate(self, event_id: str, email: str, fmt: str | ExportFormat | None = None) -> GenerationResult:
        """Run one request end to end.

        Typed pipeline failures are returned as a FAILED result; anything
        else is a bug and propagates.
        """
        fmt = ExportFormat.parse(fmt or self.settings.export_format)
        run = _Run()
        try:
            run.enter(Stage.VALIDATING)
            event, email, name = self._validate(event_id, email)

            run.enter(Stage.LOADING)
            template = load_template(event.template_image)

            run.enter(Stage.COMPOSING)
            document = self._compose(event, template, email, name)

            run.enter(Stage.EXPORTING)
            artifact = export(document, event.name, name, fmt, sanitize=self.settings.sanitize_filenames)
        except CertificateError as exc:
            failed_at = run.stage
            run.enter(Stage.FAILED)
            audit("certificate.failed", logger=log,
                  event_id=event_id, email=mask_email(email),
                  stage=failed_at.value, kind=exc.kind, error=exc.message)
            return GenerationResult(stage=Stage.FAILED, error=exc, history=run.history)

        run.enter(Stage.DONE)
        audit("certificate.generated", logger=log,
              event_id=event_id, email=mask_email(email),
              filename=artifact.filename, bytes=len(artifact))
        return GenerationResult(stage=Stage.DONE, artifact=artifact, history=run.history)


def generate_certificate(
    store: EventStore,
    event_id: str,
    email: str,
    fmt: str | ExportFormat | None = None,
    settings: Settings | None = None,
) -> CertificateArtifact:
    """Generate one certificate, raising the typed error on failure."""
    result = CertificatePipeline(store, settings).generate(event_id, email, fmt)
    if result.error is not None:
        raise result.error
    return result.artifact
