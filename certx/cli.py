"""certx CLI: generate certificates and verification QR codes from the command line."""

import argparse
import sys
from pathlib import Path

from certx.config import Settings
from certx.logging import audit, get_logger, setup_logging

log = get_logger("cli")


def _load_store(args, settings: Settings):
    from certx.store import JsonEventStore

    events_file = args.events or settings.events_file
    if not events_file:
        print("error: no events file (use --events or CERTX_EVENTS_FILE)", file=sys.stderr)
        sys.exit(1)
    return JsonEventStore(events_file)


def cmd_generate(args, settings: Settings) -> int:
    """Generate a certificate for a registrant and write it to disk."""
    from certx.pipeline import CertificatePipeline

    store = _load_store(args, settings)
    pipeline = CertificatePipeline(store, settings)
    result = pipeline.generate(args.event_id, args.email, fmt=args.format)

    if not result.ok:
        err = result.error
        print(f"FAILED [{err.kind}] at {result.failed_at.value}: {err.message}", file=sys.stderr)
        return err.exit_code

    path = result.artifact.save(args.output)
    print(f"Certificate generated: {path} ({len(result.artifact)} bytes)")
    return 0


def cmd_payload(args, settings: Settings) -> int:
    """Print the QR payload a registrant's certificate would carry."""
    from certx.payload import encode_payload

    store = _load_store(args, settings)
    event = store.find_event(args.event_id)
    name = store.resolve_registrant_name(args.event_id, args.email) if event else None
    if event is None or not name:
        print("Email not registered for this event", file=sys.stderr)
        return 2
    print(encode_payload(args.email.strip(), name, event.name, event.date, verifier=settings.verifier))
    return 0


def cmd_qr(args, settings: Settings) -> int:
    """Render arbitrary text as a standalone QR image."""
    from certx.errors import EncodingError
    from certx.generator import render_qr

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    try:
        img = render_qr(args.text, args.size, ecc=args.ecc or settings.qr_ecc)
    except EncodingError as e:
        print(f"FAILED [{e.kind}]: {e.message}", file=sys.stderr)
        return e.exit_code
    img.save(output)
    print(f"Generated: {output} ({img.size[0]}x{img.size[1]})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="certx", description="certx: event certificates with verification QR codes")

    parser.add_argument("-V", "--verbose", action="store_true", help="Enable DEBUG-level logging")
    parser.add_argument("--log-file", default=None, help="Write JSON logs to file")
    parser.add_argument("--json-logs", action="store_true", help="JSON log lines on the console")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- generate ---
    p_gen = subparsers.add_parser("generate", help="Generate a certificate for a registrant")
    p_gen.add_argument("event_id", help="Event identifier")
    p_gen.add_argument("email", help="Registrant email address")
    p_gen.add_argument("--events", default=None, help="Events JSON file")
    p_gen.add_argument("-o", "--output", default="output", help="Output directory")
    p_gen.add_argument("-f", "--format", default=None, choices=["pdf", "png"], help="Export format")
    p_gen.add_argument("--verifier", default=None, help="Verifier label in the QR payload")
    p_gen.add_argument("--font", default=None, help="Bold TrueType font for the name")

    # --- payload ---
    p_pay = subparsers.add_parser("payload", help="Print the QR payload for a registrant")
    p_pay.add_argument("event_id", help="Event identifier")
    p_pay.add_argument("email", help="Registrant email address")
    p_pay.add_argument("--events", default=None, help="Events JSON file")
    p_pay.add_argument("--verifier", default=None, help="Verifier label in the QR payload")

    # --- qr ---
    p_qr = subparsers.add_parser("qr", help="Render text as a QR image")
    p_qr.add_argument("text", help="Text to encode")
    p_qr.add_argument("-o", "--output", default="output/qr.png", help="Output file path")
    p_qr.add_argument("-s", "--size", type=int, default=240, help="Image side in pixels")
    p_qr.add_argument("-e", "--ecc", default=None, choices=["L", "M", "Q", "H"], help="Error correction level")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings.from_env().override(
        log_file=args.log_file,
        verifier=getattr(args, "verifier", None),
        font_path=getattr(args, "font", None),
    )
    setup_logging(level="DEBUG" if args.verbose else settings.log_level,
                  log_file=settings.log_file, json_format=args.json_logs)
    audit("cli.start", logger=log, command=args.command, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        return 1

    commands = {
        "generate": cmd_generate,
        "payload": cmd_payload,
        "qr": cmd_qr,
    }
    code = commands[args.command](args, settings)
    audit("cli.done", logger=log, command=args.command, exit_code=code)
    return code


if __name__ == "__main__":
    sys.exit(main())
