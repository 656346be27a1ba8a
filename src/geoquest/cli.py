"""
GeoQuest CLI entrypoint.

Handy for demos and debugging without a browser: discover nearby checkpoints from a
coordinate, unlock them with a QR string or quiz answers, and inspect the visit ledger.
State is persisted per `--user` via the configured storage backend.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from geoquest.config.settings import get_settings
from geoquest.core.errors import GeoQuestError, ValidationError
from geoquest.core.logging import configure_logging
from geoquest.core.time import from_ms
from geoquest.domain.models import VISIT_METHODS, UserPosition
from geoquest.history.aggregate import compute_stats, export_history, filter_by_method, group_by_date
from geoquest.session import DEFAULT_USER_ID, Session, open_session


def _session_at(args: argparse.Namespace) -> Session:
    session = open_session(args.user)
    if getattr(args, "lat", None) is not None and getattr(args, "lon", None) is not None:
        session.unlock.update_position(
            UserPosition(latitude=args.lat, longitude=args.lon, accuracy_m=args.accuracy)
        )
    return session


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _cmd_nearby(args: argparse.Namespace) -> int:
    session = _session_at(args)
    hits = session.unlock.nearby(buffer_m=args.buffer)
    if args.json:
        _print_json(
            [
                {
                    **h.checkpoint.to_wire(),
                    "distance": h.display_distance_m,
                    "state": session.unlock.state(h.checkpoint.id),
                }
                for h in hits
            ]
        )
        return 0

    if not hits:
        print("No checkpoints nearby. Explore more areas!")
        return 0
    for i, h in enumerate(hits, start=1):
        cp = h.checkpoint
        state = session.unlock.state(cp.id)
        print(f"{i:>2}. [{state}] {cp.name} ({cp.id})  {h.display_distance_m}m  {cp.difficulty}  {cp.reward or ''}")
    return 0


def _cmd_verify_qr(args: argparse.Namespace) -> int:
    session = _session_at(args)
    record = session.unlock.verify_by_qr(args.checkpoint, args.payload)
    print(f"Unlocked {record.checkpoint_id} via QR")
    return 0


def _parse_answers(raw: str) -> list[int]:
    try:
        return [int(a) for a in raw.split(",") if a.strip()]
    except ValueError as e:
        raise ValidationError(f"--answers must be comma-separated option indices, got {raw!r}") from e


def _cmd_quiz(args: argparse.Namespace) -> int:
    session = _session_at(args)
    answers = _parse_answers(args.answers)
    result = session.unlock.verify_by_quiz(args.checkpoint, answers)
    if not result.completed:
        print(f"Quiz not finished ({len(answers)}/{result.total} answered); nothing recorded")
        return 1
    print(f"Unlocked {args.checkpoint} via quiz ({result.score}/{result.total} correct)")
    return 0


def _cmd_visit(args: argparse.Namespace) -> int:
    session = _session_at(args)
    record = session.unlock.commit_visit(args.checkpoint, args.method)
    print(f"Recorded {record.method} visit to {record.checkpoint_id}")
    return 0


def _cmd_history(args: argparse.Namespace) -> int:
    settings = get_settings()
    session = open_session(args.user)

    if args.clear:
        session.unlock.clear_history()
        print("History cleared")
        return 0

    records = session.ledger.all()
    if args.export:
        doc = export_history(records, lookup=session.catalog.get)
        if args.export == "-":
            _print_json(doc)
        else:
            with open(args.export, "w", encoding="utf-8") as fh:
                json.dump(doc, fh, ensure_ascii=False, indent=2)
            print(f"Exported {len(records)} visits to {args.export}")
        return 0

    if args.stats:
        _print_json(compute_stats(records).to_wire())
        return 0

    if args.method:
        records = filter_by_method(records, args.method)

    tz = settings.app.timezone
    if args.by_date:
        for day, visits in group_by_date(records, timezone=tz).items():
            print(day)
            for r in visits:
                print(f"  {from_ms(r.visited_at_ms, tz):%H:%M}  {r.checkpoint_id}  ({r.method})")
        return 0

    for r in records:
        print(f"{from_ms(r.visited_at_ms, tz):%Y-%m-%d %H:%M}  {r.checkpoint_id}  ({r.method})")
    return 0


def _add_position_args(p: argparse.ArgumentParser, *, required: bool = True) -> None:
    p.add_argument("--lat", type=float, required=required)
    p.add_argument("--lon", type=float, required=required)
    p.add_argument("--accuracy", type=float, default=0.0, help="Position accuracy in meters")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the GeoQuest CLI."""
    parser = argparse.ArgumentParser(prog="geoquest")
    parser.add_argument("--user", default=DEFAULT_USER_ID, help="Session/user id whose history to use")
    parser.add_argument(
        "--log-level",
        dest="log_level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override app.log_level for this run",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    near = sub.add_parser("nearby", help="List checkpoints in range of a position.")
    _add_position_args(near)
    near.add_argument("--buffer", type=float, default=None, help="Extra meters beyond each checkpoint radius")
    near.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    near.set_defaults(func=_cmd_nearby)

    qr = sub.add_parser("verify-qr", help="Unlock a checkpoint with a scanned QR string.")
    qr.add_argument("--checkpoint", required=True)
    qr.add_argument("--payload", required=True, help="e.g. checkpoint:cp-1:qr123456")
    _add_position_args(qr)
    qr.set_defaults(func=_cmd_verify_qr)

    quiz = sub.add_parser("quiz", help="Unlock a checkpoint by answering its quiz.")
    quiz.add_argument("--checkpoint", required=True)
    quiz.add_argument("--answers", required=True, help="Comma-separated option indices, e.g. 0,2")
    _add_position_args(quiz)
    quiz.set_defaults(func=_cmd_quiz)

    visit = sub.add_parser("visit", help="Record a visit directly.")
    visit.add_argument("--checkpoint", required=True)
    visit.add_argument("--method", choices=list(VISIT_METHODS), default="manual")
    _add_position_args(visit)
    visit.set_defaults(func=_cmd_visit)

    hist = sub.add_parser("history", help="Show, summarize, export or clear the visit history.")
    hist.add_argument("--method", choices=list(VISIT_METHODS), default=None)
    hist.add_argument("--by-date", dest="by_date", action="store_true")
    hist.add_argument("--stats", action="store_true")
    hist.add_argument("--export", default=None, help="Write export JSON to PATH ('-' for stdout)")
    hist.add_argument("--clear", action="store_true", help="Delete all visits (irreversible)")
    hist.set_defaults(func=_cmd_history)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m geoquest.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    func: Any = getattr(args, "func")
    try:
        return int(func(args))
    except GeoQuestError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
