"""
Operator CLI for the prescription portal: schema setup, seeding, reports and
the API server.

    python -m rxportal.cli init-db --seed --fake 200
    python -m rxportal.cli top-drugs --from 2025-01-01T00:00:00Z --to 2026-01-01T00:00:00Z
    python -m rxportal.cli prescriptions --physician-id 1
    python -m rxportal.cli serve
"""

import argparse
import sys

from rxportal.config import (
    DEFAULT_PRESCRIPTION_LIMIT,
    DEFAULT_TOP_DRUGS_LIMIT,
    MAX_PREVIEW_ROWS,
    get_env,
)
from rxportal.database import init_engine
from rxportal.models import PrescriptionFilter, parse_timestamp
from rxportal.reporting import prescriptions_frame, render, top_drugs_frame
from rxportal.repository import SqlRepository
from rxportal.schema import create_schema
from rxportal.seed import seed_demo, seed_fake


def _engine():
    return init_engine(get_env("DATABASE_URL"))


def cmd_init_db(args) -> int:
    engine = _engine()
    create_schema(engine)
    print("[init] Schema ready.")
    if args.seed:
        seed_demo(engine)
    if args.fake:
        seed_fake(engine, num_prescriptions=args.fake)
    return 0


def cmd_top_drugs(args) -> int:
    try:
        from_ = parse_timestamp(args.from_)
        to = parse_timestamp(args.to)
    except ValueError as e:
        print(f"[ERROR] Invalid timestamp: {e}", file=sys.stderr)
        return 2
    if to <= from_:
        print("[ERROR] --to must be after --from", file=sys.stderr)
        return 2

    repo = SqlRepository(_engine())
    items = repo.top_drugs(from_, to, args.limit, args.patient_id)

    scope = f"patient {args.patient_id}" if args.patient_id else "all patients"
    print(f"\n[Top drugs {args.from_} .. {args.to} ({scope})]")
    print(render(top_drugs_frame(items), MAX_PREVIEW_ROWS))
    return 0


def cmd_prescriptions(args) -> int:
    repo = SqlRepository(_engine())
    items = repo.list_prescriptions(PrescriptionFilter(
        patient_id=args.patient_id,
        physician_id=args.physician_id,
        limit=args.limit,
    ))
    print(f"\n[Prescriptions (up to {MAX_PREVIEW_ROWS} rows)]")
    print(render(prescriptions_frame(items), MAX_PREVIEW_ROWS))
    return 0


def cmd_serve(_args) -> int:
    from rxportal.api.app import main as serve
    serve()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rxportal", description="Prescription portal tools")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="create tables (and optionally seed data)")
    p.add_argument("--seed", action="store_true", help="insert the fixed demo dataset")
    p.add_argument("--fake", type=int, default=0, metavar="N", help="generate N random prescriptions")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("top-drugs", help="top drugs by total quantity over [from, to)")
    p.add_argument("--from", dest="from_", required=True, help="RFC3339 start (inclusive)")
    p.add_argument("--to", required=True, help="RFC3339 end (exclusive)")
    p.add_argument("--limit", type=int, default=DEFAULT_TOP_DRUGS_LIMIT)
    p.add_argument("--patient-id", type=int, default=None)
    p.set_defaults(func=cmd_top_drugs)

    p = sub.add_parser("prescriptions", help="newest prescriptions")
    p.add_argument("--patient-id", type=int, default=None)
    p.add_argument("--physician-id", type=int, default=None)
    p.add_argument("--limit", type=int, default=DEFAULT_PRESCRIPTION_LIMIT)
    p.set_defaults(func=cmd_prescriptions)

    p = sub.add_parser("serve", help="run the REST API server")
    p.set_defaults(func=cmd_serve)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
