#!/usr/bin/env python3
"""
Event Pass Generator
Renders personalized event passes (details + QR code) for every member of a
paid team, publishes them and emails the links to the team captain.

Data comes from Supabase by default, or from CSV/Excel exports with
--teams/--members (results are written back to the same files).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from config import Settings
from models import PassRequest

SAMPLE_REQUEST = PassRequest(
    team_id="GT-2026-4496",
    team_name="RoboWarriors",
    event_name="Robo Race",
    college_name="SRM College of Engineering",
    participant_name="Kate Marlowe",
    participant_email="kate@example.com",
    participant_phone="9876543211",
    payment_status="PAID",
)


def _store_from_args(args, settings: Settings):
    if args.teams or args.members:
        if not (args.teams and args.members):
            raise SystemExit("--teams and --members must be given together")
        from data_loaders import load_team_store

        return load_team_store(args.teams, args.members)
    from data_loaders import SupabaseTeamStore

    if not settings.supabase_url or not settings.supabase_service_key:
        raise SystemExit("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required (or use --teams/--members)")
    return SupabaseTeamStore(settings.supabase_url, settings.supabase_service_key)


def _save_store(args, store) -> None:
    if args.teams and args.members:
        store.save(args.teams, args.members)
        print(f"Updated '{args.teams}' and '{args.members}'")


def cmd_team(args, settings: Settings) -> int:
    from orchestrator import build_orchestrator

    store = _store_from_args(args, settings)
    orchestrator = build_orchestrator(settings, store=store)
    result = asyncio.run(orchestrator.run_for_team(args.team_id, force=args.force))
    _save_store(args, store)
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


def cmd_pending(args, settings: Settings) -> int:
    from orchestrator import build_orchestrator

    store = _store_from_args(args, settings)
    orchestrator = build_orchestrator(settings, store=store)
    results = asyncio.run(orchestrator.run_pending(args.limit or settings.batch_limit))
    _save_store(args, store)
    print(f"Processed {len(results)} team(s)")
    print(json.dumps([r.to_dict() for r in results], indent=2))
    return 0 if all(r.success for r in results) else 1


def cmd_render(args, settings: Settings) -> int:
    from pass_generator import PassRenderer

    renderer = PassRenderer(settings.template_path, settings.bold_font_path, settings.regular_font_path)
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(renderer.render(SAMPLE_REQUEST))
    print(f"Sample pass for {SAMPLE_REQUEST.participant_name} written to '{out}'")
    return 0


def cmd_scan(args, settings: Settings) -> int:
    from attendance import check_in
    from errors import InvalidPayloadError, MemberNotFoundError

    store = _store_from_args(args, settings)
    try:
        result = check_in(store, args.payload, is_present=not args.absent)
    except (InvalidPayloadError, MemberNotFoundError) as e:
        print(f"Check-in failed: {e}", file=sys.stderr)
        return 1
    _save_store(args, store)
    state = "present" if result.is_present else "absent"
    print(f"{result.member.name} ({result.team.display_id}) marked {state} at {result.marked_at}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate and deliver event passes")
    parser.add_argument("--teams", help="Teams CSV/Excel export (instead of Supabase)")
    parser.add_argument("--members", help="Team members CSV/Excel export (instead of Supabase)")
    parser.add_argument("--template", help="Pass template image (default: PASS_TEMPLATE_PATH)")
    parser.add_argument("--local-dir", help="Also save every pass into this directory")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("team", help="Generate passes for one team")
    p.add_argument("team_id")
    p.add_argument("--force", action="store_true", help="Regenerate even if already generated")
    p.set_defaults(func=cmd_team)

    p = sub.add_parser("pending", help="Generate passes for paid teams without passes")
    p.add_argument("-n", "--limit", type=int, help="Max teams this run (default: PASS_BATCH_LIMIT)")
    p.set_defaults(func=cmd_pending)

    p = sub.add_parser("render", help="Render a sample pass to a local file")
    p.add_argument("-o", "--out", default="output/sample-pass.jpg")
    p.set_defaults(func=cmd_render)

    p = sub.add_parser("scan", help="Check a participant in from a scanned QR payload")
    p.add_argument("payload", help="QR payload JSON")
    p.add_argument("--absent", action="store_true", help="Clear attendance instead")
    p.set_defaults(func=cmd_scan)
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    from dotenv import load_dotenv

    load_dotenv()
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    if args.template:
        settings = replace(settings, template_path=Path(args.template))
    if args.local_dir:
        settings = replace(settings, local_dir=Path(args.local_dir))
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args, settings)


if __name__ == "__main__":
    sys.exit(main())
