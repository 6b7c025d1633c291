"""Entry point: ``python -m georisk.run [command]``

Commands:
    backfill   (default) seed a sparse cache from the feed, log aggregates
    analyze    analyse one headline: ``analyze "Headline text"``
    recent     print the newest cached analyses as JSON lines
    snapshot   print all aggregate indicators as JSON

Configuration comes from the environment (and ``.env`` in the working
directory), see :class:`georisk.config.Config`.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from . import service
from .aggregate import Snapshot
from .config import Config, load_env_file
from .errors import GeoRiskError
from .log_redaction import apply_global_log_redaction

logger = logging.getLogger(__name__)


def _log_snapshot(snap: Snapshot) -> None:
    logger.info(
        "Global risk index %.1f / 10 (%s) over %d of %d records",
        snap.risk_index_display, snap.risk_label, snap.window_size, snap.record_count,
    )
    for ev in snap.critical:
        logger.info("  critical %.1f  %s", ev.score, ev.headline)
    for sec in snap.sectors:
        logger.info("  sector %-15s %d", sec.sector, sec.count)


def _cmd_backfill(cfg: Config, args: argparse.Namespace) -> int:
    report = service.bootstrap(cfg)
    logger.info(
        "Backfill done: %d analysed, %d failed, skipped=%s",
        len(report.analyzed), len(report.failed), report.skipped,
    )
    if report.snapshot is not None:
        _log_snapshot(report.snapshot)
    return 1 if report.failed and not report.analyzed else 0


def _cmd_analyze(cfg: Config, args: argparse.Namespace) -> int:
    if args.identity:
        assessment = service.get_cache(cfg).analyze_or_reuse(args.identity, args.headline)
        identity = args.identity
    else:
        identity, assessment = service.analyze_custom(cfg, args.headline)
    print(json.dumps({"identity": identity, "analysis": assessment.to_dict()}, indent=2))
    return 0


def _cmd_recent(cfg: Config, args: argparse.Namespace) -> int:
    for rec in service.list_recent(cfg, args.limit):
        print(json.dumps(rec.to_dict(), ensure_ascii=False))
    return 0


def _cmd_snapshot(cfg: Config, args: argparse.Namespace) -> int:
    snap = service.dashboard_snapshot(cfg)
    d = snap.to_dict()
    if not args.with_records:
        d.pop("records", None)
    print(json.dumps(d, indent=2, ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="georisk", description="Geopolitical headline risk cache")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("backfill", help="seed the cache from the news feed")

    p_an = sub.add_parser("analyze", help="analyse one headline")
    p_an.add_argument("headline")
    p_an.add_argument("--identity", default="", help="reuse/cache under this identity")

    p_recent = sub.add_parser("recent", help="list cached analyses")
    p_recent.add_argument("--limit", type=int, default=None)

    p_snap = sub.add_parser("snapshot", help="print aggregate indicators")
    p_snap.add_argument("--with-records", action="store_true")
    return parser


_COMMANDS = {
    "backfill": _cmd_backfill,
    "analyze": _cmd_analyze,
    "recent": _cmd_recent,
    "snapshot": _cmd_snapshot,
}


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    apply_global_log_redaction()
    load_env_file(Path.cwd() / ".env")

    args = build_parser().parse_args(argv)
    cfg = Config()
    try:
        return _COMMANDS[args.command or "backfill"](cfg, args)
    except GeoRiskError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    finally:
        service.reset()


if __name__ == "__main__":
    sys.exit(main())
