#!/usr/bin/env python
"""Einfacher Scheduler für wiederkehrende Risikoanalysen ohne API-Server."""

from __future__ import annotations

import argparse
import asyncio

from smartmonitor.config import get_settings
from smartmonitor.db.session import init_models
from smartmonitor.models.domain import utcnow
from smartmonitor.services.monitor import Monitor
from smartmonitor.services.store import SqlAlchemyStore


async def scheduler_loop(args: argparse.Namespace) -> None:
    await init_models()
    monitor = Monitor(SqlAlchemyStore())
    await monitor.start()

    runs = 0
    while True:
        start = utcnow()
        assessment = await monitor.run_analysis_now(trigger="scheduled")
        runs += 1
        print(
            f"[{start.isoformat()}] Analyse #{assessment.sequence} abgeschlossen – "
            f"risk={assessment.risk_level.value} probability={assessment.failure_probability:.1f}% "
            f"active_alerts={len(monitor.list_active())}"
        )
        if args.interval_seconds <= 0 or (args.max_runs and runs >= args.max_runs):
            break
        await asyncio.sleep(args.interval_seconds)


def parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Periodische Risikoanalyse starten")
    parser.add_argument("--interval-seconds", type=float, default=settings.analysis_interval_seconds)
    parser.add_argument("--max-runs", type=int, default=0, help="0 = unbegrenzt")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    asyncio.run(scheduler_loop(args))


if __name__ == "__main__":
    main()
