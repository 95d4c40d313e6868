#!/usr/bin/env python
"""
Spielt aufgezeichnete Sensordaten (CSV) durch den Monitor.

Example:
    PYTHONPATH=. .venv/bin/python analysis/replay_readings.py \\
        --csv data/serial_capture.csv --device ESP32-001
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from smartmonitor.config import get_settings
from smartmonitor.db.session import init_models
from smartmonitor.services.data_ingest import ingest_csv
from smartmonitor.services.monitor import Monitor
from smartmonitor.services.store import InMemoryStore, SqlAlchemyStore


async def run(args: argparse.Namespace) -> None:
    if args.dry_run:
        store = InMemoryStore()
    else:
        await init_models()
        store = SqlAlchemyStore()

    monitor = Monitor(store)
    await monitor.start()
    summary = await ingest_csv(args.csv, monitor, device_id=args.device)
    assessment = await monitor.run_analysis_now(trigger="replay")

    print(
        "Replay Result:",
        f"rows={summary['rows']}",
        f"ingested={summary['ingested']}",
        f"rejected={summary['rejected']}",
        f"alerts_created={summary['alerts_created']}",
    )
    for line in summary["errors"][: args.show_errors]:
        print(f"  ! {line}")
    print(
        f"Risiko: {assessment.risk_level.value} "
        f"({assessment.failure_probability:.1f}%, {assessment.time_to_failure})"
    )
    print(f"Aktive Alerts: {len(monitor.list_active())}")


def parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Replay recorded readings through the monitor")
    parser.add_argument("--csv", type=Path, required=True, help="Pfad zur CSV-Datei")
    parser.add_argument("--device", default=settings.device_id, help="Geräte-ID, falls die CSV keine enthält")
    parser.add_argument("--show-errors", type=int, default=10, help="Anzahl angezeigter Fehlerzeilen")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Nur im Speicher auswerten, nichts in die Datenbank schreiben",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
