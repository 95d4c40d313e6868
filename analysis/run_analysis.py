#!/usr/bin/env python
"""
Einmalige Risikoanalyse auf dem gespeicherten Zustand.

Example:
    PYTHONPATH=. .venv/bin/python analysis/run_analysis.py --output reports/latest_history.csv
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

import pandas as pd

from smartmonitor.db.session import init_models
from smartmonitor.services.monitor import Monitor
from smartmonitor.services.store import SqlAlchemyStore


async def _run(args: argparse.Namespace) -> Monitor:
    await init_models()
    monitor = Monitor(SqlAlchemyStore())
    await monitor.start()
    await monitor.run_analysis_now(trigger="manual")
    return monitor


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one risk analysis over the stored readings")
    parser.add_argument(
        "--output",
        type=Path,
        help="Optionaler Pfad für CSV-Export der Messhistorie",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    monitor = asyncio.run(_run(args))
    assessment = monitor.assessment
    history = monitor.history_frame()

    if history.empty:
        print("Keine Messdaten gefunden, Basisbewertung:")

    print("=== Risikobewertung ===")
    print(f"Stufe:          {assessment.risk_level.value}")
    print(f"Score:          {assessment.risk_score:.1f}")
    print(f"Ausfallrisiko:  {assessment.failure_probability:.1f}%")
    print(f"Zeit bis Fehler: {assessment.time_to_failure}")
    print(f"Konfidenz:      {assessment.confidence:.1f}%")
    print("Empfehlungen:")
    for item in assessment.recommendations:
        print(f"  - {item}")

    if not history.empty:
        pd.set_option("display.max_columns", None)
        print("\n=== Letzte Messungen ===")
        print(history.tail(5).to_string(index=False))

    if args.output and not history.empty:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        history.to_csv(args.output, index=False)
        print(f"Historie gespeichert unter {args.output}")


if __name__ == "__main__":
    main()
