#!/usr/bin/env python
"""Kleiner Snapshot der gespeicherten Alerts."""

from __future__ import annotations

import asyncio

from smartmonitor.db.session import AsyncSessionLocal
from smartmonitor.models.models import AlertRecord


async def main() -> None:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            AlertRecord.__table__.select().order_by(AlertRecord.created_at.desc()).limit(10)
        )
        rows = result.fetchall()
        if not rows:
            print("Keine Alerts gespeichert.")
            return
        print(f"Top {len(rows)} Alerts:\n")
        for r in rows:
            print(
                f"Sensor={r.sensor} state={r.state} severity={r.severity} "
                f"value={r.value:g} threshold={r.threshold:g} created={r.created_at}"
            )


if __name__ == "__main__":
    asyncio.run(main())
