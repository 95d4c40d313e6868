#!/usr/bin/env python
"""Hilfsskript: setzt die SQLite-Datenbank zurück."""

from __future__ import annotations

import asyncio

from smartmonitor.db.session import engine


async def main() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(lambda connection: connection.exec_driver_sql("DROP TABLE IF EXISTS alerts"))
        await conn.run_sync(lambda connection: connection.exec_driver_sql("DROP TABLE IF EXISTS sensor_readings"))
        await conn.run_sync(lambda connection: connection.exec_driver_sql("DROP TABLE IF EXISTS analysis_runs"))
    print("SQLite-DB zurückgesetzt.")


if __name__ == "__main__":
    asyncio.run(main())
