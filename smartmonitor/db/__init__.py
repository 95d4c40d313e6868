from smartmonitor.db.session import AsyncSessionLocal, engine, init_models

__all__ = ["AsyncSessionLocal", "engine", "init_models"]
