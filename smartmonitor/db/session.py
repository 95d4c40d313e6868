# smartmonitor/db/session.py
import os
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from smartmonitor.models.models import Base

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_SQLITE = f"sqlite+aiosqlite:///{os.path.join(BASE_DIR, 'smartmonitor.sqlite')}"
DB_URL = os.getenv("DB_URL", DEFAULT_SQLITE)

engine = create_async_engine(DB_URL, echo=False, future=True)
AsyncSessionLocal = sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


async def init_models(bind=None) -> None:
    # Create tables (only relevant on first start)
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

