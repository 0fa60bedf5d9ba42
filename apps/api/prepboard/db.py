from __future__ import annotations

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from prepboard.config import settings

if settings.is_sqlite():
  # aiosqlite connections are bound to the loop that opened them.
  engine = create_async_engine(settings.database_url, poolclass=NullPool)
else:
  engine = create_async_engine(settings.database_url, pool_pre_ping=True)

SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
