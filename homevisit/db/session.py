# homevisit/db/session.py

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from homevisit.core.config import settings

# One async engine per process
engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)

# Short-lived sessions; objects stay readable after commit
AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


class Base(DeclarativeBase):
    pass
