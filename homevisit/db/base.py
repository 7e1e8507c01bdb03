# homevisit/db/base.py

"""
Imports every ORM model so Base.metadata knows all tables.
Add new models here.
"""
from sqlalchemy.ext.asyncio import AsyncEngine

from homevisit.db.models.appointment import Appointment  # noqa: F401
from homevisit.db.models.patient import Patient  # noqa: F401
from homevisit.db.session import Base, engine


async def init_db(bind: AsyncEngine = engine):
    """Create all tables."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
