#!/usr/bin/env python3
"""
Initialize database with all tables
"""
import asyncio
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from standup_scribe.config import settings
from standup_scribe.database import init_models
from standup_scribe.models import Base


async def init_database():
    """Create all tables"""
    print(f"Initializing database at {settings.database_url}")
    print(f"Creating tables: {', '.join([t.name for t in Base.metadata.sorted_tables])}")

    await init_models()

    print("Database initialized successfully")


if __name__ == "__main__":
    asyncio.run(init_database())
