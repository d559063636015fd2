#!/usr/bin/env python3
"""
Seed the data_dictionary reference table with the default enumerations
"""
import asyncio

from motor.motor_asyncio import AsyncIOMotorClient

from talent_pipeline.config import Settings
from talent_pipeline.enumerations import DICTIONARY_TABLE, default_dictionary_rows


async def seed_dictionary(settings: Settings):
    """Insert any default entry that is not present yet"""
    client = AsyncIOMotorClient(settings.mongo_url)
    db = client[settings.db_name]

    created = 0
    for row in default_dictionary_rows():
        existing = await db[DICTIONARY_TABLE].find_one({"entry_id": row["entry_id"]})
        if existing:
            continue
        await db[DICTIONARY_TABLE].insert_one(dict(row))
        created += 1
        print(f"✓ Created {row['dict_type']}: {row['name']}")

    print(f"\n✅ Dictionary seeded ({created} new entries)")
    client.close()


if __name__ == "__main__":
    asyncio.run(seed_dictionary(Settings.from_env()))
