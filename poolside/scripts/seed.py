"""
Seed script. Creates the shared default rules and a demo pool.
Run with: python -m poolside.scripts.seed
"""
import asyncio

from sqlalchemy import select
from poolside.core.database import AsyncSessionLocal, engine, Base
from poolside.models.models import Pool, Contestant
from poolside.services.rule_seeder import seed_default_rules

DEMO_POOL = {"name": "Big Brother 27 Pool", "season_number": 27}

HOUSEGUESTS = [
    "Ashley", "Ava", "Cliffton", "Isaiah", "Jimmy", "Katherine", "Keanu", "Kelley",
    "Lauren", "Mickey", "Morgan", "Rachel", "Rylie", "Vince", "Will", "Zach",
]


async def seed():
    # Create tables if they don't exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        rules = await seed_default_rules(db)
        print(f"  Seeded {len(rules)} default scoring rules.")

        result = await db.execute(select(Pool).where(Pool.name == DEMO_POOL["name"]))
        if result.scalar_one_or_none():
            print(f"  Pool '{DEMO_POOL['name']}' already exists, skipping.")
        else:
            pool = Pool(**DEMO_POOL)
            db.add(pool)
            await db.flush()
            for order, name in enumerate(HOUSEGUESTS, start=1):
                db.add(Contestant(pool_id=pool.id, name=name, sort_order=order))
            print(f"  Created pool '{pool.name}' with {len(HOUSEGUESTS)} houseguests.")

        await db.commit()

    print("\nSeed complete!")


if __name__ == "__main__":
    asyncio.run(seed())
