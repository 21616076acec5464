import unittest

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from poolside.core.database import Base
from poolside.models.models import (
    Pool, Contestant, ScoringRule, WeekEventRecord, SpecialEvent,
)
from poolside.services.ceremony import EvictionCycle, WeekCeremony
from poolside.services.rule_seeder import DEFAULT_RULES, seed_default_rules
from poolside.services.scoring_rules import ScoringRuleTable


# --- In-memory builders for the pure functions ---

def make_rule(rule_id, category, subcategory, points, pool_id=None, is_active=True, sort_order=0):
    return ScoringRule(
        id=rule_id, pool_id=pool_id, category=category, subcategory=subcategory,
        points=points, is_active=is_active, sort_order=sort_order,
    )


def default_rules() -> list[ScoringRule]:
    return [ScoringRule(id=i, pool_id=None, is_active=True, **data) for i, data in enumerate(DEFAULT_RULES, start=1)]


def default_table(extra=(), pool_id=None) -> ScoringRuleTable:
    return ScoringRuleTable(default_rules() + list(extra), pool_id=pool_id)


def make_contestants(*names, is_active=True) -> dict[str, Contestant]:
    return {
        name: Contestant(id=i, pool_id=1, name=name, is_active=is_active, sort_order=i)
        for i, name in enumerate(names, start=1)
    }


def cycle(**fields) -> dict:
    return EvictionCycle(**fields).to_dict()


def make_week(number, *cycles, **flags) -> WeekEventRecord:
    return WeekEventRecord(pool_id=1, week_number=number, cycles=list(cycles), **flags)


def make_special(event_id, contestant_id, week, event_type, points=0) -> SpecialEvent:
    return SpecialEvent(
        id=event_id, pool_id=1, contestant_id=contestant_id, week_number=week,
        event_type=event_type, points_awarded=points,
    )


# --- Database-backed tests ---

class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """Fresh in-memory database per test, with the default rules seeded."""

    houseguests = ("Alice", "Bob", "Cara", "Dan", "Eve", "Finn", "Gail", "Hank")

    async def asyncSetUp(self):
        self.engine = create_async_engine(
            "sqlite+aiosqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.Session = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self.db = self.Session()

        await seed_default_rules(self.db)
        pool = Pool(name="Test Pool", season_number=27, max_nominees=4, picks_per_team=5, enabled_special_events=[])
        self.db.add(pool)
        await self.db.flush()
        self.pool_id = pool.id

        self.ids: dict[str, int] = {}
        for order, name in enumerate(self.houseguests, start=1):
            contestant = Contestant(pool_id=self.pool_id, name=name, sort_order=order, is_active=True)
            self.db.add(contestant)
            await self.db.flush()
            self.ids[name] = contestant.id
        await self.db.commit()

    async def asyncTearDown(self):
        await self.db.close()
        await self.engine.dispose()

    def cycle(self, hoh=None, nominees=(), pov=None, pov_used=None, pov_used_on=None,
              replacement=None, arena=None, evicted=None) -> EvictionCycle:
        """Build a cycle from houseguest names."""
        def cid(name):
            return self.ids[name] if name is not None else None

        return EvictionCycle(
            hoh_winner=cid(hoh),
            nominees=[self.ids[n] for n in nominees],
            pov_winner=cid(pov),
            pov_used=pov_used,
            pov_used_on=cid(pov_used_on),
            replacement_nominee=cid(replacement),
            ai_arena_winner=cid(arena),
            evicted=evicted if evicted in (None, "no-eviction") else self.ids[evicted],
        )

    def regular_week(self, number, hoh, nominees, evicted, pov=None) -> WeekCeremony:
        return WeekCeremony(
            week_number=number,
            cycles=[self.cycle(hoh=hoh, nominees=nominees, pov=pov or hoh, pov_used=False, evicted=evicted)],
        )
