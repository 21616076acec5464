import unittest

from sqlalchemy import select

from poolside.core.errors import (
    IncompleteWeekError, ConstraintViolation, JuryPhaseConflict, StaleWeekError,
    SeasonLockedError, ValidationError, NotFoundError,
)
from poolside.models.models import Contestant, SpecialEvent, Pool, ScoringRule
from poolside.services.ceremony import WeekCeremony, CeremonyStep
from poolside.services.scoring_engine import get_pool_points
from poolside.services.status_resolver import get_status_as_of_week
from poolside.services.week_lifecycle import (
    SpecialEventInput, save_draft, submit_week, get_week_event_record, mark_week_complete,
    reopen_week, clear_week, get_week_state, refresh_special_event_points,
)

from tests.support import DatabaseTestCase


class WeekLifecycleTestCase(DatabaseTestCase):
    async def is_active(self, name) -> bool:
        result = await self.db.execute(select(Contestant.is_active).where(Contestant.id == self.ids[name]))
        return result.scalar_one()

    async def test_draft_accepts_partial_week(self):
        ceremony = WeekCeremony(1, cycles=[self.cycle(hoh="Alice", nominees=["Bob"])])
        record = await save_draft(self.db, self.pool_id, ceremony)
        await self.db.commit()

        self.assertTrue(record.is_draft)
        self.assertFalse(record.is_complete)
        self.assertEqual(record.version, 1)

        _, state = await get_week_state(self.db, self.pool_id, 1)
        self.assertEqual(state.cycles[0].current_step, CeremonyStep.AWAITING_NOMINEES)
        self.assertFalse(state.can_submit)

    async def test_draft_rejects_hard_constraint(self):
        ceremony = WeekCeremony(1, cycles=[self.cycle(hoh="Alice", nominees=["Alice", "Bob"])])
        with self.assertRaises(ConstraintViolation):
            await save_draft(self.db, self.pool_id, ceremony)
        await self.db.rollback()
        self.assertIsNone(await get_week_event_record(self.db, self.pool_id, 1))

    async def test_incomplete_submit_leaves_draft_untouched(self):
        draft = WeekCeremony(1, cycles=[self.cycle(hoh="Alice", nominees=["Bob", "Cara"])])
        await save_draft(self.db, self.pool_id, draft)
        await self.db.commit()

        attempt = WeekCeremony(1, cycles=[self.cycle(hoh="Dan", nominees=["Bob", "Cara"], pov="Bob")])
        with self.assertRaises(IncompleteWeekError) as ctx:
            await submit_week(self.db, self.pool_id, attempt)
        await self.db.rollback()
        self.assertEqual({i.step for i in ctx.exception.issues}, {"veto_decision", "eviction"})

        record = await get_week_event_record(self.db, self.pool_id, 1)
        self.assertTrue(record.is_draft)
        self.assertEqual(record.cycles[0]["hoh_winner"], self.ids["Alice"])

    async def test_submit_marks_complete_and_syncs_status(self):
        record = await submit_week(self.db, self.pool_id, self.regular_week(1, "Alice", ["Bob", "Cara"], "Cara"))
        await self.db.commit()

        self.assertFalse(record.is_draft)
        self.assertTrue(record.is_complete)
        self.assertFalse(await self.is_active("Cara"))
        self.assertTrue(await self.is_active("Bob"))

        status = await get_status_as_of_week(self.db, self.pool_id, self.ids["Cara"], 1)
        self.assertFalse(status.active)
        self.assertEqual(status.reason, "evicted")

    async def test_arena_scenario(self):
        ceremony = WeekCeremony(1, ai_arena_enabled=True, cycles=[
            self.cycle(hoh="Alice", nominees=["Bob", "Cara", "Dan"], pov="Eve", pov_used=False, evicted="Dan"),
        ])
        with self.assertRaises(ValidationError) as ctx:
            await submit_week(self.db, self.pool_id, ceremony)
        await self.db.rollback()
        self.assertEqual([i.step for i in ctx.exception.issues], ["arena"])

        ceremony.cycles[0].ai_arena_winner = self.ids["Bob"]
        await submit_week(self.db, self.pool_id, ceremony)
        await self.db.commit()
        self.assertNotIn(self.ids["Bob"], ceremony.cycles[0].final_nominee_set())

        points = await get_pool_points(self.db, self.pool_id)
        self.assertEqual(points[self.ids["Bob"]].total, 5)

    async def test_evicted_contestant_is_not_eligible_later(self):
        await submit_week(self.db, self.pool_id, self.regular_week(1, "Alice", ["Bob", "Cara"], "Cara"))
        await self.db.commit()

        with self.assertRaises(IncompleteWeekError) as ctx:
            await submit_week(self.db, self.pool_id, self.regular_week(2, "Cara", ["Bob", "Dan"], "Bob"))
        await self.db.rollback()
        self.assertEqual([i.step for i in ctx.exception.issues], ["roster"])

    async def test_only_one_jury_week(self):
        week3 = self.regular_week(3, "Alice", ["Bob", "Cara"], "Cara")
        week3.is_jury_phase = True
        await save_draft(self.db, self.pool_id, week3)
        await self.db.commit()

        week4 = self.regular_week(4, "Dan", ["Bob", "Eve"], "Eve")
        week4.is_jury_phase = True
        with self.assertRaises(JuryPhaseConflict) as ctx:
            await save_draft(self.db, self.pool_id, week4)
        await self.db.rollback()
        self.assertEqual(ctx.exception.existing_week, 3)
        self.assertIsNone(await get_week_event_record(self.db, self.pool_id, 4))

        # Re-saving the jury week itself is fine
        await save_draft(self.db, self.pool_id, week3, expected_version=1)

    async def test_stale_version_rejected(self):
        ceremony = WeekCeremony(1, cycles=[self.cycle(hoh="Alice")])
        await save_draft(self.db, self.pool_id, ceremony, expected_version=0)
        await save_draft(self.db, self.pool_id, ceremony, expected_version=1)
        await self.db.commit()

        with self.assertRaises(StaleWeekError) as ctx:
            await save_draft(self.db, self.pool_id, ceremony, expected_version=1)
        self.assertEqual((ctx.exception.expected, ctx.exception.actual), (1, 2))

    async def test_special_events_replaced_on_submit(self):
        week = self.regular_week(2, "Alice", ["Bob", "Cara"], "Cara")
        await submit_week(self.db, self.pool_id, week, special_events=[
            SpecialEventInput(self.ids["Dan"], "won_prize"),
            SpecialEventInput(self.ids["Eve"], "custom", points=4, description="Wore the costume all week"),
        ])
        await self.db.commit()

        await submit_week(self.db, self.pool_id, week, special_events=[
            SpecialEventInput(self.ids["Gail"], "self_evicted"),
        ])
        await self.db.commit()

        result = await self.db.execute(select(SpecialEvent).where(SpecialEvent.pool_id == self.pool_id))
        events = result.scalars().all()
        self.assertEqual([(e.contestant_id, e.event_type, e.points_awarded) for e in events],
                         [(self.ids["Gail"], "self_evicted", -10)])
        self.assertFalse(await self.is_active("Gail"))

    async def test_special_event_must_be_enabled(self):
        pool = (await self.db.execute(select(Pool).where(Pool.id == self.pool_id))).scalar_one()
        pool.enabled_special_events = ["won_prize"]
        await self.db.commit()

        with self.assertRaises(ValidationError):
            await submit_week(self.db, self.pool_id, self.regular_week(1, "Alice", ["Bob", "Cara"], "Cara"),
                              special_events=[SpecialEventInput(self.ids["Dan"], "in_showmance")])

    async def test_mark_complete_and_reopen(self):
        await save_draft(self.db, self.pool_id, self.regular_week(1, "Alice", ["Bob", "Cara"], "Cara"))
        record = await mark_week_complete(self.db, self.pool_id, 1)
        self.assertTrue(record.is_complete)
        record = await reopen_week(self.db, self.pool_id, 1)
        self.assertFalse(record.is_complete)
        self.assertEqual(record.version, 3)

        with self.assertRaises(NotFoundError):
            await mark_week_complete(self.db, self.pool_id, 9)

    async def test_clear_week_restores_status(self):
        await submit_week(self.db, self.pool_id, self.regular_week(1, "Alice", ["Bob", "Cara"], "Cara"),
                          special_events=[SpecialEventInput(self.ids["Dan"], "won_prize")])
        await self.db.commit()
        self.assertFalse(await self.is_active("Cara"))

        await clear_week(self.db, self.pool_id, 1)
        await self.db.commit()

        self.assertIsNone(await get_week_event_record(self.db, self.pool_id, 1))
        result = await self.db.execute(select(SpecialEvent).where(SpecialEvent.pool_id == self.pool_id))
        self.assertEqual(result.scalars().all(), [])
        self.assertTrue(await self.is_active("Cara"))
        points = await get_pool_points(self.db, self.pool_id)
        self.assertTrue(all(p.total == 0 for p in points.values()))

    async def test_refresh_special_event_points(self):
        await submit_week(self.db, self.pool_id, self.regular_week(1, "Alice", ["Bob", "Cara"], "Cara"),
                          special_events=[SpecialEventInput(self.ids["Dan"], "won_prize")])
        await self.db.commit()

        self.db.add(ScoringRule(pool_id=self.pool_id, category="special_events", subcategory="won_prize", points=6))
        await self.db.flush()

        self.assertEqual(await refresh_special_event_points(self.db, self.pool_id), 1)
        points = await get_pool_points(self.db, self.pool_id)
        self.assertEqual(points[self.ids["Dan"]].total, 6)

    async def test_locked_season_rejects_writes(self):
        pool = (await self.db.execute(select(Pool).where(Pool.id == self.pool_id))).scalar_one()
        pool.season_complete = True
        await self.db.commit()

        with self.assertRaises(SeasonLockedError):
            await save_draft(self.db, self.pool_id, WeekCeremony(1))
        with self.assertRaises(SeasonLockedError):
            await clear_week(self.db, self.pool_id, 1)


if __name__ == "__main__":
    unittest.main()
