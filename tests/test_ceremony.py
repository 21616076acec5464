import unittest

from poolside.core.errors import ConstraintViolation, IncompleteWeekError, ValidationError
from poolside.models.models import NO_EVICTION
from poolside.services.ceremony import (
    CeremonyStep, EvictionCycle, WeekCeremony,
    current_step, check_constraints, unmet_steps, ensure_constraints,
    validate_for_submit, describe_state, replacement_candidates,
)

ROSTER = [1, 2, 3, 4, 5, 6, 7, 8]


def complete_cycle(**overrides) -> EvictionCycle:
    fields = dict(hoh_winner=1, nominees=[2, 3], pov_winner=4, pov_used=False, evicted=3)
    fields.update(overrides)
    return EvictionCycle(**fields)


class StepDerivationTestCase(unittest.TestCase):
    def test_steps_follow_populated_fields(self):
        cycle = EvictionCycle()
        self.assertEqual(current_step(cycle), CeremonyStep.AWAITING_HOH)
        cycle.hoh_winner = 1
        self.assertEqual(current_step(cycle), CeremonyStep.AWAITING_NOMINEES)
        cycle.nominees = [2]
        self.assertEqual(current_step(cycle), CeremonyStep.AWAITING_NOMINEES)
        cycle.nominees = [2, 3]
        self.assertEqual(current_step(cycle), CeremonyStep.AWAITING_VETO)
        cycle.pov_winner = 2
        self.assertEqual(current_step(cycle), CeremonyStep.AWAITING_VETO_DECISION)
        cycle.pov_used = True
        self.assertEqual(current_step(cycle), CeremonyStep.AWAITING_VETO_DECISION)
        cycle.pov_used_on = 2
        self.assertEqual(current_step(cycle), CeremonyStep.AWAITING_REPLACEMENT)
        cycle.replacement_nominee = 4
        self.assertEqual(current_step(cycle), CeremonyStep.AWAITING_EVICTION)
        cycle.evicted = 3
        self.assertEqual(current_step(cycle), CeremonyStep.COMPLETE)

    def test_unused_veto_skips_replacement(self):
        cycle = EvictionCycle(hoh_winner=1, nominees=[2, 3], pov_winner=5, pov_used=False)
        self.assertEqual(current_step(cycle), CeremonyStep.AWAITING_EVICTION)

    def test_arena_needs_three_nominees_after_veto(self):
        cycle = EvictionCycle(hoh_winner=1, nominees=[2, 3, 4], pov_winner=5, pov_used=False)
        self.assertEqual(current_step(cycle, arena_enabled=True), CeremonyStep.AWAITING_ARENA)
        self.assertEqual(current_step(cycle, arena_enabled=False), CeremonyStep.AWAITING_EVICTION)

        two = EvictionCycle(hoh_winner=1, nominees=[2, 3], pov_winner=5, pov_used=False)
        self.assertEqual(current_step(two, arena_enabled=True), CeremonyStep.AWAITING_EVICTION)

        cycle.ai_arena_winner = 2
        self.assertEqual(current_step(cycle, arena_enabled=True), CeremonyStep.AWAITING_EVICTION)

    def test_post_veto_nominees_swap_in_replacement(self):
        cycle = EvictionCycle(
            hoh_winner=1, nominees=[2, 3, 4], pov_winner=2, pov_used=True,
            pov_used_on=2, replacement_nominee=5, ai_arena_winner=4,
        )
        self.assertEqual(cycle.post_veto_nominees(), [3, 4, 5])
        self.assertEqual(cycle.final_nominee_set(), [3, 5])


class ConstraintTestCase(unittest.TestCase):
    def test_hoh_cannot_be_nominated(self):
        ceremony = WeekCeremony(1, cycles=[EvictionCycle(hoh_winner=1, nominees=[1, 2])])
        issues = check_constraints(ceremony)
        self.assertEqual([i.field for i in issues], ["nominees"])
        with self.assertRaises(ConstraintViolation):
            ensure_constraints(ceremony)

    def test_nominee_limit_comes_from_pool(self):
        ceremony = WeekCeremony(1, cycles=[EvictionCycle(hoh_winner=1, nominees=[2, 3, 4])], max_nominees=2)
        self.assertEqual(len(check_constraints(ceremony)), 1)
        ceremony.max_nominees = 4
        self.assertEqual(check_constraints(ceremony), [])

    def test_duplicate_nominee(self):
        ceremony = WeekCeremony(1, cycles=[EvictionCycle(hoh_winner=1, nominees=[2, 2])])
        self.assertTrue(any("twice" in i.message for i in check_constraints(ceremony)))

    def test_replacement_must_be_disjoint(self):
        base = dict(hoh_winner=1, nominees=[2, 3], pov_winner=4, pov_used=True, pov_used_on=2)
        for blocked in (1, 2, 3, 4):
            ceremony = WeekCeremony(1, cycles=[EvictionCycle(replacement_nominee=blocked, **base)])
            self.assertEqual(
                [i.field for i in check_constraints(ceremony)], ["replacement_nominee"], f"replacement {blocked}",
            )
        ceremony = WeekCeremony(1, cycles=[EvictionCycle(replacement_nominee=5, **base)])
        self.assertEqual(check_constraints(ceremony), [])

    def test_replacement_candidates(self):
        cycle = EvictionCycle(hoh_winner=1, nominees=[2, 3], pov_winner=4, pov_used=True, pov_used_on=2)
        self.assertEqual(replacement_candidates(cycle, ROSTER), [5, 6, 7, 8])

    def test_final_week_runner_up_differs_from_winner(self):
        ceremony = WeekCeremony(10, is_final_week=True, winner=3, runner_up=3)
        self.assertEqual([i.field for i in check_constraints(ceremony)], ["runner_up"])


class SubmitValidationTestCase(unittest.TestCase):
    def test_complete_week_passes(self):
        validate_for_submit(WeekCeremony(1, cycles=[complete_cycle()]), ROSTER)

    def test_incomplete_week_names_every_unmet_step(self):
        ceremony = WeekCeremony(3, cycles=[complete_cycle()], is_double_eviction=True)
        with self.assertRaises(IncompleteWeekError) as ctx:
            validate_for_submit(ceremony, ROSTER)
        steps = {(i.cycle, i.step) for i in ctx.exception.issues}
        self.assertEqual(steps, {
            (2, "hoh"), (2, "nominees"), (2, "veto"), (2, "veto_decision"), (2, "eviction"),
        })
        self.assertIsInstance(ctx.exception, ValidationError)
        self.assertIn("veto_decision", str(ctx.exception))

    def test_evicted_must_be_a_final_nominee(self):
        saved = complete_cycle(nominees=[2, 3], pov_used=True, pov_used_on=2, replacement_nominee=5, evicted=2)
        issues = unmet_steps(WeekCeremony(1, cycles=[saved]))
        self.assertEqual([i.step for i in issues], ["eviction"])

        outsider = complete_cycle(evicted=6)
        self.assertEqual([i.step for i in unmet_steps(WeekCeremony(1, cycles=[outsider]))], ["eviction"])

    def test_no_eviction_sentinel(self):
        ceremony = WeekCeremony(1, cycles=[complete_cycle(evicted=NO_EVICTION)])
        validate_for_submit(ceremony, ROSTER)
        self.assertEqual(ceremony.evicted_ids(), [])

    def test_arena_winner_required_then_protected(self):
        cycle = complete_cycle(nominees=[2, 3, 4], evicted=4)
        ceremony = WeekCeremony(5, cycles=[cycle], ai_arena_enabled=True)
        with self.assertRaises(IncompleteWeekError) as ctx:
            validate_for_submit(ceremony, ROSTER)
        self.assertEqual([i.step for i in ctx.exception.issues], ["arena"])

        cycle.ai_arena_winner = 2
        validate_for_submit(ceremony, ROSTER)
        self.assertNotIn(2, cycle.final_nominee_set())

        cycle.evicted = 2
        self.assertEqual([i.step for i in unmet_steps(ceremony)], ["eviction"])

    def test_arena_only_runs_in_first_cycle(self):
        second = complete_cycle(hoh_winner=5, nominees=[1, 2, 4], pov_winner=6, evicted=4)
        ceremony = WeekCeremony(6, cycles=[complete_cycle(), second], is_double_eviction=True, ai_arena_enabled=True)
        self.assertEqual(unmet_steps(ceremony, ROSTER), [])

    def test_later_cycle_cannot_use_earlier_evictee(self):
        second = complete_cycle(hoh_winner=5, nominees=[3, 6], pov_winner=7, evicted=6)
        ceremony = WeekCeremony(4, cycles=[complete_cycle(), second], is_double_eviction=True)
        issues = unmet_steps(ceremony, ROSTER)
        self.assertEqual([(i.cycle, i.step) for i in issues], [(2, "roster")])

    def test_final_week_ballot(self):
        ceremony = WeekCeremony(12, is_final_week=True, runner_up=2)
        with self.assertRaises(IncompleteWeekError) as ctx:
            validate_for_submit(ceremony, ROSTER)
        self.assertEqual([i.field for i in ctx.exception.issues], ["winner"])

        ceremony.winner = 1
        ceremony.americas_favorite = 9  # evicted long ago; still eligible
        validate_for_submit(ceremony, ROSTER)


class FlatShapeTestCase(unittest.TestCase):
    def test_flat_fields_map_to_cycles(self):
        flat = {
            "week_number": 7,
            "is_double_eviction": True,
            "hoh_winner": 1, "nominees": [2, 3], "pov_winner": 4, "pov_used": False, "evicted": 3,
            "second_hoh_winner": 4, "second_nominees": [1, 5], "second_pov_winner": 5,
            "second_pov_used": False, "second_evicted": "no-eviction",
        }
        ceremony = WeekCeremony.from_flat(flat)
        self.assertEqual(len(ceremony.cycles), 2)
        self.assertEqual(ceremony.cycles[1].hoh_winner, 4)
        self.assertEqual(ceremony.cycles[1].evicted, NO_EVICTION)

        back = ceremony.to_flat()
        self.assertEqual(back["second_nominees"], [1, 5])
        self.assertIsNone(back["third_hoh_winner"])
        self.assertEqual(WeekCeremony.from_flat(back).active_cycles(), ceremony.active_cycles())


class DescribeStateTestCase(unittest.TestCase):
    def test_state_reports_step_and_candidates(self):
        cycle = EvictionCycle(hoh_winner=1, nominees=[2, 3], pov_winner=4, pov_used=True, pov_used_on=3)
        state = describe_state(WeekCeremony(2, cycles=[cycle]), ROSTER)
        self.assertFalse(state.can_submit)
        only = state.cycles[0]
        self.assertEqual(only.current_step, CeremonyStep.AWAITING_REPLACEMENT)
        self.assertEqual(only.completed_steps[-1], CeremonyStep.AWAITING_VETO_DECISION)
        self.assertEqual(only.candidates["replacement_nominee"], [5, 6, 7, 8])
        self.assertEqual(only.candidates["nominees"], [2, 3, 4, 5, 6, 7, 8])


if __name__ == "__main__":
    unittest.main()
