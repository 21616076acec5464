import unittest

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from poolside.core.database import Base, get_db
from poolside.main import app

ADMIN = {"X-Admin-Key": "test-admin-key"}


class ApiTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine = create_async_engine(
            "sqlite+aiosqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        Session = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

        async def override_get_db():
            async with Session() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        app.dependency_overrides[get_db] = override_get_db
        self.client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

        response = await self.client.post("/api/pools", json={"name": "BB27", "season_number": 27}, headers=ADMIN)
        self.assertEqual(response.status_code, 201)
        self.pool_id = response.json()["id"]

        names = ["Alice", "Bob", "Cara", "Dan", "Eve", "Finn"]
        response = await self.client.post(
            f"/api/pools/{self.pool_id}/contestants/bulk",
            json={"contestants": [{"name": n, "sort_order": i} for i, n in enumerate(names)]},
            headers=ADMIN,
        )
        self.assertEqual(response.status_code, 201)
        self.ids = {c["name"]: c["id"] for c in response.json()}

    async def asyncTearDown(self):
        await self.client.aclose()
        app.dependency_overrides.clear()
        await self.engine.dispose()

    def url(self, path=""):
        return f"/api/pools/{self.pool_id}{path}"

    def week_body(self, hoh, nominees, evicted, **flags):
        ids = self.ids
        body = {
            "cycles": [{
                "hoh_winner": ids[hoh],
                "nominees": [ids[n] for n in nominees],
                "pov_winner": ids[hoh],
                "pov_used": False,
                "evicted": ids[evicted] if evicted else None,
            }],
        }
        body.update(flags)
        return body

    async def test_writes_need_admin_key(self):
        response = await self.client.post("/api/pools", json={"name": "Nope"})
        self.assertEqual(response.status_code, 401)
        response = await self.client.put(self.url("/weeks/1"), json={}, headers={"X-Admin-Key": "wrong"})
        self.assertEqual(response.status_code, 401)

    async def test_pool_creation_seeds_rules(self):
        response = await self.client.get(self.url("/rules"))
        self.assertEqual(response.status_code, 200)
        keys = {(r["category"], r["subcategory"]) for r in response.json()}
        self.assertIn(("competition", "hoh_winner"), keys)
        self.assertIn(("special_events", "came_back_evicted"), keys)

    async def test_incomplete_submit_lists_unmet_steps(self):
        body = self.week_body("Alice", ["Bob", "Cara"], None)
        response = await self.client.post(self.url("/weeks/1/submit"), json=body, headers=ADMIN)
        self.assertEqual(response.status_code, 422)
        self.assertEqual([i["step"] for i in response.json()["issues"]], ["eviction"])

        response = await self.client.get(self.url("/weeks/1"))
        self.assertEqual(response.status_code, 404)

    async def test_submit_then_points_and_status(self):
        body = self.week_body("Alice", ["Bob", "Cara"], "Cara")
        response = await self.client.post(self.url("/weeks/1/submit"), json=body, headers=ADMIN)
        self.assertEqual(response.status_code, 200)
        week = response.json()
        self.assertFalse(week["is_draft"])
        self.assertTrue(week["is_complete"])
        self.assertEqual(week["version"], 1)

        response = await self.client.get(self.url("/points"))
        totals = {c["contestant_name"]: c["total"] for c in response.json()["contestants"]}
        self.assertEqual(totals["Alice"], 17)
        self.assertEqual(totals["Cara"], -5)

        response = await self.client.get(self.url(f"/contestants/{self.ids['Cara']}/status"), params={"week": 2})
        self.assertEqual(response.json()["reason"], "evicted")
        self.assertFalse(response.json()["active"])

        response = await self.client.get(self.url("/contestants"), params={"week": 1})
        by_name = {c["name"]: c for c in response.json()}
        self.assertFalse(by_name["Cara"]["active_this_week"])
        self.assertEqual(by_name["Cara"]["reason"], "evicted")
        self.assertTrue(by_name["Bob"]["active_this_week"])
        self.assertFalse(by_name["Cara"]["is_active"])

    async def test_flat_draft_and_state(self):
        ids = self.ids
        response = await self.client.put(
            self.url("/weeks/2"),
            json={"hoh_winner": ids["Dan"], "nominees": [ids["Eve"], ids["Finn"]], "pov_winner": ids["Eve"]},
            headers=ADMIN,
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["is_draft"])

        response = await self.client.get(self.url("/weeks/2/state"))
        state = response.json()
        self.assertEqual(state["cycles"][0]["current_step"], "awaiting_veto_decision")
        self.assertFalse(state["can_submit"])

        response = await self.client.get(self.url("/weeks/2/flat"))
        flat = response.json()
        self.assertEqual(flat["hoh_winner"], ids["Dan"])
        self.assertIsNone(flat["second_hoh_winner"])

    async def test_constraint_and_jury_conflicts(self):
        body = self.week_body("Alice", ["Alice", "Bob"], None)
        response = await self.client.put(self.url("/weeks/1"), json=body, headers=ADMIN)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"], "ConstraintViolation")

        jury = self.week_body("Alice", ["Bob", "Cara"], "Cara", is_jury_phase=True)
        response = await self.client.put(self.url("/weeks/3"), json=jury, headers=ADMIN)
        self.assertEqual(response.status_code, 200)
        response = await self.client.put(self.url("/weeks/4"), json=jury, headers=ADMIN)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"], "JuryPhaseConflict")

    async def test_leaderboard_and_checklist(self):
        ids = self.ids
        for team, picks in (("Team A", ["Alice"]), ("Team B", ["Cara", "Dan"])):
            response = await self.client.post(
                self.url("/entries"),
                json={"team_name": team, "participant_name": team, "picks": [ids[p] for p in picks]},
                headers=ADMIN,
            )
            self.assertEqual(response.status_code, 201)

        await self.client.post(
            self.url("/weeks/1/submit"), json=self.week_body("Alice", ["Bob", "Cara"], "Cara"), headers=ADMIN,
        )
        response = await self.client.get(self.url("/leaderboard"))
        entries = response.json()["entries"]
        self.assertEqual([(e["team_name"], e["total_points"]) for e in entries], [("Team A", 17), ("Team B", -5)])

        response = await self.client.get(self.url("/season/checklist"))
        checklist = response.json()
        self.assertFalse(checklist["offered"])
        self.assertFalse(checklist["ready"])

        response = await self.client.post(self.url("/season/complete"), headers=ADMIN)
        self.assertEqual(response.status_code, 422)
        self.assertIn("final_week", [c["id"] for c in response.json()["failing_checks"]])

    async def test_malformed_admin_key_is_unauthorized(self):
        response = await self.client.post(
            "/api/pools", json={"name": "Nope"}, headers={"X-Admin-Key": "clé".encode("utf-8")},
        )
        self.assertEqual(response.status_code, 401)

    async def test_active_only_contestants(self):
        await self.client.post(
            self.url("/weeks/1/submit"), json=self.week_body("Alice", ["Bob", "Cara"], "Cara"), headers=ADMIN,
        )
        response = await self.client.get(self.url("/contestants"), params={"week": 1, "active_only": True})
        names = [c["name"] for c in response.json()]
        self.assertEqual(names, ["Alice", "Bob", "Dan", "Eve", "Finn"])

    async def test_rule_named_by_special_event_cannot_be_deleted(self):
        response = await self.client.post(
            self.url("/rules"),
            json={"category": "special_events", "subcategory": "self_evicted", "points": -12},
            headers=ADMIN,
        )
        self.assertEqual(response.status_code, 201)
        rule_id = response.json()["id"]

        body = self.week_body("Alice", ["Bob", "Cara"], "Cara")
        body["special_events"] = [{"contestant_id": self.ids["Finn"], "event_type": str(rule_id)}]
        response = await self.client.post(self.url("/weeks/1/submit"), json=body, headers=ADMIN)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["special_events"][0]["points_awarded"], -12)

        response = await self.client.delete(self.url(f"/rules/{rule_id}"), headers=ADMIN)
        self.assertEqual(response.status_code, 409)

        response = await self.client.patch(self.url(f"/rules/{rule_id}"), json={"is_active": False}, headers=ADMIN)
        self.assertEqual(response.status_code, 200)

        response = await self.client.get(self.url(f"/contestants/{self.ids['Finn']}/status"), params={"week": 1})
        self.assertEqual((response.json()["active"], response.json()["reason"]), (False, "quit"))


if __name__ == "__main__":
    unittest.main()
