import os
import sys
import json
import unittest
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import MuscleGrowAPI, RateLimiter


class APITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_musclegrow.db"
        self.yaml_path = "test_settings.yaml"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        if os.path.exists(self.yaml_path):
            os.remove(self.yaml_path)
        self.api = MuscleGrowAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.client = TestClient(self.api.app)
        self.headers = self._sign_up("Alice", "alice@example.com")

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        if os.path.exists(self.yaml_path):
            os.remove(self.yaml_path)

    def _sign_up(self, name: str, email: str) -> dict:
        resp = self.client.post(
            "/auth/signup",
            json={"name": name, "email": email, "password": "password123"},
        )
        self.assertEqual(resp.status_code, 200)
        return {"Authorization": f"Bearer {resp.json()['token']}"}

    def test_health_and_env(self) -> None:
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "ok")
        resp = self.client.get("/check-env")
        self.assertEqual(
            set(resp.json()),
            {"MUSCLEGROW_AUTH_SECRET", "DB_PATH", "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET"},
        )

    def test_auth_flow(self) -> None:
        resp = self.client.get("/auth/me", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["email"], "alice@example.com")

        self.assertEqual(self.client.get("/auth/me").status_code, 401)
        resp = self.client.get("/auth/me", headers={"Authorization": "Bearer nope"})
        self.assertEqual(resp.status_code, 401)

        resp = self.client.post(
            "/auth/signup",
            json={"name": "Alice", "email": "alice@example.com", "password": "password123"},
        )
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post(
            "/auth/signin", json={"email": "alice@example.com", "password": "bad-password"}
        )
        self.assertEqual(resp.status_code, 401)
        resp = self.client.post(
            "/auth/signin", json={"email": "alice@example.com", "password": "password123"}
        )
        self.assertEqual(resp.status_code, 200)
        token = resp.json()["token"]

        self.client.post("/auth/signout", headers={"Authorization": f"Bearer {token}"})
        resp = self.client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(resp.status_code, 401)

    def test_password_and_google(self) -> None:
        resp = self.client.get("/auth/password", headers=self.headers)
        self.assertEqual(resp.json(), {"has_password": True})
        resp = self.client.put(
            "/auth/password", json={"password": "another-pass"}, headers=self.headers
        )
        self.assertEqual(resp.status_code, 400)
        resp = self.client.put(
            "/auth/password",
            json={"password": "another-pass", "current_password": "password123"},
            headers=self.headers,
        )
        self.assertEqual(resp.status_code, 200)

        resp = self.client.post("/auth/google", json={"account_id": "g-1"}, headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        resp = self.client.get("/auth/google", headers=self.headers)
        self.assertEqual(resp.json(), {"linked": True})
        resp = self.client.delete("/auth/google", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        resp = self.client.delete("/auth/google", headers=self.headers)
        self.assertEqual(resp.status_code, 404)

    def test_profile_endpoints(self) -> None:
        resp = self.client.get("/profile", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertIsNone(resp.json()["bmi"])

        resp = self.client.put(
            "/profile",
            json={"height": 170, "weight": 65, "body_fat": 20, "muscle_mass": 30},
            headers=self.headers,
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["bmi"], 22.5)

        resp = self.client.put("/profile", json={"body_fat": 150}, headers=self.headers)
        self.assertEqual(resp.status_code, 422)
        resp = self.client.put("/profile", json={}, headers=self.headers)
        self.assertEqual(resp.status_code, 400)

        resp = self.client.get("/profile/history", params={"preset": "all"}, headers=self.headers)
        self.assertEqual(len(resp.json()), 1)
        resp = self.client.get("/profile/body-composition", headers=self.headers)
        self.assertEqual(resp.json()["fat_mass"], 13.0)

        resp = self.client.get("/profile/big3-targets")
        self.assertEqual(resp.json()["deadlift"], 140.0)

    def test_exercise_endpoints(self) -> None:
        resp = self.client.get("/exercises", headers=self.headers)
        self.assertEqual(len(resp.json()), 37)

        resp = self.client.post(
            "/exercises",
            json={"name": "Cable Fly", "body_part": "chest", "primary_equipment": "cable"},
            headers=self.headers,
        )
        self.assertEqual(resp.status_code, 200)
        custom_id = resp.json()["id"]

        resp = self.client.put(
            "/exercises/crunch/visibility", json={"visible": True}, headers=self.headers
        )
        self.assertEqual(resp.status_code, 200)
        prefs = {e["id"]: e["tier"] for e in self.client.get("/exercises/preferences", headers=self.headers).json()}
        self.assertEqual(prefs["crunch"], "initial")
        self.assertEqual(prefs[custom_id], "custom")

        other = self._sign_up("Bob", "bob@example.com")
        resp = self.client.put(
            f"/exercises/{custom_id}/visibility", json={"visible": False}, headers=other
        )
        self.assertEqual(resp.status_code, 404)

        resp = self.client.post("/exercises/guest", json={"storage": {}})
        self.assertEqual(len(resp.json()), 32)

    def test_session_workflow(self) -> None:
        resp = self.client.put(
            "/sessions/2024-03-01", json={"note": "legs"}, headers=self.headers
        )
        self.assertEqual(resp.status_code, 200)
        sid = resp.json()["id"]
        self.assertEqual(self.client.put("/sessions/2024-13-01", headers=self.headers).status_code, 400)

        resp = self.client.put(
            f"/sessions/{sid}/exercises/squat/sets",
            json=[{"weight": 100, "reps": 5}, {"weight": 0, "reps": 0}],
            headers=self.headers,
        )
        self.assertEqual(resp.json(), {"count": 1})
        resp = self.client.get(f"/sessions/{sid}/exercises/squat/sets", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()[0]["weight"], 100.0)
        resp = self.client.get(f"/sessions/{sid}/exercises/mock-14/sets", headers=self.headers)
        self.assertEqual(resp.json(), [])

        resp = self.client.put(
            f"/sessions/{sid}/exercises/running/cardio",
            json=[{"duration": 30, "distance": 5.0}],
            headers=self.headers,
        )
        self.assertEqual(resp.json(), {"count": 1})
        resp = self.client.get(f"/sessions/{sid}/exercises/running/cardio", headers=self.headers)
        self.assertEqual(resp.json()[0]["distance"], 5.0)

        resp = self.client.get("/sessions/2024-03-01", headers=self.headers)
        self.assertEqual(resp.json()["note"], "legs")
        self.assertEqual(self.client.get("/sessions/2024-03-02", headers=self.headers).status_code, 404)
        resp = self.client.get("/sessions", params={"start": "2024-03-01"}, headers=self.headers)
        self.assertEqual(len(resp.json()), 1)

        details = self.client.get(f"/sessions/{sid}/details", headers=self.headers).json()
        self.assertEqual(details["workout_exercises"][0]["exercise_id"], "squat")
        resp = self.client.get(
            "/history/body-parts",
            params={"start": "2024-03-01", "end": "2024-03-31"},
            headers=self.headers,
        )
        self.assertEqual(resp.json(), {"2024-03-01": ["legs", "other"]})

        other = self._sign_up("Bob", "bob@example.com")
        resp = self.client.get(f"/sessions/{sid}/exercises/squat/sets", headers=other)
        self.assertEqual(resp.status_code, 403)
        resp = self.client.delete(f"/sessions/{sid}/exercises/squat/sets", headers=other)
        self.assertEqual(resp.status_code, 403)
        resp = self.client.get("/sessions/missing/details", headers=self.headers)
        self.assertEqual(resp.status_code, 404)

        resp = self.client.delete(f"/sessions/{sid}/exercises/squat/sets", headers=self.headers)
        self.assertEqual(resp.json(), {"deleted": 1})
        resp = self.client.put(
            f"/sessions/{sid}/exercises/squat/sets",
            json=[{"weight": -1, "reps": 5}],
            headers=self.headers,
        )
        self.assertEqual(resp.status_code, 422)

    def test_stats_and_history(self) -> None:
        for date, weight in (("2024-03-01", 60), ("2024-03-08", 65)):
            sid = self.client.put(f"/sessions/{date}", headers=self.headers).json()["id"]
            self.client.put(
                f"/sessions/{sid}/exercises/bench-press/sets",
                json=[{"weight": weight, "reps": 5}],
                headers=self.headers,
            )
        resp = self.client.get("/stats/big3", params={"preset": "all"}, headers=self.headers)
        self.assertEqual([p["max_weight"] for p in resp.json()["bench_press"]], [60.0, 65.0])

        resp = self.client.get("/stats/big3/max", headers=self.headers)
        bench = resp.json()[0]
        self.assertEqual((bench["key"], bench["current"], bench["progress"]), ("bench_press", 65.0, 65.0))

        resp = self.client.post(
            "/stats/exercises/bench-press/merge",
            params={"preset": "all"},
            json=[{"date": "2024-03-05", "max_weight": 62.5}],
            headers=self.headers,
        )
        self.assertEqual([p["max_weight"] for p in resp.json()], [60.0, 62.5, 65.0])
        resp = self.client.get("/stats/exercises/nope", headers=self.headers)
        self.assertEqual(resp.status_code, 404)

        resp = self.client.get("/stats/max-weights", headers=self.headers)
        self.assertEqual(resp.json(), {"bench-press": 65.0})
        resp = self.client.get("/stats/summary", headers=self.headers)
        self.assertEqual(resp.json()["total_days"], 2)

        resp = self.client.get("/history/last-trained", headers=self.headers)
        self.assertEqual(resp.json()["body_parts"]["chest"], "2024-03-08")
        resp = self.client.get(
            "/history/previous-record",
            params={"exercise_id": "bench-press", "before": "2024-03-08"},
            headers=self.headers,
        )
        self.assertEqual(resp.json()["date"], "2024-03-01")
        resp = self.client.get(
            "/history/previous-record",
            params={"exercise_id": "bench-press", "before": "2024-03-01"},
            headers=self.headers,
        )
        self.assertEqual(resp.status_code, 404)

    def test_account_endpoints(self) -> None:
        sid = self.client.put("/sessions/2024-03-01", headers=self.headers).json()["id"]
        self.client.put(
            f"/sessions/{sid}/exercises/deadlift/sets",
            json=[{"weight": 140, "reps": 3}],
            headers=self.headers,
        )
        resp = self.client.get("/account/export", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.headers["content-type"].startswith("text/csv"))
        self.assertIn("デッドリフト", resp.text)

        resp = self.client.delete("/account/data", headers=self.headers)
        self.assertEqual(resp.json(), {"deleted_sessions": 1})
        resp = self.client.delete("/account", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.get("/auth/me", headers=self.headers).status_code, 401)

    def test_guest_migration_endpoint(self) -> None:
        storage = {"workout_2024-02-01_mock-1": json.dumps([{"weight": 80, "reps": 5}])}
        resp = self.client.post("/guest/migrate", json={"storage": storage}, headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["status"], "migrated")
        self.assertEqual(body["sets"], 1)
        self.assertEqual(body["storage"], {"guest_data_migrated": "true"})
        self.assertEqual(self.client.post("/guest/migrate", json={"storage": {}}).status_code, 401)

    def test_guest_endpoints_tolerate_malformed_storage(self) -> None:
        custom = json.dumps([{"id": 5, "name": "Band", "body_part": "back"}])
        resp = self.client.post(
            "/exercises/guest",
            json={"storage": {"musclegrow_guest_custom_exercises": custom}},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertNotIn(5, [e["id"] for e in resp.json()])
        storage = {
            "musclegrow_guest_custom_exercises": custom,
            "workout_2024-02-02_mock-1": json.dumps([{"weight": "90", "reps": 5}]),
        }
        resp = self.client.post("/guest/migrate", json={"storage": storage}, headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["failed_dates"], ["2024-02-02"])


class RateLimitTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_rate_limit.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.api = MuscleGrowAPI(db_path=self.db_path, rate_limit=2, rate_window=60)
        self.client = TestClient(self.api.app)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_rate_limit_exceeded(self) -> None:
        self.assertEqual(self.client.get("/health").status_code, 200)
        self.assertEqual(self.client.get("/health").status_code, 200)
        self.assertEqual(self.client.get("/health").status_code, 429)

    def test_idle_clients_are_forgotten(self) -> None:
        limiter = RateLimiter(limit=2, window=60)
        limiter.requests = {"10.0.0.1": [0.0], "10.0.0.2": [100.0, 130.0]}
        limiter._prune(150.0)
        self.assertEqual(limiter.requests, {"10.0.0.2": [100.0, 130.0]})


if __name__ == "__main__":
    unittest.main()
