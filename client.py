import requests
from typing import Optional


class MuscleGrowClient:
    """Simple REST client for the MuscleGrow API."""

    def __init__(self, base_url: str = "http://localhost:8000", token: Optional[str] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token

    def _headers(self) -> dict:
        if self.token is None:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def _request(self, method: str, path: str, **kwargs):
        resp = requests.request(
            method, f"{self.base_url}{path}", headers=self._headers(), **kwargs
        )
        resp.raise_for_status()
        return resp

    def sign_up(self, name: str, email: str, password: str) -> str:
        resp = self._request(
            "POST", "/auth/signup", json={"name": name, "email": email, "password": password}
        )
        self.token = resp.json()["token"]
        return self.token

    def sign_in(self, email: str, password: str) -> str:
        resp = self._request("POST", "/auth/signin", json={"email": email, "password": password})
        self.token = resp.json()["token"]
        return self.token

    def sign_out(self) -> None:
        self._request("POST", "/auth/signout")
        self.token = None

    def get_profile(self) -> dict:
        return self._request("GET", "/profile").json()

    def update_profile(self, **values: float) -> dict:
        return self._request("PUT", "/profile", json=values).json()

    def list_exercises(self) -> list[dict]:
        return self._request("GET", "/exercises").json()

    def save_session(self, date: str, note: Optional[str] = None, duration_minutes: Optional[int] = None) -> str:
        body = {"note": note, "duration_minutes": duration_minutes}
        return self._request("PUT", f"/sessions/{date}", json=body).json()["id"]

    def save_sets(self, session_id: str, exercise_id: str, sets: list[dict]) -> int:
        resp = self._request(
            "PUT", f"/sessions/{session_id}/exercises/{exercise_id}/sets", json=sets
        )
        return resp.json()["count"]

    def list_sets(self, session_id: str, exercise_id: str) -> list[dict]:
        return self._request("GET", f"/sessions/{session_id}/exercises/{exercise_id}/sets").json()

    def big3_progress(self, preset: str = "month") -> dict:
        return self._request("GET", "/stats/big3", params={"preset": preset}).json()

    def export_csv(self) -> str:
        return self._request("GET", "/account/export").text

    def migrate_guest(self, storage: dict[str, str]) -> dict:
        return self._request("POST", "/guest/migrate", json={"storage": storage}).json()
