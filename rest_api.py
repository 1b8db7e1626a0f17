import os
import time
from typing import List, Optional
from fastapi import (
    FastAPI,
    HTTPException,
    Response,
    Body,
    APIRouter,
    Request,
    Header,
    Depends,
)
from db import (
    UserRepository,
    AuthSessionRepository,
    AccountRepository,
    ProfileRepository,
    ProfileHistoryRepository,
    ExerciseRepository,
    UserExerciseSettingsRepository,
    WorkoutSessionRepository,
    SetRepository,
    CardioRecordRepository,
    AsyncSetRepository,
    AsyncCardioRecordRepository,
)
from api_models import (
    SignUpRequest,
    SignInRequest,
    PasswordRequest,
    GoogleLinkRequest,
    ProfileUpdate,
    ExerciseCreate,
    VisibilityUpdate,
    SessionUpdate,
    SetEntry,
    CardioEntry,
    ProgressPoint,
    GuestStorage,
)
from auth_service import AuthService
from config import AppConfig, APP_VERSION, check_env_vars
from errors import AuthError, AccessDeniedError
from exercise_service import ExerciseService
from migration_service import GuestDataMigrator
from profile_service import ProfileService
from stats_service import StatisticsService
from workout_service import WorkoutService


class RateLimiter:
    """Simple in-memory rate limiter."""

    def __init__(self, limit: int = 60, window: int = 60) -> None:
        self.limit = limit
        self.window = window
        self.requests: dict[str, list[float]] = {}

    def _prune(self, now: float) -> None:
        """Forget requests outside the window and clients with none left."""
        for ip in list(self.requests):
            history = [t for t in self.requests[ip] if now - t < self.window]
            if history:
                self.requests[ip] = history
            else:
                del self.requests[ip]

    async def __call__(self, request: Request, call_next):
        ip = request.client.host if request.client else "anon"
        now = time.time()
        self._prune(now)
        history = self.requests.get(ip, [])
        if len(history) >= self.limit:
            return Response("rate limit exceeded", status_code=429)
        history.append(now)
        self.requests[ip] = history
        return await call_next(request)


def http_error(e: ValueError) -> HTTPException:
    """Translate a domain error into the matching HTTP status."""
    if isinstance(e, AuthError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, AccessDeniedError):
        return HTTPException(status_code=403, detail=str(e))
    if "not found" in str(e):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


class MuscleGrowAPI:
    """Provides REST endpoints for workout, body and progress tracking."""

    def __init__(
        self,
        db_path: str = "musclegrow.db",
        yaml_path: str = "settings.yaml",
        *,
        rate_limit: int | None = None,
        rate_window: int = 60,
    ) -> None:
        self.db_path = db_path
        self.config = AppConfig(yaml_path)
        self.users = UserRepository(db_path)
        self.auth_sessions = AuthSessionRepository(db_path)
        self.accounts = AccountRepository(db_path)
        self.profiles = ProfileRepository(db_path)
        self.profile_history = ProfileHistoryRepository(db_path)
        self.exercises = ExerciseRepository(db_path)
        self.exercise_settings = UserExerciseSettingsRepository(db_path)
        self.sessions = WorkoutSessionRepository(db_path)
        self.sets = SetRepository(db_path)
        self.cardio = CardioRecordRepository(db_path)
        self.async_sets = AsyncSetRepository(db_path)
        self.async_cardio = AsyncCardioRecordRepository(db_path)
        self.auth = AuthService(
            self.users,
            self.auth_sessions,
            self.accounts,
            session_ttl_days=self.config.get("session_ttl_days", 7),
        )
        self.profile_service = ProfileService(self.profiles, self.profile_history)
        self.exercise_service = ExerciseService(self.exercises, self.exercise_settings)
        self.workouts = WorkoutService(
            self.sessions,
            self.sets,
            self.cardio,
            self.exercises,
            self.profile_history,
        )
        self.statistics = StatisticsService(
            self.sets,
            self.cardio,
            self.sessions,
            self.exercises,
        )
        self.migrator = GuestDataMigrator(
            self.exercise_service,
            self.workouts,
            self.profile_service,
        )
        self.app = FastAPI(
            title="MuscleGrow API",
            description="REST API for workout logging, body tracking and progress stats",
            version=APP_VERSION,
        )
        if rate_limit is not None:
            limiter = RateLimiter(limit=rate_limit, window=rate_window)
            self.app.middleware("http")(limiter)
        self._setup_routes()

    def _default_preset(self, preset: Optional[str]) -> str:
        return preset or self.config.get("default_stats_preset", "month")

    def _setup_routes(self) -> None:
        auth_router = APIRouter(prefix="/auth", tags=["Auth"])
        profile_router = APIRouter(prefix="/profile", tags=["Profile"])
        exercises_router = APIRouter(prefix="/exercises", tags=["Exercises"])
        sessions_router = APIRouter(prefix="/sessions", tags=["Sessions"])
        history_router = APIRouter(prefix="/history", tags=["History"])
        stats_router = APIRouter(prefix="/stats", tags=["Stats"])
        account_router = APIRouter(prefix="/account", tags=["Account"])

        def bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
            if authorization and authorization.lower().startswith("bearer "):
                return authorization[7:].strip() or None
            return None

        def current_user(token: Optional[str] = Depends(bearer_token)) -> dict:
            try:
                return self.auth.resolve(token)
            except ValueError as e:
                raise HTTPException(status_code=401, detail=str(e))

        def optional_user(token: Optional[str] = Depends(bearer_token)) -> Optional[dict]:
            if token is None:
                return None
            return current_user(token)

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.exercises.fetch_masters()
                return {"status": "ok", "version": APP_VERSION}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.get("/check-env")
        def check_env():
            return check_env_vars()

        @auth_router.post("/signup")
        def sign_up(body: SignUpRequest, request: Request):
            try:
                return self.auth.sign_up(
                    body.name,
                    body.email,
                    body.password,
                    request.client.host if request.client else None,
                    request.headers.get("user-agent"),
                )
            except ValueError as e:
                raise http_error(e)

        @auth_router.post("/signin")
        def sign_in(body: SignInRequest, request: Request):
            try:
                return self.auth.sign_in(
                    body.email,
                    body.password,
                    request.client.host if request.client else None,
                    request.headers.get("user-agent"),
                )
            except ValueError as e:
                raise http_error(e)

        @auth_router.post("/signout")
        def sign_out(token: Optional[str] = Depends(bearer_token)):
            if token:
                self.auth.sign_out(token)
            return {"status": "signed_out"}

        @auth_router.get("/me")
        def me(user: dict = Depends(current_user)):
            return user

        @auth_router.get("/password")
        def has_password(user: dict = Depends(current_user)):
            return {"has_password": self.auth.has_password(user["id"])}

        @auth_router.put("/password")
        def set_password(body: PasswordRequest, user: dict = Depends(current_user)):
            try:
                if body.current_password is not None:
                    self.auth.change_password(user["id"], body.current_password, body.password)
                else:
                    self.auth.set_password(user["id"], body.password)
                return {"status": "updated"}
            except ValueError as e:
                raise http_error(e)

        @auth_router.get("/google")
        def google_status(user: dict = Depends(current_user)):
            return {"linked": self.auth.has_google(user["id"])}

        @auth_router.post("/google")
        def link_google(body: GoogleLinkRequest, user: dict = Depends(current_user)):
            try:
                self.auth.link_google(user["id"], body.account_id)
                return {"status": "linked"}
            except ValueError as e:
                raise http_error(e)

        @auth_router.delete("/google")
        def unlink_google(user: dict = Depends(current_user)):
            try:
                self.auth.unlink_google(user["id"])
                return {"status": "unlinked"}
            except ValueError as e:
                raise http_error(e)

        @profile_router.get("")
        def get_profile(user: dict = Depends(current_user)):
            return self.profile_service.get_profile(user["id"])

        @profile_router.put("")
        def update_profile(body: ProfileUpdate, user: dict = Depends(current_user)):
            try:
                return self.profile_service.update_profile(
                    user["id"], body.model_dump(exclude_unset=True)
                )
            except ValueError as e:
                raise http_error(e)

        @profile_router.get("/big3-targets")
        def big3_targets(user: Optional[dict] = Depends(optional_user)):
            return self.profile_service.get_big3_targets(user["id"] if user else None)

        @profile_router.get("/history")
        def profile_history(preset: Optional[str] = None, user: dict = Depends(current_user)):
            return self.profile_service.get_profile_history(
                user["id"], self._default_preset(preset)
            )

        @profile_router.get("/body-composition")
        def body_composition(user: dict = Depends(current_user)):
            composition = self.profile_service.body_composition(user["id"])
            if composition is None:
                raise HTTPException(status_code=404, detail="body composition not available")
            return composition

        @exercises_router.get("")
        def list_exercises(user: dict = Depends(current_user)):
            return self.exercise_service.get_exercises(user["id"])

        @exercises_router.post("")
        def create_exercise(body: ExerciseCreate, user: dict = Depends(current_user)):
            try:
                return self.exercise_service.save_exercise(
                    user["id"], body.model_dump(exclude_none=True)
                )
            except ValueError as e:
                raise http_error(e)

        @exercises_router.get("/preferences")
        def list_exercise_preferences(user: dict = Depends(current_user)):
            return self.exercise_service.get_exercises_with_preferences(user["id"])

        @exercises_router.put("/{exercise_id}/visibility")
        def set_visibility(
            exercise_id: str, body: VisibilityUpdate, user: dict = Depends(current_user)
        ):
            try:
                self.exercise_service.toggle_visibility(user["id"], exercise_id, body.visible)
                return {"status": "updated"}
            except ValueError as e:
                raise http_error(e)

        @exercises_router.post("/guest")
        def guest_exercises(body: GuestStorage):
            return self.exercise_service.guest_exercises(body.storage)

        @sessions_router.get("")
        def list_sessions(
            start: Optional[str] = None,
            end: Optional[str] = None,
            user: dict = Depends(current_user),
        ):
            try:
                return self.workouts.get_workout_sessions(user["id"], start, end)
            except ValueError as e:
                raise http_error(e)

        @sessions_router.put("/{date}")
        def save_session(
            date: str,
            body: SessionUpdate = Body(default=SessionUpdate()),
            user: dict = Depends(current_user),
        ):
            try:
                sid = self.workouts.save_workout_session(
                    user["id"], date, body.note, body.duration_minutes
                )
                return {"id": sid}
            except ValueError as e:
                raise http_error(e)

        @sessions_router.get("/{date}")
        def get_session(date: str, user: dict = Depends(current_user)):
            try:
                session = self.workouts.get_workout_session(user["id"], date)
            except ValueError as e:
                raise http_error(e)
            if session is None:
                raise HTTPException(status_code=404, detail="session not found")
            return session

        @sessions_router.get("/{session_id}/details")
        def session_details(session_id: str, user: dict = Depends(current_user)):
            try:
                return self.workouts.get_session_details(user["id"], session_id)
            except ValueError as e:
                raise http_error(e)

        @sessions_router.put("/{session_id}/exercises/{exercise_id}/sets")
        def save_sets(
            session_id: str,
            exercise_id: str,
            sets: List[SetEntry] = Body(...),
            user: dict = Depends(current_user),
        ):
            try:
                return self.workouts.save_sets(
                    user["id"], session_id, exercise_id, [s.model_dump() for s in sets]
                )
            except ValueError as e:
                raise http_error(e)

        @sessions_router.get("/{session_id}/exercises/{exercise_id}/sets")
        async def list_sets(session_id: str, exercise_id: str, user: dict = Depends(current_user)):
            if exercise_id.startswith("mock-"):
                return []
            try:
                self.workouts.owned_session(user["id"], session_id)
            except ValueError as e:
                raise http_error(e)
            return await self.async_sets.fetch_for_exercise(session_id, exercise_id)

        @sessions_router.delete("/{session_id}/exercises/{exercise_id}/sets")
        def delete_sets(session_id: str, exercise_id: str, user: dict = Depends(current_user)):
            try:
                count = self.workouts.delete_exercise_sets(user["id"], session_id, exercise_id)
                return {"deleted": count}
            except ValueError as e:
                raise http_error(e)

        @sessions_router.put("/{session_id}/exercises/{exercise_id}/cardio")
        def save_cardio(
            session_id: str,
            exercise_id: str,
            records: List[CardioEntry] = Body(...),
            user: dict = Depends(current_user),
        ):
            try:
                return self.workouts.save_cardio_records(
                    user["id"], session_id, exercise_id, [r.model_dump() for r in records]
                )
            except ValueError as e:
                raise http_error(e)

        @sessions_router.get("/{session_id}/exercises/{exercise_id}/cardio")
        async def list_cardio(session_id: str, exercise_id: str, user: dict = Depends(current_user)):
            if exercise_id.startswith("mock-"):
                return []
            try:
                self.workouts.owned_session(user["id"], session_id)
            except ValueError as e:
                raise http_error(e)
            return await self.async_cardio.fetch_for_exercise(session_id, exercise_id)

        @sessions_router.delete("/{session_id}/exercises/{exercise_id}/cardio")
        def delete_cardio(session_id: str, exercise_id: str, user: dict = Depends(current_user)):
            try:
                count = self.workouts.delete_cardio_records(user["id"], session_id, exercise_id)
                return {"deleted": count}
            except ValueError as e:
                raise http_error(e)

        @history_router.get("/body-parts")
        def body_parts(start: str, end: str, user: dict = Depends(current_user)):
            try:
                return self.workouts.get_body_parts_by_date_range(user["id"], start, end)
            except ValueError as e:
                raise http_error(e)

        @history_router.get("/last-trained")
        def last_trained(user: dict = Depends(current_user)):
            return self.statistics.last_trained(user["id"])

        @history_router.get("/previous-record")
        def previous_record(exercise_id: str, before: str, user: dict = Depends(current_user)):
            record = self.statistics.previous_record(user["id"], exercise_id, before)
            if record is None:
                raise HTTPException(status_code=404, detail="previous record not found")
            return record

        @stats_router.get("/big3")
        def big3_progress(preset: Optional[str] = None, user: dict = Depends(current_user)):
            return self.statistics.get_big3_progress(user["id"], self._default_preset(preset))

        @stats_router.get("/big3/max")
        def big3_max(user: dict = Depends(current_user)):
            targets = self.profile_service.get_big3_targets(user["id"])
            return self.statistics.big3_overview(user["id"], targets)

        @stats_router.get("/exercises/{exercise_id}")
        def exercise_progress(
            exercise_id: str, preset: Optional[str] = None, user: dict = Depends(current_user)
        ):
            try:
                return self.statistics.get_exercise_progress(
                    user["id"], exercise_id, self._default_preset(preset)
                )
            except ValueError as e:
                raise http_error(e)

        @stats_router.post("/exercises/{exercise_id}/merge")
        def merged_exercise_progress(
            exercise_id: str,
            local_rows: List[ProgressPoint] = Body(...),
            preset: Optional[str] = None,
            user: dict = Depends(current_user),
        ):
            try:
                return self.statistics.get_exercise_progress(
                    user["id"],
                    exercise_id,
                    self._default_preset(preset),
                    [r.model_dump() for r in local_rows],
                )
            except ValueError as e:
                raise http_error(e)

        @stats_router.get("/summary")
        def training_summary(user: dict = Depends(current_user)):
            return self.statistics.training_summary(user["id"])

        @stats_router.get("/max-weights")
        def max_weights(user: dict = Depends(current_user)):
            return self.statistics.max_weights(user["id"])

        @account_router.get("/export")
        def export_data(user: dict = Depends(current_user)):
            data = self.workouts.export_all_data(user["id"])
            return Response(
                content=data,
                media_type="text/csv",
                headers={"Content-Disposition": "attachment; filename=musclegrow_export.csv"},
            )

        @account_router.delete("/data")
        def delete_data(user: dict = Depends(current_user)):
            return self.workouts.delete_user_all_data(user["id"])

        @account_router.delete("")
        def delete_account(user: dict = Depends(current_user)):
            try:
                self.auth.delete_account(user["id"])
                return {"status": "deleted"}
            except ValueError as e:
                raise http_error(e)

        @self.app.post("/guest/migrate", tags=["Guest"])
        def migrate_guest(body: GuestStorage, user: dict = Depends(current_user)):
            storage = dict(body.storage)
            result = self.migrator.migrate(user["id"], storage)
            result["storage"] = storage
            return result

        self.app.include_router(auth_router)
        self.app.include_router(profile_router)
        self.app.include_router(exercises_router)
        self.app.include_router(sessions_router)
        self.app.include_router(history_router)
        self.app.include_router(stats_router)
        self.app.include_router(account_router)


api = MuscleGrowAPI(
    db_path=os.environ.get("DB_PATH", "musclegrow.db"),
    yaml_path=os.environ.get("YAML_PATH", "settings.yaml"),
)
app = api.app


if __name__ == "__main__":
    import uvicorn
    from logging_config import configure_logging

    configure_logging(api.config.get("log_level", "INFO"), api.config.get("log_file"))
    uvicorn.run(app)
