import datetime
import logging

from rest_api import MuscleGrowAPI
from logging_config import configure_logging

logger = logging.getLogger(__name__)

DEMO_EMAIL = "demo@musclegrow.app"
DEMO_PASSWORD = "demo-password"


def seed(api: MuscleGrowAPI | None = None, email: str = DEMO_EMAIL) -> str | None:
    """Create a demo user with a few weeks of Big3 training."""
    api = api or MuscleGrowAPI()
    if api.users.find_by_email(email):
        print("Database already contains the demo user")
        return None

    user_id = api.auth.sign_up("Demo", email, DEMO_PASSWORD)["user_id"]
    api.profile_service.update_profile(
        user_id, {"height": 175.0, "weight": 72.0, "body_fat": 18.0, "muscle_mass": 32.0}
    )
    lifts = api.statistics.big3_ids(user_id)
    running = next(
        (e["id"] for e in api.exercise_service.get_exercises(user_id) if e.get("name_en") == "Running"),
        None,
    )
    today = datetime.date.today()
    for week in range(4):
        day = today - datetime.timedelta(days=7 * (3 - week))
        sid = api.workouts.save_workout_session(user_id, day.isoformat(), "Demo session", 60)
        for offset, key in enumerate(("bench_press", "squat", "deadlift")):
            exercise_id = lifts.get(key)
            if exercise_id is None:
                continue
            base = 60.0 + 20 * offset + 2.5 * week
            api.workouts.save_sets(
                user_id,
                sid,
                exercise_id,
                [
                    {"weight": base - 20, "reps": 10, "is_warmup": True},
                    {"weight": base, "reps": 8, "rpe": 8},
                    {"weight": base, "reps": 7, "rpe": 9},
                ],
            )
        if running:
            api.workouts.save_cardio_records(
                user_id, sid, running, [{"duration": 20, "distance": 3.5, "calories": 220}]
            )
    logger.info("seeded demo user %s", user_id)
    print("Seed data inserted")
    return user_id


if __name__ == "__main__":
    configure_logging()
    seed()
