import calendar
import datetime
import json
import os
import warnings
from typing import Optional

import altair as alt
import pandas as pd
import streamlit as st
from altair.utils.deprecation import AltairDeprecationWarning

warnings.filterwarnings("ignore", category=AltairDeprecationWarning)
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
)
from algorithms import BodyMetrics, Big3, ProgressTools, PRESETS, RecordFilters, WeightConverter
from auth_service import AuthService
from config import AppConfig
from exercise_service import ExerciseService, BODY_PARTS, load_json
from migration_service import (
    GuestDataMigrator,
    GUEST_PROFILE_KEY,
    collect_guest_records,
    guest_set_groups,
)
from profile_service import ProfileService, MEASUREMENT_FIELDS, TARGET_FIELDS
from stats_service import StatisticsService
from workout_service import WorkoutService


BODY_PART_COLORS = {
    "chest": "#ef4444",
    "back": "#3b82f6",
    "legs": "#22c55e",
    "shoulders": "#f59e0b",
    "arms": "#a855f7",
    "core": "#14b8a6",
    "other": "#6b7280",
}

SET_COLUMNS = ["weight", "reps", "rpe", "is_warmup", "notes"]
CARDIO_COLUMNS = ["duration", "distance", "calories", "heart_rate", "incline", "notes"]


class MuscleGrowApp:
    """Streamlit application for workout and body tracking."""

    def __init__(
        self, db_path: str = "musclegrow.db", yaml_path: str = "settings.yaml"
    ) -> None:
        self.config = AppConfig(yaml_path)
        self.weight_unit = self.config.get("weight_unit", "kg")
        self.users = UserRepository(db_path)
        self.profile_history = ProfileHistoryRepository(db_path)
        self.exercise_repo = ExerciseRepository(db_path)
        self.sets = SetRepository(db_path)
        self.cardio = CardioRecordRepository(db_path)
        self.sessions = WorkoutSessionRepository(db_path)
        self.auth = AuthService(
            self.users,
            AuthSessionRepository(db_path),
            AccountRepository(db_path),
            session_ttl_days=self.config.get("session_ttl_days", 7),
        )
        self.profiles = ProfileService(ProfileRepository(db_path), self.profile_history)
        self.exercises = ExerciseService(
            self.exercise_repo, UserExerciseSettingsRepository(db_path)
        )
        self.workouts = WorkoutService(
            self.sessions, self.sets, self.cardio, self.exercise_repo, self.profile_history
        )
        self.statistics = StatisticsService(
            self.sets, self.cardio, self.sessions, self.exercise_repo
        )
        self.migrator = GuestDataMigrator(self.exercises, self.workouts, self.profiles)
        self._state_init()

    def _state_init(self) -> None:
        if "token" not in st.session_state:
            st.session_state.token = None
        if "guest_storage" not in st.session_state:
            st.session_state.guest_storage = {}
        if "guest_mode" not in st.session_state:
            st.session_state.guest_mode = os.environ.get("TEST_MODE") == "1"
        if "migration_result" not in st.session_state:
            st.session_state.migration_result = None

    @property
    def storage(self) -> dict[str, str]:
        return st.session_state.guest_storage

    def _current_user(self) -> Optional[dict]:
        token = st.session_state.token
        if token is None:
            return None
        try:
            return self.auth.resolve(token)
        except ValueError:
            st.session_state.token = None
            return None

    def _format_weight(self, weight: float) -> str:
        return f"{WeightConverter.to_display(weight, self.weight_unit)} {self.weight_unit}"

    def _line_chart(
        self,
        data: dict[str, list],
        x: list[str],
        *,
        x_label: str = "x",
        y_label: str = "value",
    ) -> None:
        """Render a consistent line chart with accessible labels."""
        df = pd.DataFrame({"x": x})
        for key, values in data.items():
            df[key] = values
        long_df = df.melt("x", var_name="series", value_name="value").dropna()
        chart = (
            alt.Chart(long_df)
            .mark_line(point=True)
            .encode(
                x=alt.X("x:T", title=x_label),
                y=alt.Y("value:Q", title=y_label),
                color=alt.Color(
                    "series",
                    scale=alt.Scale(scheme="dark2"),
                    legend=None if len(data) == 1 else alt.Legend(title="Series"),
                ),
            )
        )
        st.altair_chart(chart, use_container_width=True)

    def _bar_chart(
        self,
        data: dict[str, list],
        x: list[str],
        *,
        x_label: str = "x",
        y_label: str = "value",
    ) -> None:
        """Render grouped bars, one group per ``x`` value."""
        df = pd.DataFrame({"x": x})
        for key, values in data.items():
            df[key] = values
        long_df = df.melt("x", var_name="series", value_name="value")
        chart = (
            alt.Chart(long_df)
            .mark_bar()
            .encode(
                x=alt.X("x", title=x_label),
                xOffset="series",
                y=alt.Y("value", title=y_label),
                color=alt.Color(
                    "series",
                    scale=alt.Scale(scheme="dark2"),
                    legend=alt.Legend(title="Series"),
                ),
            )
        )
        st.altair_chart(chart, use_container_width=True)

    def _sign_in(self, result: dict) -> None:
        st.session_state.token = result["token"]
        st.session_state.guest_mode = False
        if self.storage:
            st.session_state.migration_result = self.migrator.migrate(
                result["user_id"], self.storage
            )

    def _create_sidebar(self, user: Optional[dict]) -> None:
        st.sidebar.header("Account")
        if user is not None:
            st.sidebar.write(f"Signed in as {user['name']}")
            if st.sidebar.button("Sign Out", key="sign_out"):
                self.auth.sign_out(st.session_state.token)
                st.session_state.token = None
                st.rerun()
            return
        with st.sidebar.expander("Sign In", expanded=not st.session_state.guest_mode):
            email = st.text_input("Email", key="signin_email")
            password = st.text_input("Password", type="password", key="signin_password")
            if st.button("Sign In", key="signin_btn"):
                try:
                    self._sign_in(self.auth.sign_in(email, password))
                    st.rerun()
                except ValueError as e:
                    st.sidebar.error(str(e))
        with st.sidebar.expander("Sign Up"):
            name = st.text_input("Name", key="signup_name")
            email = st.text_input("Email", key="signup_email")
            password = st.text_input("Password", type="password", key="signup_password")
            if st.button("Create Account", key="signup_btn"):
                try:
                    self._sign_in(self.auth.sign_up(name, email, password))
                    st.rerun()
                except ValueError as e:
                    st.sidebar.error(str(e))
        if not st.session_state.guest_mode:
            if st.sidebar.button("Continue as Guest", key="guest_btn"):
                st.session_state.guest_mode = True
                st.rerun()
        else:
            st.sidebar.info("Guest mode: records stay in this browser session.")

    def _visible_exercises(self, user: Optional[dict]) -> list[dict]:
        if user is None:
            exercises = self.exercises.guest_exercises(self.storage)
        else:
            exercises = self.exercises.get_exercises_with_preferences(user["id"])
        return [e for e in exercises if e["tier"] in ("initial", "custom")]

    def _previous_record(self, user: Optional[dict], exercise_id: str, date: str) -> Optional[dict]:
        if user is None:
            return RecordFilters.previous_record(guest_set_groups(self.storage), exercise_id, date)
        return self.statistics.previous_record(user["id"], exercise_id, date)

    def _load_records(self, user: Optional[dict], kind: str, date: str, exercise_id: str) -> list[dict]:
        if user is None:
            return load_json(self.storage, f"{kind}_{date}_{exercise_id}", [])
        session = self.workouts.get_workout_session(user["id"], date)
        if session is None:
            return []
        if kind == "workout":
            return self.workouts.get_sets(user["id"], session["id"], exercise_id)
        return self.workouts.get_cardio_records(user["id"], session["id"], exercise_id)

    @staticmethod
    def _editor_rows(df: pd.DataFrame) -> list[dict]:
        rows = []
        for record in df.to_dict("records"):
            rows.append({k: (None if pd.isna(v) else v) for k, v in record.items()})
        return rows

    def _save_records(
        self, user: Optional[dict], kind: str, date: str, exercise_id: str, rows: list[dict]
    ) -> int:
        if kind == "workout":
            for row in rows:
                if row.get("weight") is not None:
                    row["weight"] = WeightConverter.from_display(float(row["weight"]), self.weight_unit)
            valid = RecordFilters.filter_sets(rows)
        else:
            valid = RecordFilters.filter_cardio(rows)
        if user is None:
            self.storage[f"{kind}_{date}_{exercise_id}"] = json.dumps(valid, ensure_ascii=False)
            return len(valid)
        session_id = self.workouts.save_workout_session(user["id"], date)
        if kind == "workout":
            return self.workouts.save_sets(user["id"], session_id, exercise_id, valid)["count"]
        return self.workouts.save_cardio_records(user["id"], session_id, exercise_id, valid)["count"]

    def _record_tab(self, user: Optional[dict]) -> None:
        st.header("Record")
        date = st.date_input("Date", datetime.date.today(), key="record_date").isoformat()
        body_part = st.selectbox("Body Part", BODY_PARTS, key="record_body_part")
        exercises = [e for e in self._visible_exercises(user) if e["body_part"] == body_part]
        if not exercises:
            st.info("No exercises for this body part")
            return
        names = {e["id"]: e["name"] for e in exercises}
        exercise_id = st.selectbox(
            "Exercise", list(names), format_func=lambda eid: names[eid], key="record_exercise"
        )
        exercise = next(e for e in exercises if e["id"] == exercise_id)
        is_cardio = self.exercises.is_cardio(exercise)
        kind = "cardio" if is_cardio else "workout"

        if not is_cardio:
            previous = self._previous_record(user, exercise_id, date)
            if previous is not None:
                summary = ", ".join(
                    f"{self._format_weight(s.get('weight') or 0)} x {s.get('reps') or 0}"
                    for s in previous["sets"]
                )
                st.caption(f"Previous ({previous['date']}): {summary}")

        columns = CARDIO_COLUMNS if is_cardio else SET_COLUMNS
        existing = self._load_records(user, kind, date, exercise_id)
        df = pd.DataFrame(existing, columns=columns) if existing else pd.DataFrame(columns=columns)
        if not is_cardio and not df.empty:
            df["weight"] = [WeightConverter.to_display(w or 0, self.weight_unit) for w in df["weight"]]
        edited = st.data_editor(
            df, num_rows="dynamic", use_container_width=True, key=f"editor_{kind}_{date}_{exercise_id}"
        )
        if st.button("Save", key="record_save"):
            try:
                count = self._save_records(user, kind, date, exercise_id, self._editor_rows(edited))
                st.success(f"Saved {count} records")
            except ValueError as e:
                st.error(str(e))

    def _history_data(self, user: Optional[dict], start: str, end: str) -> dict[str, list[str]]:
        if user is not None:
            return self.workouts.get_body_parts_by_date_range(user["id"], start, end)
        by_id = {e["id"]: e for e in self.exercises.guest_exercises(self.storage)}
        by_date, _ = collect_guest_records(self.storage)
        result: dict[str, list[str]] = {}
        for date, kinds in by_date.items():
            if not start <= date <= end:
                continue
            parts = {
                by_id[eid]["body_part"]
                for rows in kinds.values()
                for eid in rows
                if eid in by_id
            }
            if parts:
                result[date] = sorted(parts)
        return result

    def _calendar(self, year: int, month: int, trained: dict[str, list[str]]) -> None:
        rows = []
        for week_no, week in enumerate(calendar.Calendar().monthdatescalendar(year, month)):
            for day in week:
                if day.month != month:
                    continue
                parts = trained.get(day.isoformat(), [])
                rows.append(
                    {
                        "week": week_no,
                        "weekday": day.strftime("%a"),
                        "day": day.day,
                        "body_part": parts[0] if parts else "rest",
                        "parts": ", ".join(parts),
                    }
                )
        domain = list(BODY_PART_COLORS) + ["rest"]
        colors = list(BODY_PART_COLORS.values()) + ["#f3f4f6"]
        base = alt.Chart(pd.DataFrame(rows)).encode(
            x=alt.X("weekday:O", sort=["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"], title=None),
            y=alt.Y("week:O", axis=None),
        )
        cells = base.mark_rect(stroke="white").encode(
            color=alt.Color("body_part:N", scale=alt.Scale(domain=domain, range=colors)),
            tooltip=["day", "parts"],
        )
        labels = base.mark_text().encode(text="day:Q")
        st.altair_chart(cells + labels, use_container_width=True)

    def _history_tab(self, user: Optional[dict]) -> None:
        st.header("History")
        month = st.date_input("Month", datetime.date.today(), key="history_month").replace(day=1)
        last = month.replace(day=calendar.monthrange(month.year, month.month)[1])
        trained = self._history_data(user, month.isoformat(), last.isoformat())
        self._calendar(month.year, month.month, trained)
        if not trained:
            st.info("No training this month")
            return
        date = st.selectbox("Day", sorted(trained, reverse=True), key="history_day")
        st.write(", ".join(trained[date]))
        if user is None:
            by_date, _ = collect_guest_records(self.storage)
            names = {e["id"]: e["name"] for e in self.exercises.guest_exercises(self.storage)}
            day = by_date.get(date, {"workout": {}, "cardio": {}})
            for eid, rows in day["workout"].items():
                st.subheader(names.get(eid, eid))
                st.dataframe(pd.DataFrame(rows, columns=SET_COLUMNS))
            for eid, rows in day["cardio"].items():
                st.subheader(names.get(eid, eid))
                st.dataframe(pd.DataFrame(rows, columns=CARDIO_COLUMNS))
            return
        session = self.workouts.get_workout_session(user["id"], date)
        if session is None:
            return
        names = {e["id"]: e["name"] for e in self.exercises.get_exercises(user["id"])}
        details = self.workouts.get_session_details(user["id"], session["id"])
        for item in details["workout_exercises"]:
            st.subheader(names.get(item["exercise_id"], item["exercise_id"]))
            st.dataframe(pd.DataFrame(item["sets"], columns=SET_COLUMNS))
        for item in details["cardio_exercises"]:
            st.subheader(names.get(item["exercise_id"], item["exercise_id"]))
            st.dataframe(pd.DataFrame(item["records"], columns=CARDIO_COLUMNS))

    def _guest_progress(self, exercise_id: Optional[str], start: str) -> list[dict]:
        if exercise_id is None:
            return []
        maxima: dict[str, float] = {}
        for (date, eid), rows in guest_set_groups(self.storage).items():
            if eid != exercise_id or date < start:
                continue
            weights = [r.get("weight") or 0 for r in rows if not r.get("is_warmup")]
            if weights and max(weights) > 0:
                maxima[date] = max(weights)
        return ProgressTools.extract_max_weight_updates(
            {"date": d, "max_weight": w} for d, w in sorted(maxima.items())
        )

    def _stats_tab(self, user: Optional[dict]) -> None:
        st.header("Stats")
        default = self.config.get("default_stats_preset", "month")
        preset = st.selectbox("Period", PRESETS, index=PRESETS.index(default), key="stats_preset")
        if user is None:
            start = ProgressTools.start_date(preset).isoformat()
            ids = Big3.identify(self.exercises.guest_exercises(self.storage))
            progress = {key: self._guest_progress(eid, start) for key, eid in ids.items()}
            maxima = RecordFilters.calculate_max_weights(
                guest_set_groups(self.storage), include_warmup=False
            )
            weights = {key: maxima.get(eid, 0.0) if eid else 0.0 for key, eid in ids.items()}
            overview = Big3.create_data(weights, self.profiles.get_big3_targets(None))
        else:
            summary = self.statistics.training_summary(user["id"])
            cols = st.columns(3)
            cols[0].metric("Training Days", summary["total_days"])
            cols[1].metric("Weekly Streak", summary["weekly_streak"])
            cols[2].metric("This Week", summary["sessions_this_week"])
            progress = self.statistics.get_big3_progress(user["id"], preset)
            overview = self.statistics.big3_overview(
                user["id"], self.profiles.get_big3_targets(user["id"])
            )

        st.subheader("Big3 Progress")
        dates = sorted({r["date"] for rows in progress.values() for r in rows})
        if dates:
            series = {}
            for key, name, _, _ in Big3.LIFTS:
                by_date = {r["date"]: r["max_weight"] for r in progress.get(key, [])}
                series[name] = [
                    WeightConverter.to_display(by_date[d], self.weight_unit) if d in by_date else None
                    for d in dates
                ]
            self._line_chart(series, dates, x_label="Date", y_label=f"Max ({self.weight_unit})")
        else:
            st.info("No Big3 records in this period")
        self._bar_chart(
            {
                "current": [WeightConverter.to_display(o["current"], self.weight_unit) for o in overview],
                "target": [WeightConverter.to_display(o["target"], self.weight_unit) for o in overview],
            },
            [o["name"] for o in overview],
            x_label="Lift",
            y_label=self.weight_unit,
        )
        for item in overview:
            st.progress(item["progress"] / 100, text=f"{item['name']} {item['progress']}%")

        if user is not None:
            history = self.profiles.get_profile_history(user["id"], preset)
            if history:
                st.subheader("Body")
                x = [h["recorded_at"][:10] for h in history]
                self._line_chart(
                    {"weight": [h["weight"] for h in history]}, x, x_label="Date", y_label="kg"
                )
                self._line_chart(
                    {"body_fat": [h["body_fat"] for h in history]}, x, x_label="Date", y_label="%"
                )

    def _profile_form(self, profile: dict) -> Optional[dict]:
        values = {}
        with st.form("profile_form"):
            for field in MEASUREMENT_FIELDS + TARGET_FIELDS:
                values[field] = st.number_input(
                    field.replace("_", " ").title(),
                    min_value=0.0,
                    value=float(profile.get(field) or 0.0),
                    key=f"profile_{field}",
                )
            submitted = st.form_submit_button("Save Profile")
        if not submitted:
            return None
        return {k: v for k, v in values.items() if v > 0}

    def _profile_tab(self, user: Optional[dict]) -> None:
        st.header("Profile")
        if user is None:
            profile = load_json(self.storage, GUEST_PROFILE_KEY, {})
        else:
            profile = self.profiles.get_profile(user["id"])
        bmi = BodyMetrics.calculate_bmi(profile.get("height"), profile.get("weight"))
        if bmi:
            st.metric("BMI", bmi, BodyMetrics.bmi_category(bmi), delta_color="off")
            st.progress(BodyMetrics.bmi_percentage(bmi) / 100)
        composition = BodyMetrics.body_composition(
            profile.get("weight"), profile.get("body_fat"), profile.get("muscle_mass")
        )
        if composition is not None:
            st.dataframe(pd.DataFrame([composition]))

        values = self._profile_form(profile)
        if values is not None:
            try:
                if user is None:
                    self.profiles.validate(values)
                    self.storage[GUEST_PROFILE_KEY] = json.dumps({**profile, **values})
                else:
                    self.profiles.update_profile(user["id"], values)
                st.success("Profile saved")
            except ValueError as e:
                st.error(str(e))

        if user is None:
            return
        st.subheader("Data")
        st.download_button(
            "Export CSV",
            self.workouts.export_all_data(user["id"]),
            file_name="musclegrow_export.csv",
            mime="text/csv",
        )
        confirm = st.checkbox("I understand my records will be deleted", key="confirm_delete")
        if st.button("Delete All Data", key="delete_data", disabled=not confirm):
            result = self.workouts.delete_user_all_data(user["id"])
            st.success(f"Deleted {result['deleted_sessions']} sessions")
        if not self.auth.has_password(user["id"]):
            new_password = st.text_input("New Password", type="password", key="set_password")
            if st.button("Set Password", key="set_password_btn"):
                try:
                    self.auth.set_password(user["id"], new_password)
                    st.success("Password set")
                except ValueError as e:
                    st.error(str(e))

    def run(self) -> None:
        st.title("MuscleGrow")
        user = self._current_user()
        self._create_sidebar(user)
        result = st.session_state.migration_result
        if result is not None:
            if result["status"] == "migrated":
                st.success(
                    f"Imported {result['dates']} days, {result['sets']} sets and "
                    f"{result['cardio_records']} cardio records from guest mode"
                )
            elif result["status"] in ("partial", "no_exercises"):
                st.warning(f"Guest data could not be fully imported ({result['status']})")
            st.session_state.migration_result = None
        if user is None and not st.session_state.guest_mode:
            st.info("Sign in or continue as a guest to start recording.")
            return
        record_tab, history_tab, stats_tab, profile_tab = st.tabs(
            ["Record", "History", "Stats", "Profile"]
        )
        with record_tab:
            self._record_tab(user)
        with history_tab:
            self._history_tab(user)
        with stats_tab:
            self._stats_tab(user)
        with profile_tab:
            self._profile_tab(user)


if __name__ == "__main__":
    from logging_config import configure_logging

    db_path = os.environ.get("DB_PATH", "musclegrow.db")
    yaml_path = os.environ.get("YAML_PATH", "settings.yaml")
    app = MuscleGrowApp(db_path=db_path, yaml_path=yaml_path)
    configure_logging(app.config.get("log_level", "INFO"), app.config.get("log_file"))
    app.run()
