import os
import sys
import json
import datetime
import unittest
import warnings
from altair.utils.deprecation import AltairDeprecationWarning

warnings.simplefilter("ignore", AltairDeprecationWarning)

from streamlit.testing.v1 import AppTest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import MuscleGrowAPI


def _find_by_label(elements, label):
    for idx, elem in enumerate(elements):
        if getattr(elem, "label", None) == label:
            return idx
    raise AssertionError(f"Element with label '{label}' not found")


class StreamlitAppTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_gui.db"
        self.yaml_path = "test_gui_settings.yaml"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        if os.path.exists(self.yaml_path):
            os.remove(self.yaml_path)
        os.environ["DB_PATH"] = self.db_path
        os.environ["YAML_PATH"] = self.yaml_path
        os.environ["TEST_MODE"] = "1"
        self.at = AppTest.from_file("../streamlit_app.py", default_timeout=20)
        self.at.run(timeout=20)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        if os.path.exists(self.yaml_path):
            os.remove(self.yaml_path)
        os.environ.pop("TEST_MODE", None)

    def test_guest_mode_renders_tabs(self) -> None:
        self.assertEqual(len(self.at.exception), 0)
        labels = [t.label for t in self.at.tabs]
        self.assertEqual(labels, ["Record", "History", "Stats", "Profile"])
        self.assertTrue(self.at.session_state["guest_mode"])

    def test_guest_profile_saved_locally(self) -> None:
        idx = _find_by_label(self.at.number_input, "Height")
        self.at.number_input[idx].set_value(175.0)
        idx = _find_by_label(self.at.number_input, "Weight")
        self.at.number_input[idx].set_value(70.0)
        idx = _find_by_label(self.at.button, "Save Profile")
        self.at.button[idx].click()
        self.at.run()
        profile = json.loads(self.at.session_state["guest_storage"]["musclegrow_guest_profile"])
        self.assertEqual(profile["height"], 175.0)
        self.assertEqual(len(self.at.exception), 0)

    def test_guest_history_lists_cardio(self) -> None:
        today = datetime.date.today().isoformat()
        self.at.session_state["guest_storage"] = {
            f"cardio_{today}_mock-31": json.dumps([{"duration": 30, "distance": 5.0}])
        }
        self.at.run()
        self.assertEqual(len(self.at.exception), 0)
        self.assertTrue(any("ランニング" in s.value for s in self.at.subheader))

    def test_sign_in_migrates_guest_records(self) -> None:
        api = MuscleGrowAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        api.auth.sign_up("Alice", "alice@example.com", "password123")
        self.at.session_state["guest_storage"] = {
            "workout_2024-02-01_mock-1": json.dumps([{"weight": 80, "reps": 5}])
        }
        self.at.text_input(key="signin_email").input("alice@example.com")
        self.at.text_input(key="signin_password").input("password123")
        self.at.button(key="signin_btn").click()
        self.at.run()
        self.assertEqual(len(self.at.exception), 0)
        self.assertFalse(self.at.session_state["guest_mode"])
        self.assertEqual(
            self.at.session_state["guest_storage"], {"guest_data_migrated": "true"}
        )
        user = api.users.find_by_email("alice@example.com")
        session = api.workouts.get_workout_session(user["id"], "2024-02-01")
        self.assertIsNotNone(session)


if __name__ == "__main__":
    unittest.main()
