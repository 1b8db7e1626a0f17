import os
import yaml
import keyring

from settings_schema import SettingsSchema, validate_settings

APP_VERSION = "1.0.0"

REQUIRED_ENV_VARS = (
    "MUSCLEGROW_AUTH_SECRET",
    "DB_PATH",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
)


class YamlConfig:
    """Load and save settings to a YAML file with optional encryption."""

    SENSITIVE_KEYS = {
        "auth_secret",
        "google_client_secret",
    }

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.service = "musclegrow"

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if self.encrypt:
            for key in list(data.keys()):
                if key in self.SENSITIVE_KEYS:
                    secret = keyring.get_password(self.service, key)
                    if secret is not None:
                        data[key] = secret
                    else:
                        data.pop(key, None)
        return data

    def save(self, data: dict) -> None:
        out = dict(data)
        if self.encrypt:
            for key in self.SENSITIVE_KEYS:
                if key in out:
                    keyring.set_password(self.service, key, str(out[key]))
                    out[key] = True
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)


class AppConfig:
    """Application settings merged from defaults, YAML and environment."""

    def __init__(self, yaml_path: str = "settings.yaml") -> None:
        self._yaml = YamlConfig(yaml_path)
        data = self._yaml.load()
        validate_settings(data)
        env_level = os.environ.get("LOG_LEVEL")
        if env_level:
            data["log_level"] = env_level.upper()
        self._settings = SettingsSchema(**data)

    @property
    def settings(self) -> SettingsSchema:
        return self._settings

    def get(self, key: str, default=None):
        return getattr(self._settings, key, default)

    def update(self, **values) -> None:
        data = self._yaml.load()
        data.update(values)
        validate_settings(data)
        self._yaml.save(data)
        self._settings = SettingsSchema(**data)


def check_env_vars() -> dict[str, bool]:
    """Report which deployment variables are present."""
    return {name: bool(os.environ.get(name)) for name in REQUIRED_ENV_VARS}


def validate_required_env_vars() -> None:
    missing = [name for name, ok in check_env_vars().items() if not ok]
    if missing:
        raise ValueError(
            f"missing required environment variables: {', '.join(missing)}"
        )
