"""Central configuration loader for outreach.yaml with env var overrides."""

import os
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel


class TimingProfile(BaseModel):
    """Pacing bounds and daily caps for one named outreach profile."""

    # Per-message delay, randomized within range
    min_delay_seconds: float
    max_delay_seconds: float

    # Every N messages (N drawn from the range) take a longer break
    messages_per_break_min: int
    messages_per_break_max: int
    break_min_seconds: float
    break_max_seconds: float

    # Daily caps (the provider's approximate thresholds)
    daily_connection_limit: int
    daily_inmail_limit: int
    daily_message_limit: int

    max_session_duration_minutes: int = 45
    session_break_minutes: int = 15


BUILTIN_TIMING_PROFILES: Dict[str, TimingProfile] = {
    "conservative": TimingProfile(
        min_delay_seconds=30,
        max_delay_seconds=90,
        messages_per_break_min=3,
        messages_per_break_max=6,
        break_min_seconds=180,
        break_max_seconds=420,
        daily_connection_limit=50,
        daily_inmail_limit=15,
        daily_message_limit=100,
        max_session_duration_minutes=30,
        session_break_minutes=20,
    ),
    "moderate": TimingProfile(
        min_delay_seconds=15,
        max_delay_seconds=45,
        messages_per_break_min=5,
        messages_per_break_max=10,
        break_min_seconds=120,
        break_max_seconds=300,
        daily_connection_limit=80,
        daily_inmail_limit=25,
        daily_message_limit=150,
        max_session_duration_minutes=45,
        session_break_minutes=15,
    ),
    "aggressive": TimingProfile(
        min_delay_seconds=8,
        max_delay_seconds=20,
        messages_per_break_min=8,
        messages_per_break_max=15,
        break_min_seconds=60,
        break_max_seconds=180,
        daily_connection_limit=100,
        daily_inmail_limit=30,
        daily_message_limit=200,
        max_session_duration_minutes=60,
        session_break_minutes=10,
    ),
}


class ProviderConfig(BaseModel):
    dsn: str = ""
    port: int = 13443
    api_key: str = ""
    account_id: str = ""
    timeout: float = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.dsn and self.api_key and self.account_id)

    @property
    def base_url(self) -> str:
        return f"https://{self.dsn}.unipile.com:{self.port}/api/v1"


class TrackerConfig(BaseModel):
    base_url: str = "http://localhost:3000"
    timeout: float = 15.0


class OutreachConfig(BaseModel):
    timing_profile: str = "moderate"
    profiles: Dict[str, TimingProfile] = {}
    sync_interval_seconds: float = 60.0
    tick_seconds: float = 1.0

    def active_profile(self) -> TimingProfile:
        """Resolve the configured profile, YAML-defined profiles first."""
        available = {**BUILTIN_TIMING_PROFILES, **self.profiles}
        if self.timing_profile not in available:
            raise ValueError(
                f"Unknown timing profile '{self.timing_profile}'. "
                f"Available: {', '.join(sorted(available))}"
            )
        return available[self.timing_profile]


class StorageConfig(BaseModel):
    backend: str = "sqlite"  # "sqlite", "file", "memory"
    url: str = "sqlite:///./data/outreach.db"
    directory: str = "./data/store"


class APIConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_file: Optional[str] = None


class AppConfig(BaseModel):
    provider: ProviderConfig = ProviderConfig()
    tracker: TrackerConfig = TrackerConfig()
    outreach: OutreachConfig = OutreachConfig()
    storage: StorageConfig = StorageConfig()
    api: APIConfig = APIConfig()
    observability: ObservabilityConfig = ObservabilityConfig()


_DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "outreach.yaml"
_cached_config: Optional["AppConfig"] = None


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load config from YAML file and merge with environment variable overrides.

    Priority: env vars > YAML file > defaults.
    """
    global _cached_config

    if _cached_config is not None and config_path is None:
        return _cached_config

    load_dotenv()

    path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH

    data: Dict = {}
    if path.exists():
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

    config = AppConfig(**data)

    env_overrides = {
        "provider.dsn": os.getenv("UNIPILE_DSN"),
        "provider.port": os.getenv("UNIPILE_PORT"),
        "provider.api_key": os.getenv("UNIPILE_API_KEY"),
        "provider.account_id": os.getenv("UNIPILE_ACCOUNT_ID"),
        "tracker.base_url": os.getenv("TRACKER_API_URL"),
        "outreach.timing_profile": os.getenv("OUTREACH_TIMING_PROFILE"),
        "storage.backend": os.getenv("OUTREACH_STORAGE_BACKEND"),
        "storage.url": os.getenv("DATABASE_URL"),
        "api.host": os.getenv("API_HOST"),
        "api.port": os.getenv("API_PORT"),
        "observability.log_level": os.getenv("LOG_LEVEL"),
    }

    for dotted_key, value in env_overrides.items():
        if value is not None:
            parts = dotted_key.split(".")
            obj = config
            for part in parts[:-1]:
                obj = getattr(obj, part)
            field = parts[-1]
            field_info = type(obj).model_fields[field]
            cast_value = (
                field_info.annotation(value)
                if field_info.annotation in (int, float)
                else value
            )
            setattr(obj, field, cast_value)

    # Fail early on a typo in the profile name
    config.outreach.active_profile()

    if config_path is None:
        _cached_config = config

    return config


def reset_config_cache() -> None:
    """Drop the cached config (tests and the CLI's --config option)."""
    global _cached_config
    _cached_config = None
