"""Persisted agent settings.

Settings live in a single JSON file (``~/.limitless/sync.json`` by default).
Loading overlays the file on top of the defaults, so a file written by an
older version keeps working; API keys fall back to the environment when the
file leaves them empty.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigError, StorageError
from .util import DEFAULT_TZ, eprint, get_tz, parse_date

API_URL             = "https://api.limitless.ai/v1"
OPENAI_API_URL      = "https://api.openai.com/v1"
API_KEY_ENV_VAR     = "LIMITLESS_API_KEY"
OPENAI_KEY_ENV_VAR  = "OPENAI_API_KEY"
CONFIG_ROOT         = Path.home() / ".limitless"
SETTINGS_PATH       = CONFIG_ROOT / "sync.json"

DEFAULT_PROMPT = (
    "Create a detailed summary of this daily note, highlighting key events, "
    "insights, and activities. Format the summary in markdown with clear sections."
)


def _default_start_date() -> str:
    return date(date.today().year, 1, 1).isoformat()


@dataclass
class Settings:
    api_url: str = API_URL
    api_key: str = ""
    vault_path: str = str(Path.home() / "Limitless Vault")
    output_folder: str = "Limitless"
    sync_interval_minutes: int = 60
    last_sync_timestamp: str = ""
    debug_mode: bool = False
    force_overwrite: bool = False
    ascending_order: bool = False
    start_date: str = field(default_factory=_default_start_date)
    use_timezone: bool = True
    timezone: str = DEFAULT_TZ
    summarization_enabled: bool = False
    openai_api_key: str = ""
    openai_model_name: str = "gpt-4"
    openai_api_url: str = OPENAI_API_URL
    summary_output_folder: str = "Summaries"
    summarization_prompt: str = DEFAULT_PROMPT
    max_concurrent_days: int = 5
    dispatch_delay: float = 0.2

    def __post_init__(self):
        # File values shadowed by one-off overrides; restored when saving.
        self._file_values: Dict[str, Any] = {}

    def apply_overrides(self, **values: Any):
        for key, value in values.items():
            if value is None:
                continue
            self._file_values.setdefault(key, getattr(self, key))
            setattr(self, key, value)

    def set_persistent(self, key: str, value: Any):
        self._file_values.pop(key, None)
        setattr(self, key, value)

    @property
    def effective_timezone(self) -> str:
        # Without a timezone hint the API buckets days in UTC.
        return self.timezone if self.use_timezone else "UTC"

    def tz(self):
        return get_tz(self.effective_timezone)

    def vault(self) -> Path:
        return Path(self.vault_path).expanduser()

    def parsed_start_date(self) -> date:
        return parse_date(self.start_date)

    def validate_for_sync(self):
        if not self.api_key:
            raise ConfigError(f"Limitless API key not configured. Set it in the settings file or {API_KEY_ENV_VAR}.")
        self.parsed_start_date()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.update(self._file_values)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def load_settings(path: Optional[Path]=None, verbose: bool=False) -> Settings:
    path = Path(path) if path else SETTINGS_PATH
    data: Dict[str, Any] = {}
    if path.exists():
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Could not read settings file {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"Settings file {path} must contain a JSON object")
    else:
        eprint(f"[Config] {path} not found; using defaults", verbose)
    settings = Settings.from_dict(data)
    if not settings.api_key:
        settings.apply_overrides(api_key=os.environ.get(API_KEY_ENV_VAR) or None)
    if not settings.openai_api_key:
        settings.apply_overrides(openai_api_key=os.environ.get(OPENAI_KEY_ENV_VAR) or None)
    return settings


def save_settings(settings: Settings, path: Optional[Path]=None):
    path = Path(path) if path else SETTINGS_PATH
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(settings.to_dict(), indent=2))
    except OSError as e:
        raise StorageError(f"Could not write settings file {path}: {e}")
