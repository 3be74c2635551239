"""Long-lived agent: owns the settings, the two run states, and the operator controls."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional

from .api import ApiClient
from .config import Settings, save_settings
from .errors import AuthenticationError, LimitlessError, StorageError
from .hashes import ChangeHashTracker
from .llm import LlmClient
from .scheduler import SyncMode, SyncResult, SyncScheduler
from .state import RunState
from .store import DocumentStore
from .summarize import SummarizationPipeline, SummaryResult
from .util import eprint, progress_print, today_in
from .writer import DocumentWriter


@dataclass
class CredentialCheck:
    ok: bool
    message: str
    models: List[str] = field(default_factory=list)


class SyncAgent:
    def __init__(self, settings: Settings, settings_path: Optional[Path]=None,
                 notify: Optional[Callable[[str], None]]=None, verbose: bool=False,
                 api_client: Optional[ApiClient]=None, llm_client: Optional[LlmClient]=None,
                 today: Optional[Callable[[], date]]=None, initial_stagger: float=0.5):
        self.settings = settings
        self.settings_path = settings_path
        self.notify = notify or progress_print
        self.verbose = verbose or settings.debug_mode

        self.store = DocumentStore(settings.vault(), verbose=self.verbose)
        self.client = api_client or ApiClient(
            settings.api_url, settings.api_key,
            timezone=settings.timezone if settings.use_timezone else None,
            verbose=self.verbose)
        self.writer = DocumentWriter(self.store, settings.output_folder, timezone=settings.effective_timezone,
                                     debug=settings.debug_mode, verbose=self.verbose)
        self.sync_state = RunState("sync")
        self.scheduler = SyncScheduler(settings, self.client, self.writer, state=self.sync_state,
                                       persist=self.save, notify=self.notify, today=today,
                                       initial_stagger=initial_stagger, verbose=self.verbose)

        self.llm = llm_client or LlmClient(settings.openai_api_key, settings.openai_model_name,
                                           api_url=settings.openai_api_url, verbose=self.verbose)
        self.hashes = ChangeHashTracker(self.store, settings.output_folder, verbose=self.verbose)
        self.summary_state = RunState("summarization")
        self.summarizer = SummarizationPipeline(settings, self.store, self.hashes, self.llm,
                                                state=self.summary_state, notify=self.notify,
                                                verbose=self.verbose)

    def _log(self, msg: str):
        eprint(f"[Agent] {msg}", self.verbose)

    def save(self, settings: Optional[Settings]=None):
        save_settings(settings or self.settings, self.settings_path)

    # ── Sync controls ────────────────────────────────────────────────────────
    def sync(self, full: bool=False, start_date: Optional[str]=None) -> Optional[SyncResult]:
        mode = SyncMode.FULL if full else SyncMode.INCREMENTAL
        return self.scheduler.run(mode, start_date=start_date)

    def cancel_sync(self) -> bool:
        return self.scheduler.cancel()

    def reset_cursor(self) -> bool:
        if self.sync_state.is_active:
            self.notify("Cannot reset the sync cursor while a sync is running")
            return False
        self.settings.last_sync_timestamp = ""
        self.save()
        self.notify("Sync cursor reset; the next sync starts from the configured start date")
        return True

    def test_api_connection(self) -> bool:
        if not self.settings.api_key:
            self.notify("Please enter an API key first")
            return False
        if not self.sync_state.is_active:
            self.client.reset()
        self.notify("Testing connection to Limitless API...")
        try:
            self.client.fetch_page(day=today_in(self.settings.tz()))
        except AuthenticationError:
            self.notify("API key is invalid. Please check your API key.")
            return False
        except LimitlessError as e:
            self.notify(f"Error connecting to Limitless API: {e}")
            return False
        self.notify("Connection successful! API key is valid.")
        return True

    # ── Summarization controls ───────────────────────────────────────────────
    def summarize(self, force: bool=False) -> Optional[SummaryResult]:
        if not self.settings.summarization_enabled:
            self.notify("Summarization is not enabled. Enable it in the settings.")
            return None
        if not self.settings.openai_api_key:
            self.notify("Please set an OpenAI API key before summarizing")
            return None
        return self.summarizer.summarize_all(force_all=force)

    def cancel_summarization(self) -> bool:
        return self.summarizer.cancel()

    def check_llm_credential(self) -> CredentialCheck:
        if not self.settings.openai_api_key:
            return CredentialCheck(False, "Please enter an OpenAI API key first")
        if not self.summary_state.is_active:
            self.llm.reset()
        models = self.llm.list_models()
        if not models:
            return CredentialCheck(False, "Could not fetch available models. Please check your API key.")
        if self.settings.openai_model_name not in models:
            return CredentialCheck(
                False,
                f'API key is valid, but model "{self.settings.openai_model_name}" was not found.',
                models)
        return CredentialCheck(True, f"OpenAI connection successful! Found {len(models)} available models.", models)

    def test_llm_connection(self) -> CredentialCheck:
        check = self.check_llm_credential()
        self.notify(check.message)
        return check

    def enable_summarization(self) -> CredentialCheck:
        """Turn summarization on only if the LLM credential and model validate."""
        check = self.check_llm_credential()
        self.settings.summarization_enabled = check.ok
        self.save()
        if check.ok:
            self.notify("Summarization enabled")
        else:
            self.notify(f"Summarization not enabled: {check.message}")
        return check

    def disable_summarization(self):
        self.settings.summarization_enabled = False
        self.save()

    def set_openai_api_key(self, key: str) -> CredentialCheck:
        self.settings.set_persistent("openai_api_key", key)
        self.llm.key = key
        if not key:
            self.settings.summarization_enabled = False
            self.save()
            self.notify("Summarization has been disabled because the API key was removed")
            return CredentialCheck(False, "API key removed")
        if self.settings.summarization_enabled:
            return self.enable_summarization()
        self.save()
        return CredentialCheck(True, "API key saved")

    # ── Timer ────────────────────────────────────────────────────────────────
    def tick(self):
        """One auto-sync firing; skips anything already running."""
        if self.settings.api_key and not self.sync_state.is_active:
            self.sync()
        else:
            self._log("Skipping scheduled sync")
        if (self.settings.summarization_enabled and self.settings.openai_api_key
                and not self.summary_state.is_active):
            self.summarize()

    def run_forever(self, stop: threading.Event, interval_minutes: Optional[float]=None):
        interval = (interval_minutes or self.settings.sync_interval_minutes) * 60
        self.notify(f"Auto-sync every {interval / 60:g} minutes. Press Ctrl-C to stop.")
        while not stop.is_set():
            try:
                self.tick()
            except StorageError as e:
                self.notify(f"Could not save settings: {e}")
            if stop.wait(interval):
                break
