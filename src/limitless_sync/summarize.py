from __future__ import annotations

import posixpath
import traceback
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .config import Settings
from .errors import AuthenticationError, CancelledError, LimitlessError
from .hashes import ChangeHashTracker
from .llm import LlmClient
from .state import Phase, RunState
from .store import DocumentStore
from .util import eprint, format_timestamp, progress_print, utc_now


@dataclass
class SummaryResult:
    outcome: Phase
    message: str
    total: int = 0
    summarized: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)


class SummarizationPipeline:
    """Summarizes changed daily notes one at a time into a companion folder."""

    def __init__(self, settings: Settings, store: DocumentStore, hashes: ChangeHashTracker, llm: LlmClient,
                 state: Optional[RunState]=None, notify: Optional[Callable[[str], None]]=None,
                 verbose: bool=False):
        self.settings = settings
        self.store = store
        self.hashes = hashes
        self.llm = llm
        self.state = state or RunState("summarization")
        self.notify = notify or progress_print
        self.verbose = verbose
        self.llm.on_status = self.state.set_status

    def _log(self, msg: str):
        eprint(f"[Summary] {msg}", self.verbose)

    def summary_path(self, note_path: str) -> str:
        folder = self.settings.summary_output_folder.strip("/")
        return f"{folder}/{posixpath.basename(note_path)}"

    def summary_metadata(self, note_path: str) -> str:
        return "\n".join([
            "---",
            f"source: {note_path}",
            f"generated: {format_timestamp(utc_now())}",
            f"model: {self.llm.model}",
            "---",
        ])

    def cancel(self) -> bool:
        if not self.state.request_cancel():
            self.notify("No summarization in progress")
            return False
        self.llm.cancel_all()
        self.notify("Summarization is being cancelled...")
        return True

    def summarize_note(self, path: str):
        content = self.store.read(path)
        summary = self.llm.chat(self.settings.summarization_prompt, content, label=path)
        self.store.ensure_folder(self.settings.summary_output_folder)
        self.store.write(self.summary_path(path), f"{self.summary_metadata(path)}\n\n{summary}")
        # Only a written summary marks the note as up to date.
        self.hashes.record_hash(path, content)
        self._log(f"Summarized note: {path}")

    def summarize_all(self, force_all: bool=False) -> Optional[SummaryResult]:
        if not self.state.begin("Checking for notes to summarize..."):
            self.notify("Summarization already in progress")
            return None
        self.llm.reset()
        if self.state.cancel_requested:
            self.llm.cancel_all()

        result = SummaryResult(outcome=Phase.FAILED, message="")
        try:
            notes = self.hashes.changed_documents(force_all)
            result.total = len(notes)
            self.state.start_running(len(notes), f"Summarizing {len(notes)} notes...")
            self._log(f"Starting summarization of {len(notes)} notes")
            for i, path in enumerate(notes, 1):
                if self.state.cancel_requested:
                    break
                self.state.set_status(f"Summarizing note {i}/{len(notes)}: {path}")
                try:
                    self.summarize_note(path)
                    result.summarized.append(path)
                except CancelledError:
                    break
                except AuthenticationError:
                    raise
                except LimitlessError as e:
                    self._log(f"Error summarizing {path}: {e}")
                    result.failed.append((path, str(e)))
                self.state.advance()

            failed_note = f", {len(result.failed)} failed" if result.failed else ""
            if self.state.cancel_requested:
                result.outcome = Phase.CANCELLED
                result.message = f"Summarization cancelled. Summarized {len(result.summarized)}/{len(notes)} notes{failed_note}."
            elif not notes:
                result.outcome = Phase.COMPLETED
                result.message = "No notes need summarization"
            else:
                result.outcome = Phase.COMPLETED
                result.message = f"Summarization complete. Summarized {len(result.summarized)}/{len(notes)} notes{failed_note}."
        except AuthenticationError as e:
            result.outcome = Phase.FAILED
            result.message = f"Summarization failed: {e}"
        except Exception as e:
            eprint(traceback.format_exc(), self.verbose)
            result.outcome = Phase.FAILED
            result.message = f"Error during summarization: {e}"
        finally:
            if not result.message:
                result.message = "Summarization ended"
            self.state.finish(result.outcome, result.message)
        self.notify(result.message)
        return result
