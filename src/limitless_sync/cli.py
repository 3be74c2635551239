from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Callable, Optional

from . import __version__
from .agent import SyncAgent
from .config import SETTINGS_PATH, load_settings
from .errors import ConfigError, LimitlessError
from .state import Phase, RunState
from .util import progress_print

POLL_INTERVAL = 0.5

# ── Progress ─────────────────────────────────────────────────────────────────
def run_with_progress(state: RunState, target: Callable[[], object], cancel: Callable[[], bool],
                      quiet: bool=False) -> object:
    """Run ``target`` on a worker thread, echo the live status, and turn Ctrl-C into a cancel."""
    outcome = {}

    def runner():
        outcome["result"] = target()

    thread = threading.Thread(target=runner, name=f"{state.name}-run", daemon=True)
    previous = signal.getsignal(signal.SIGINT)

    def on_interrupt(signum, frame):
        progress_print("Interrupted; cancelling...", quiet)
        cancel()

    signal.signal(signal.SIGINT, on_interrupt)
    try:
        thread.start()
        last = None
        while thread.is_alive():
            thread.join(POLL_INTERVAL)
            snap = state.snapshot()
            if snap.active and snap.status and snap.status != last:
                pct = f"[{snap.percent:3d}%] " if snap.total else ""
                progress_print(f"{pct}{snap.status}", quiet)
                last = snap.status
    finally:
        signal.signal(signal.SIGINT, previous)
    return outcome.get("result")

# ── Command Handlers ────────────────────────────────────────────────────────
def handle_sync(agent: SyncAgent, args) -> int:
    full = args.cmd == "full-sync"
    start = getattr(args, "start_date", None)
    result = run_with_progress(agent.sync_state, lambda: agent.sync(full=full, start_date=start),
                               agent.cancel_sync, args.quiet)
    if result is None:
        return 1
    if args.verbose and result.days_failed:
        for d in result.days_failed:
            progress_print(f"  failed: {d} ({result.days[d].error})", args.quiet)
    return 1 if result.outcome is Phase.FAILED else 0

def handle_summarize(agent: SyncAgent, args) -> int:
    result = run_with_progress(agent.summary_state, lambda: agent.summarize(force=args.force),
                               agent.cancel_summarization, args.quiet)
    if result is None:
        return 1
    for path, error in result.failed:
        progress_print(f"  failed: {path} ({error})", args.quiet)
    return 1 if result.outcome is Phase.FAILED else 0

def handle_reset_cursor(agent: SyncAgent, args) -> int:
    return 0 if agent.reset_cursor() else 1

def handle_test_api(agent: SyncAgent, args) -> int:
    return 0 if agent.test_api_connection() else 1

def handle_test_llm(agent: SyncAgent, args) -> int:
    return 0 if agent.test_llm_connection().ok else 1

def handle_models(agent: SyncAgent, args) -> int:
    check = agent.check_llm_credential()
    if not check.models:
        print(check.message, file=sys.stderr)
        return 1
    for model in check.models:
        marker = "*" if model == agent.settings.openai_model_name else " "
        print(f"{marker} {model}")
    return 0

def handle_enable_summarization(agent: SyncAgent, args) -> int:
    return 0 if agent.enable_summarization().ok else 1

def handle_disable_summarization(agent: SyncAgent, args) -> int:
    agent.disable_summarization()
    progress_print("Summarization disabled", args.quiet)
    return 0

def handle_status(agent: SyncAgent, args) -> int:
    s = agent.settings
    print(f"Vault:            {s.vault()}")
    print(f"Output folder:    {s.output_folder}")
    print(f"Timezone:         {s.effective_timezone}")
    print(f"Start date:       {s.start_date}")
    print(f"Last sync cursor: {s.last_sync_timestamp or '(never synced)'}")
    print(f"Summarization:    {'enabled' if s.summarization_enabled else 'disabled'}"
          f" (model {s.openai_model_name}, folder {s.summary_output_folder})")
    return 0

def handle_run(agent: SyncAgent, args) -> int:
    stop = threading.Event()
    previous = signal.getsignal(signal.SIGINT)

    def on_interrupt(signum, frame):
        progress_print("Stopping; cancelling active runs...", args.quiet)
        stop.set()
        if agent.sync_state.is_active:
            agent.cancel_sync()
        if agent.summary_state.is_active:
            agent.cancel_summarization()

    signal.signal(signal.SIGINT, on_interrupt)
    try:
        agent.run_forever(stop, interval_minutes=args.interval)
    finally:
        signal.signal(signal.SIGINT, previous)
    return 0

# ── CLI Setup ────────────────────────────────────────────────────────────────
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="limitless-sync",
                                     description="Sync Limitless lifelogs into daily markdown notes")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output for debugging.")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress messages to stderr.")
    parser.add_argument("--config", type=Path, default=SETTINGS_PATH, help=f"Settings file (default: {SETTINGS_PATH}).")
    parser.add_argument("--vault", type=str, help="Root folder of the notes vault (overrides the settings file).")
    parser.add_argument("--timezone", type=str, help="IANA timezone for day boundaries (overrides the settings file).")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subs = parser.add_subparsers(dest="cmd", title="Commands", required=True)

    p_sync = subs.add_parser("sync", help="Incremental sync from the stored cursor (or the start date) to today.")
    p_sync.set_defaults(func=handle_sync)

    p_full = subs.add_parser("full-sync", help="Re-fetch and overwrite every day from the start date to today.")
    p_full.add_argument("--start-date", type=str, metavar="YYYY-MM-DD", help="Override the configured start date.")
    p_full.set_defaults(func=handle_sync)

    p_sum = subs.add_parser("summarize", help="Summarize notes that changed since they were last summarized.")
    p_sum.add_argument("--force", action="store_true", help="Summarize every note regardless of change hashes.")
    p_sum.set_defaults(func=handle_summarize)

    subs.add_parser("reset-cursor", help="Forget the stored sync cursor.").set_defaults(func=handle_reset_cursor)
    subs.add_parser("test-api", help="Check the Limitless API key.").set_defaults(func=handle_test_api)
    subs.add_parser("test-llm", help="Check the OpenAI API key and model.").set_defaults(func=handle_test_llm)
    subs.add_parser("models", help="List chat models available to the OpenAI key.").set_defaults(func=handle_models)
    subs.add_parser("enable-summarization",
                    help="Validate the OpenAI credential and enable summarization.").set_defaults(func=handle_enable_summarization)
    subs.add_parser("disable-summarization", help="Disable summarization.").set_defaults(func=handle_disable_summarization)
    subs.add_parser("status", help="Show configuration and the stored cursor.").set_defaults(func=handle_status)

    p_run = subs.add_parser("run", help="Keep running: sync (and summarize) on a timer.")
    p_run.add_argument("--interval", type=float, metavar="MINUTES", help="Override the configured sync interval.")
    p_run.set_defaults(func=handle_run)
    return parser

def main(argv: Optional[list]=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(args.config, verbose=args.verbose)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    settings.apply_overrides(vault_path=args.vault, timezone=args.timezone,
                             use_timezone=True if args.timezone else None)

    agent = SyncAgent(settings, settings_path=args.config,
                      notify=lambda msg: progress_print(msg, args.quiet), verbose=args.verbose)
    try:
        return args.func(agent, args)
    except LimitlessError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

if __name__ == "__main__":
    sys.exit(main())
