"""Run every enabled monitor once: query, compare, persist and notify."""

import json
import logging
import os
import subprocess
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fare_watch.errors import SearchError
from fare_watch.migration import migrate
from fare_watch.models import FareRecord, MonitorRecord
from fare_watch.modes import ModeHandler, change_message, handler_for, notify_condition
from fare_watch.storage import get_store_path, load_monitors, save_monitors

logger = logging.getLogger(__name__)

SearchFn = Callable[[str, list[str]], dict[str, Any]]
NotifyFn = Callable[[str], Any]
Clock = Callable[[], int]

NO_MONITORS = "No monitors to process"


def now_ms() -> int:
    return int(time.time() * 1000)


def search_timeout() -> float:
    """Hard cutoff in seconds for one search invocation."""
    try:
        return float(os.environ.get("SEARCH_TIMEOUT_SECONDS", "30"))
    except ValueError:
        return 30.0


class SubprocessSearch:
    """
    Search capability that runs ``fare-watch search`` in a child process.

    Each call gets a fresh browser session and a hard timeout; a timeout,
    non-zero exit or unparseable output raises SearchError.
    """

    def __init__(self, timeout: float | None = None, python: str | None = None) -> None:
        self.timeout = timeout if timeout is not None else search_timeout()
        self.python = python or sys.executable

    def command(self, mode: str, args: list[str]) -> list[str]:
        return [self.python, "-m", "fare_watch.cli", "search", mode, *args]

    def __call__(self, mode: str, args: list[str]) -> dict[str, Any]:
        cmd = self.command(mode, args)
        logger.debug("Running search: %s", " ".join(cmd[2:]))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, check=False)
        except subprocess.TimeoutExpired as e:
            raise SearchError(f"Search timed out after {self.timeout:g}s") from e
        except OSError as e:
            raise SearchError(f"Search could not start: {e}") from e

        if proc.returncode != 0:
            detail = (proc.stderr or "").strip().splitlines()
            raise SearchError(detail[-1] if detail else f"Search exited with status {proc.returncode}")
        try:
            data = json.loads(proc.stdout)
        except ValueError as e:
            raise SearchError(f"Search returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise SearchError("Search returned a non-object payload")
        return data


def fares_from_payload(data: dict[str, Any]) -> list[FareRecord]:
    """Flights from a search payload; absent or malformed ``flights`` means none."""
    flights = data.get("flights")
    if not isinstance(flights, list):
        return []
    return [FareRecord.from_dict(f) for f in flights if isinstance(f, dict)]


def view_table(data: dict[str, Any]) -> str:
    view = data.get("view")
    if isinstance(view, dict) and isinstance(view.get("table"), str):
        return view["table"]
    return ""


def build_report(title: str, table: str, tail: list[str]) -> str:
    lines = [title]
    if table:
        lines.append(table)
    lines.extend(line for line in tail if line)
    return "\n".join(lines)


@dataclass
class CheckResult:
    """Outcome of one monitor check."""

    record: MonitorRecord
    dirty: bool
    report: str
    notified: bool = False


@dataclass
class RunResult:
    """Outcome of a full run, records in store order."""

    records: list[MonitorRecord] = field(default_factory=list)
    reports: list[str] = field(default_factory=list)
    dirty: bool = False

    @property
    def text(self) -> str:
        return "\n\n".join(self.reports)


def _safe_notify(notify: NotifyFn, message: str) -> bool:
    try:
        notify(message)
        return True
    except Exception as e:
        logger.error("Notification failed: %s", e, exc_info=True)
        return False


def check_one(record: MonitorRecord, search: SearchFn, notify: NotifyFn, clock: Clock = now_ms) -> CheckResult:
    """
    Query and evaluate one (already migrated) monitor.

    Empty results and a missing target are reported without touching the
    comparison baseline. Search errors propagate to the caller.
    """
    handler: ModeHandler | None = handler_for(record.monitor_mode)
    if handler is None:
        checked = record.evolve(last_checked=clock())
        report = f"✈️ {record.label}\nConfiguration error: unsupported mode {record.mode or '(empty)'}"
        return CheckResult(checked, True, report)

    data = search(handler.search_mode.value, handler.query_args(record))
    fares = fares_from_payload(data)
    title = handler.report_title(record)

    if not fares:
        logger.info("Monitor %s: no options", record.label)
        return CheckResult(record.evolve(last_checked=clock()), True, f"{title}\n{handler.empty_message}")

    target = handler.select_target(fares, record)
    if target is None:
        logger.info("Monitor %s: target missing from %d fares", record.label, len(fares))
        return CheckResult(record.evolve(last_checked=clock()), True, f"{title}\n{handler.missing_target_message(record)}")

    current = handler.current_value(target)
    previous = handler.previous_value(record)
    report = build_report(title, view_table(data), handler.report_tail(record, target, current, previous))

    updated = handler.persist(record, target, current).evolve(last_checked=clock())
    notified = False
    if notify_condition(previous, current):
        logger.info("Monitor %s: %s -> %s, notifying", record.label, previous, current)
        notified = _safe_notify(notify, change_message(handler, record, target, current, previous))
    return CheckResult(updated, True, report, notified)


def run_all(records: list[MonitorRecord], search: SearchFn, notify: NotifyFn, clock: Clock = now_ms) -> RunResult:
    """
    Check every enabled monitor in store order.

    One monitor failing never stops the others: its error becomes a report
    line and its ``lastChecked`` is still updated.
    """
    result = RunResult()
    for record in records:
        if record.opaque or not record.is_enabled:
            result.records.append(record)
            continue

        record, migrated = migrate(record)
        if migrated:
            result.dirty = True
        try:
            outcome = check_one(record, search, notify, clock)
        except Exception as e:
            logger.exception("Monitor %s failed", record.label)
            result.records.append(record.evolve(last_checked=clock()))
            result.reports.append(f"✈️ {record.label}\nQuery failed: {e}")
            result.dirty = True
            continue

        result.records.append(outcome.record)
        result.dirty = result.dirty or outcome.dirty
        if outcome.report:
            result.reports.append(outcome.report)
    return result


def check_monitors(search: SearchFn, notify: NotifyFn, path: Path | None = None) -> RunResult:
    """Load the store, run all monitors and write the store back if anything changed."""
    path = path or get_store_path()
    records = load_monitors(path)
    if not records:
        logger.info("No monitors in %s", path)
        return RunResult()

    result = run_all(records, search, notify)
    if result.dirty:
        save_monitors(result.records, path)
        logger.info("Saved %d monitors to %s", len(result.records), path)
    return result
