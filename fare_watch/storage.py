"""JSON persistence for monitor records."""

import json
import logging
import os
import tempfile
from pathlib import Path

from fare_watch.models import MonitorRecord

logger = logging.getLogger(__name__)


def get_store_path() -> Path:
    """Get monitor store path from env or default."""
    path = os.environ.get("MONITORS_PATH", "data/monitors.json")
    return Path(path)


def load_monitors(path: Path | None = None) -> list[MonitorRecord]:
    """
    Read all monitor records in store order.

    A missing, unreadable or corrupt store yields an empty list. Entries that
    are not JSON objects are kept in place as pass-through records.
    """
    path = path or get_store_path()
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Monitor store %s unreadable: %s", path, e)
        return []
    if not isinstance(data, list):
        logger.warning("Monitor store %s is not a list; ignoring it", path)
        return []

    records = []
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            logger.warning("Monitor entry %d in %s is not an object; keeping it as-is", i, path)
            records.append(MonitorRecord.passthrough(item))
            continue
        records.append(MonitorRecord.from_dict(item))
    return records


def save_monitors(records: list[MonitorRecord], path: Path | None = None) -> None:
    """Rewrite the whole store (pretty-printed) through a temp file."""
    path = path or get_store_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload + "\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
