"""
utils/checkpoint.py — Job checkpoints for crash recovery.

Persists the position of long-running batch jobs (the derivation sweep) so
that an interrupted run can resume after its last committed batch instead of
starting over.

Checkpoint file: ``<settings.checkpoint_dir>/checkpoints.json``
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from filelock import FileLock

import structlog

from rbi_shared.config import settings

log = structlog.get_logger(__name__)


def _paths() -> tuple[Path, Path]:
    directory = Path(settings.checkpoint_dir)
    directory.mkdir(parents=True, exist_ok=True)
    return directory / "checkpoints.json", directory / "checkpoints.json.lock"


def _read_all(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        log.warning("checkpoint_unreadable", path=str(path), error=str(exc))
        return {}


def save_checkpoint(job_name: str, state: dict[str, Any]) -> None:
    """Persist *state* for *job_name*.

    Uses a file lock so concurrent jobs don't corrupt the JSON.
    """
    path, lock = _paths()
    with FileLock(lock):
        data = _read_all(path)
        data[job_name] = state
        path.write_text(json.dumps(data, indent=2, default=str))
    log.debug("checkpoint_saved", job=job_name, **state)


def load_checkpoint(job_name: str) -> dict[str, Any] | None:
    """Return the saved state for *job_name*, or None."""
    path, lock = _paths()
    with FileLock(lock):
        state = _read_all(path).get(job_name)
    if state:
        log.info("checkpoint_loaded", job=job_name, **state)
    return state


def clear_checkpoint(job_name: str) -> None:
    """Remove the checkpoint entry on successful completion."""
    path, lock = _paths()
    with FileLock(lock):
        data = _read_all(path)
        if job_name in data:
            del data[job_name]
            path.write_text(json.dumps(data, indent=2, default=str))
    log.info("checkpoint_cleared", job=job_name)
