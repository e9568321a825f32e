"""Bucketed long-poll emulation over a persisted cursor.

Each `wait` invocation is short-lived and stateless apart from the cursor.
Progress is quantized into buckets so that a caller chaining cursors wakes
up roughly five times per job plus once when the job is done, regardless of
member count or poll interval.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agent_council.jobs.contracts import read_text_if_exists, write_text_atomic
from agent_council.jobs.errors import InvalidArgumentError
from agent_council.jobs.models import OverallState, StatusSnapshot
from agent_council.jobs.status import DEFAULT_STALE_WORKER_GRACE_SECONDS, compute_status
from agent_council.jobs.store import JobPaths
from agent_council.jobs.ui import build_ui_payload

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 250
MIN_INTERVAL_MS = 50
TARGET_UPDATES_PER_JOB = 5
AUTO_BUCKET = "auto"


@dataclass(slots=True, frozen=True)
class WaitCursor:
    """Quantized polling position: `v2:<bucketSize>:<dispatch>:<doneBucket>:<isDone>`."""

    bucket_size: int
    dispatch_bucket: int
    done_bucket: int
    is_done: bool

    def format(self) -> str:
        return (
            f"v2:{self.bucket_size}:{self.dispatch_bucket}:"
            f"{self.done_bucket}:{1 if self.is_done else 0}"
        )

    @classmethod
    def parse(cls, raw: str | None) -> WaitCursor | None:
        """Parse v2 cursors and legacy v1 ones; None for anything unrecognized."""

        parts = (raw or "").strip().split(":")
        try:
            if parts[0] == "v1" and len(parts) == 4:
                bucket_size, dispatch_bucket, done_bucket = int(parts[1]), 0, int(parts[2])
                is_done = parts[3] == "1"
            elif parts[0] == "v2" and len(parts) == 5:
                bucket_size, dispatch_bucket, done_bucket = (
                    int(parts[1]),
                    int(parts[2]),
                    int(parts[3]),
                )
                is_done = parts[4] == "1"
            else:
                return None
        except ValueError:
            return None
        if bucket_size <= 0 or dispatch_bucket < 0 or done_bucket < 0:
            return None
        return cls(
            bucket_size=bucket_size,
            dispatch_bucket=dispatch_bucket,
            done_bucket=done_bucket,
            is_done=is_done,
        )


@dataclass(slots=True)
class WaitResult:
    """Snapshot returned by one wait call together with the cursor to pass next."""

    snapshot: StatusSnapshot
    cursor: WaitCursor
    changed: bool

    def to_payload(self) -> dict[str, Any]:
        snapshot = self.snapshot
        return {
            "jobDir": str(snapshot.job_dir),
            "id": snapshot.id,
            "chairmanRole": snapshot.chairman_role,
            "overallState": snapshot.overall_state.value,
            "counts": snapshot.counts.to_payload(),
            "members": [
                {
                    "member": member.member,
                    "state": member.state.value,
                    "exitCode": member.exit_code,
                    "message": member.message,
                }
                for member in snapshot.members
            ],
            "ui": build_ui_payload(snapshot),
            "cursor": self.cursor.format(),
        }


def resolve_bucket_size(
    bucket: str | int | None,
    total_members: int,
    previous: WaitCursor | None,
) -> int:
    """Caller pin, else the previous cursor's size, else ~5 updates per job."""

    if bucket is None:
        if previous is not None:
            return previous.bucket_size
    elif str(bucket).strip().lower() != AUTO_BUCKET:
        try:
            size = int(str(bucket).strip())
        except ValueError as error:
            raise InvalidArgumentError(f"wait: invalid --bucket: {bucket}") from error
        if size <= 0:
            raise InvalidArgumentError(f"wait: invalid --bucket: {bucket}")
        return size

    if total_members <= 0:
        return 1
    return max(1, math.ceil(total_members / TARGET_UPDATES_PER_JOB))


def cursor_for(snapshot: StatusSnapshot, bucket_size: int) -> WaitCursor:
    counts = snapshot.counts
    return WaitCursor(
        bucket_size=bucket_size,
        dispatch_bucket=1 if counts.total > 0 and counts.queued == 0 else 0,
        done_bucket=counts.terminal // bucket_size,
        is_done=snapshot.overall_state is OverallState.DONE,
    )


def wait_for_progress(  # noqa: PLR0913
    job_dir: str | Path,
    *,
    cursor: str | None = None,
    bucket: str | int | None = None,
    interval_ms: int = DEFAULT_INTERVAL_MS,
    timeout_ms: int = 0,
    stale_worker_grace_seconds: float = DEFAULT_STALE_WORKER_GRACE_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> WaitResult:
    """Block until the bucketed cursor moves, the job finishes, or the timeout expires.

    Without a previous cursor (neither passed nor persisted) the current
    position is recorded and returned immediately.
    """

    if interval_ms <= 0:
        raise InvalidArgumentError(f"wait: invalid --interval-ms: {interval_ms}")
    if timeout_ms < 0:
        raise InvalidArgumentError(f"wait: invalid --timeout-ms: {timeout_ms}")

    paths = JobPaths.resolve(job_dir)
    snapshot = compute_status(paths.job_dir, stale_worker_grace_seconds=stale_worker_grace_seconds)

    previous_raw = cursor if cursor is not None else read_text_if_exists(paths.cursor_file)
    previous = WaitCursor.parse(previous_raw)
    bucket_size = resolve_bucket_size(bucket, snapshot.counts.total, previous)
    current = cursor_for(snapshot, bucket_size)

    if previous is None:
        return _persist(paths, WaitResult(snapshot=snapshot, cursor=current, changed=True))
    if current != previous:
        return _persist(paths, WaitResult(snapshot=snapshot, cursor=current, changed=True))
    if previous.is_done:
        # Finished jobs never move again.
        return _persist(paths, WaitResult(snapshot=snapshot, cursor=current, changed=False))

    interval_seconds = max(MIN_INTERVAL_MS, interval_ms) / 1000
    deadline = clock() + timeout_ms / 1000 if timeout_ms > 0 else None
    while deadline is None or clock() < deadline:
        sleep(interval_seconds)
        snapshot = compute_status(
            paths.job_dir,
            stale_worker_grace_seconds=stale_worker_grace_seconds,
        )
        current = cursor_for(snapshot, bucket_size)
        if current != previous:
            return _persist(paths, WaitResult(snapshot=snapshot, cursor=current, changed=True))

    logger.debug("wait timed out for %s at cursor %s", paths.job_dir, current.format())
    return _persist(paths, WaitResult(snapshot=snapshot, cursor=current, changed=False))


def _persist(paths: JobPaths, result: WaitResult) -> WaitResult:
    write_text_atomic(paths.cursor_file, result.cursor.format())
    return result
