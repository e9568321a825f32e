"""Read-only status aggregation over a job directory."""

from __future__ import annotations

import errno
import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from agent_council.jobs.contracts import parse_iso, read_job_meta, read_member_status
from agent_council.jobs.errors import JobNotFoundError
from agent_council.jobs.models import (
    MemberSnapshot,
    MemberState,
    MemberStatus,
    OverallState,
    StatusCounts,
    StatusSnapshot,
)
from agent_council.jobs.store import JobPaths

logger = logging.getLogger(__name__)

DEFAULT_STALE_WORKER_GRACE_SECONDS = 5.0
STALE_WORKER_MESSAGE = "worker exited without recording a result"


def compute_status(
    job_dir: str | Path,
    *,
    stale_worker_grace_seconds: float = DEFAULT_STALE_WORKER_GRACE_SECONDS,
    now: datetime | None = None,
) -> StatusSnapshot:
    """Snapshot job metadata and every member status.

    Each file is read once; no cross-file consistency is assumed. A member
    stuck in `running` whose worker pid is gone past the grace period is
    reported as `canceled` without touching its stored record.
    """

    paths = JobPaths.resolve(job_dir)
    if not paths.job_dir.is_dir():
        raise JobNotFoundError("jobDir", paths.job_dir)
    meta = read_job_meta(paths.job_file)
    if meta is None:
        raise JobNotFoundError("job.json", paths.job_file)
    if not paths.members_dir.is_dir():
        raise JobNotFoundError("members folder", paths.members_dir)

    moment = now or datetime.now(tz=UTC)
    counts = StatusCounts()
    members: list[MemberSnapshot] = []
    for slug in paths.member_slugs():
        status = read_member_status(paths.status_file(slug))
        if status is None:
            logger.debug("Skipping member %s without a readable status", slug)
            continue
        snapshot = _snapshot(
            status,
            slug=slug,
            now=moment,
            grace_seconds=stale_worker_grace_seconds,
        )
        counts.total += 1
        counts.add(snapshot.state)
        members.append(snapshot)

    members.sort(key=lambda member: member.member)
    return StatusSnapshot(
        job_dir=paths.job_dir,
        id=meta.id or None,
        chairman_role=meta.chairman_role or None,
        overall_state=overall_state(counts),
        counts=counts,
        members=members,
    )


def overall_state(counts: StatusCounts) -> OverallState:
    if counts.running == 0 and counts.queued == 0:
        return OverallState.DONE
    if counts.running > 0:
        return OverallState.RUNNING
    return OverallState.QUEUED


def _snapshot(
    status: MemberStatus,
    *,
    slug: str,
    now: datetime,
    grace_seconds: float,
) -> MemberSnapshot:
    if _is_stale_worker(status, now=now, grace_seconds=grace_seconds):
        return MemberSnapshot(
            member=status.member,
            state=MemberState.CANCELED,
            slug=slug,
            started_at=status.started_at,
            finished_at=None,
            exit_code=None,
            message=STALE_WORKER_MESSAGE,
        )
    return MemberSnapshot(
        member=status.member,
        state=status.state,
        slug=slug,
        started_at=status.started_at,
        finished_at=status.finished_at,
        exit_code=status.exit_code,
        message=status.message,
    )


def _is_stale_worker(status: MemberStatus, *, now: datetime, grace_seconds: float) -> bool:
    if status.state is not MemberState.RUNNING or status.pid is None:
        return False
    started_at = parse_iso(status.started_at)
    if started_at is None or (now - started_at).total_seconds() < grace_seconds:
        return False
    return not pid_alive(status.pid)


def pid_alive(pid: int) -> bool:
    """Whether a process with this pid currently exists."""

    if pid <= 0:
        return False
    if os.name == "nt":
        # Signal 0 is CTRL_C_EVENT on Windows; liveness cannot be probed this way.
        return True
    try:
        os.kill(pid, 0)
    except OSError as error:
        # EPERM means the process exists but belongs to someone else.
        return error.errno == errno.EPERM
    return True
