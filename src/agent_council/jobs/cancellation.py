"""Best-effort cancellation and explicit job removal."""

from __future__ import annotations

import logging
import os
import signal
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from agent_council.jobs.contracts import read_member_status
from agent_council.jobs.errors import JobNotFoundError
from agent_council.jobs.models import MemberState
from agent_council.jobs.store import JobPaths, remove_job

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StopReport:
    """Members that were sent a termination signal."""

    job_dir: Path
    signaled: list[str] = field(default_factory=list)

    @property
    def stopped_any(self) -> bool:
        return bool(self.signaled)


def stop_job(
    job_dir: str | Path,
    *,
    send_signal: Callable[[int, int], None] = os.kill,
) -> StopReport:
    """Send SIGTERM to every running member worker with a recorded pid.

    Does not wait for exit and does not edit status files; each worker
    records `canceled` itself once it sees the signal.
    """

    paths = JobPaths.resolve(job_dir)
    if not paths.members_dir.is_dir():
        raise JobNotFoundError("members folder", paths.members_dir)

    report = StopReport(job_dir=paths.job_dir)
    for slug in paths.member_slugs():
        status = read_member_status(paths.status_file(slug))
        if status is None or status.state is not MemberState.RUNNING or not status.pid:
            continue
        try:
            send_signal(status.pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.debug("Worker for %s (pid %s) already gone", status.member, status.pid)
            continue
        except PermissionError:
            logger.warning("Not permitted to signal %s (pid %s)", status.member, status.pid)
            continue
        report.signaled.append(status.member)
    return report


def clean_job(job_dir: str | Path) -> Path:
    """Delete the job directory, cursor included. Irreversible."""

    paths = JobPaths.resolve(job_dir)
    if not remove_job(paths):
        logger.debug("Nothing to clean at %s", paths.job_dir)
    return paths.job_dir
