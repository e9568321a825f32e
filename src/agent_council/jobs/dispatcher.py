"""Job creation and detached worker dispatch."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agent_council.config import CouncilConfig, resolve_chairman_role
from agent_council.jobs.contracts import job_meta_to_payload, utc_now_iso, write_member_status
from agent_council.jobs.errors import InvalidArgumentError
from agent_council.jobs.models import (
    JobMember,
    JobMeta,
    JobSettings,
    MemberSpec,
    MemberState,
    MemberStatus,
)
from agent_council.jobs.store import JobPaths, JobStore, new_job_id, unique_slugs

logger = logging.getLogger(__name__)

WORKER_MODULE = "agent_council.jobs.worker"


@dataclass(slots=True)
class StartOptions:
    """Caller overrides applied on top of the council config."""

    config_path: Path
    host_role: str = "unknown"
    chairman: str | None = None
    exclude_chairman: bool | None = None
    timeout_seconds: float | None = None


@dataclass(slots=True)
class WorkerLaunch:
    """Everything needed to start one member's worker process."""

    job_dir: Path
    member: str
    slug: str
    command: str
    timeout_seconds: float | None

    def argv(self) -> list[str]:
        args = [
            sys.executable,
            "-m",
            WORKER_MODULE,
            "--job-dir",
            str(self.job_dir),
            "--member",
            self.member,
            "--safe-member",
            self.slug,
            "--command",
            self.command,
        ]
        if self.timeout_seconds:
            args.extend(["--timeout", f"{self.timeout_seconds:g}"])
        return args


@dataclass(slots=True)
class JobStartResult:
    """Created job directory and its metadata."""

    paths: JobPaths
    meta: JobMeta

    def to_payload(self) -> dict[str, Any]:
        return {"jobDir": str(self.paths.job_dir), **job_meta_to_payload(self.meta)}


def spawn_detached_worker(launch: WorkerLaunch) -> None:
    """Start a worker in its own session and forget about it."""

    subprocess.Popen(  # noqa: S603
        launch.argv(),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        env=os.environ.copy(),
        close_fds=True,
        start_new_session=True,
    )


class CouncilDispatcher:
    """Creates a job directory and launches one worker per retained member."""

    def __init__(
        self,
        store: JobStore,
        launcher: Callable[[WorkerLaunch], None] = spawn_detached_worker,
    ) -> None:
        self.store = store
        self.launcher = launcher

    def start(self, prompt: str, config: CouncilConfig, options: StartOptions) -> JobStartResult:
        if not prompt.strip():
            raise InvalidArgumentError("start: missing prompt")

        chairman_role = resolve_chairman_role(
            options.chairman or config.chairman_role,
            options.host_role,
        )
        exclude_chairman = _resolve_exclusion(options.exclude_chairman, config)
        timeout_seconds = _resolve_timeout(options.timeout_seconds, config)

        members = select_members(
            config.members,
            chairman_role=chairman_role,
            exclude_chairman=exclude_chairman,
        )
        slugs = unique_slugs(member.name for member in members)
        meta = JobMeta(
            id=new_job_id(),
            created_at=utc_now_iso(),
            config_path=str(options.config_path),
            host_role=options.host_role,
            chairman_role=chairman_role,
            settings=JobSettings(
                exclude_chairman_from_members=exclude_chairman,
                timeout_seconds=timeout_seconds,
            ),
            members=[
                JobMember(
                    name=member.name,
                    command=member.command,
                    slug=slug,
                    emoji=member.emoji,
                    color=member.color,
                )
                for member, slug in zip(members, slugs, strict=True)
            ],
        )

        self.store.root_dir.mkdir(parents=True, exist_ok=True)
        paths = self.store.materialize(meta=meta, prompt=prompt)
        logger.info(
            "Created job %s with %d member(s), chairman=%s",
            meta.id,
            len(meta.members),
            chairman_role,
        )

        for member in meta.members:
            self._launch(paths, member, timeout_seconds)

        return JobStartResult(paths=paths, meta=meta)

    def _launch(self, paths: JobPaths, member: JobMember, timeout_seconds: float | None) -> None:
        launch = WorkerLaunch(
            job_dir=paths.job_dir,
            member=member.name,
            slug=member.slug,
            command=member.command,
            timeout_seconds=timeout_seconds,
        )
        try:
            self.launcher(launch)
        except OSError as error:
            # No worker exists to own this record, so the dispatcher closes it out.
            logger.error("Failed to launch worker for %s: %s", member.name, error)
            now = utc_now_iso()
            write_member_status(
                paths.status_file(member.slug),
                MemberStatus(
                    member=member.name,
                    state=MemberState.ERROR,
                    command=member.command,
                    queued_at=now,
                    finished_at=now,
                    message=f"Failed to launch worker: {error}",
                ),
            )


def select_members(
    members: list[MemberSpec],
    *,
    chairman_role: str,
    exclude_chairman: bool,
) -> list[MemberSpec]:
    """Drop incomplete members and, when exclusion is on, the chairman itself."""

    selected: list[MemberSpec] = []
    for member in members:
        if not member.name or not member.command:
            continue
        if exclude_chairman and member.name.lower() == chairman_role:
            continue
        selected.append(member)
    return selected


def _resolve_exclusion(override: bool | None, config: CouncilConfig) -> bool:
    if override is not None:
        return override
    if config.settings.exclude_chairman_from_members is not None:
        return config.settings.exclude_chairman_from_members
    return True


def _resolve_timeout(override: float | None, config: CouncilConfig) -> float | None:
    """CLI override, else the config value; non-positive values mean "not set"."""

    if override is not None and override > 0:
        return override
    if config.settings.timeout_seconds is not None and config.settings.timeout_seconds > 0:
        return config.settings.timeout_seconds
    return None
