"""Controllers for council job CLI commands."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agent_council.config import Settings, load_council_config
from agent_council.jobs.cancellation import clean_job, stop_job
from agent_council.jobs.dispatcher import (
    CouncilDispatcher,
    StartOptions,
    WorkerLaunch,
    spawn_detached_worker,
)
from agent_council.jobs.models import MemberState, StatusSnapshot
from agent_council.jobs.results import JobResults, collect_results
from agent_council.jobs.status import compute_status
from agent_council.jobs.store import JobStore
from agent_council.jobs.waiting import wait_for_progress

OUTPUT_JSON = "json"
OUTPUT_TEXT = "text"
OUTPUT_CHECKLIST = "checklist"


@dataclass(slots=True)
class StartCommand:
    """CLI input for job creation."""

    prompt: str
    config_path: Path | None = None
    chairman: str | None = None
    jobs_dir: Path | None = None
    timeout_seconds: float | None = None
    exclude_chairman: bool | None = None
    as_json: bool = False


@dataclass(slots=True)
class StatusCommand:
    """CLI input for a status snapshot."""

    job_dir: Path
    output_format: str = OUTPUT_JSON
    verbose: bool = False


@dataclass(slots=True)
class WaitCommand:
    """CLI input for one bucketed wait call."""

    job_dir: Path
    cursor: str | None = None
    bucket: str | None = None
    interval_ms: int | None = None
    timeout_ms: int = 0


@dataclass(slots=True)
class ResultsCommand:
    """CLI input for result collection."""

    job_dir: Path
    as_json: bool = False


@dataclass(slots=True)
class JobDirCommand:
    """CLI input for stop/clean operations."""

    job_dir: Path


class CouncilCliController:
    """Coordinates dispatch, inspection, and cancellation CLI operations."""

    def __init__(self, launcher: Callable[[WorkerLaunch], None] = spawn_detached_worker) -> None:
        self.launcher = launcher

    def start(self, command: StartCommand) -> list[str]:
        settings = Settings.from_env()
        config_path = settings.effective_config_path(command.config_path)
        config = load_council_config(config_path)
        dispatcher = CouncilDispatcher(
            store=JobStore(settings.effective_jobs_dir(command.jobs_dir)),
            launcher=self.launcher,
        )
        started = dispatcher.start(
            command.prompt,
            config,
            StartOptions(
                config_path=config_path,
                host_role=settings.effective_host_role(),
                chairman=command.chairman or settings.chairman,
                exclude_chairman=command.exclude_chairman,
                timeout_seconds=command.timeout_seconds,
            ),
        )
        if command.as_json:
            return [_dump(started.to_payload())]
        return [str(started.paths.job_dir)]

    def status(self, command: StatusCommand) -> list[str]:
        settings = Settings.from_env()
        snapshot = compute_status(
            command.job_dir,
            stale_worker_grace_seconds=settings.stale_worker_grace_seconds,
        )
        if command.output_format == OUTPUT_CHECKLIST:
            return render_checklist(snapshot)
        if command.output_format == OUTPUT_TEXT:
            return render_status_text(snapshot, verbose=command.verbose)
        return [_dump(snapshot.to_payload())]

    def wait(self, command: WaitCommand) -> list[str]:
        settings = Settings.from_env()
        result = wait_for_progress(
            command.job_dir,
            cursor=command.cursor,
            bucket=command.bucket,
            interval_ms=(
                settings.wait_interval_ms if command.interval_ms is None else command.interval_ms
            ),
            timeout_ms=command.timeout_ms,
            stale_worker_grace_seconds=settings.stale_worker_grace_seconds,
        )
        return [_dump(result.to_payload())]

    def results(self, command: ResultsCommand) -> list[str]:
        results = collect_results(command.job_dir)
        if command.as_json:
            return [_dump(results.to_payload())]
        return render_results_text(results)

    def stop(self, command: JobDirCommand) -> list[str]:
        report = stop_job(command.job_dir)
        if not report.stopped_any:
            return ["stop: no running members"]
        return [f"stop: sent SIGTERM to running members ({', '.join(report.signaled)})"]

    def clean(self, command: JobDirCommand) -> list[str]:
        return [f"cleaned: {clean_job(command.job_dir)}"]


def render_status_text(snapshot: StatusSnapshot, *, verbose: bool) -> list[str]:
    counts = snapshot.counts
    lines = [
        f"members {counts.terminal}/{counts.total} done; "
        f"running={counts.running} queued={counts.queued}",
    ]
    if verbose:
        lines.extend(
            f"- {member.member}: {member.state.value}{_exit_suffix(member.exit_code)}"
            for member in snapshot.members
        )
    return lines


def render_checklist(snapshot: StatusSnapshot) -> list[str]:
    counts = snapshot.counts
    header_id = f" ({snapshot.id})" if snapshot.id else ""
    lines = [
        f"Agent Council{header_id}",
        f"Progress: {counts.terminal}/{counts.total} done  "
        f"(running {counts.running}, queued {counts.queued})",
    ]
    for member in snapshot.members:
        if member.state is MemberState.DONE:
            mark = "[x]"
        elif member.state in (MemberState.QUEUED, MemberState.RUNNING):
            mark = "[ ]"
        else:
            mark = "[!]"
        lines.append(
            f"{mark} {member.member} — {member.state.value}{_exit_suffix(member.exit_code)}",
        )
    return lines


def render_results_text(results: JobResults) -> list[str]:
    lines: list[str] = []
    for member in results.members:
        lines.append("")
        lines.append(f"=== {member.member} ({member.state.value}) ===")
        if member.message:
            lines.append(member.message)
        body = member.output or member.error
        if body:
            lines.append(body.rstrip("\n"))
    return lines


def _exit_suffix(exit_code: int | None) -> str:
    return f" (exit {exit_code})" if exit_code is not None else ""


def _dump(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)
