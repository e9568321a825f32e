"""Shared test fixtures."""

from __future__ import annotations

import os
import shlex
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from agent_council.jobs.contracts import write_member_status
from agent_council.jobs.dispatcher import WorkerLaunch
from agent_council.jobs.models import JobMember, JobMeta, JobSettings, MemberState, MemberStatus
from agent_council.jobs.store import JobPaths, JobStore

SRC_DIR = Path(__file__).resolve().parents[1] / "src"

ECHO_MEMBER_COMMAND = f"{shlex.quote(sys.executable)} -m agent_council.jobs.echo_member"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path: Path) -> None:
    """Keep COUNCIL_* settings from the developer shell out of tests."""

    for name in list(os.environ):
        if name.startswith("COUNCIL_"):
            monkeypatch.delenv(name, raising=False)
    skill_dir = tmp_path / "skill"
    skill_dir.mkdir()
    monkeypatch.setenv("COUNCIL_SKILL_DIR", str(skill_dir))
    # Detached workers are fresh interpreters; make the package importable there too.
    existing = os.environ.get("PYTHONPATH")
    monkeypatch.setenv(
        "PYTHONPATH",
        str(SRC_DIR) if not existing else f"{SRC_DIR}{os.pathsep}{existing}",
    )


@pytest.fixture()
def recorded_launches() -> list[WorkerLaunch]:
    return []


@pytest.fixture()
def recording_launcher(recorded_launches: list[WorkerLaunch]) -> Callable[[WorkerLaunch], None]:
    """Launcher that records worker launches instead of spawning processes."""

    return recorded_launches.append


@pytest.fixture()
def job_factory(tmp_path: Path) -> Callable[..., JobPaths]:
    """Materialize a job directory with queued members, without launching workers."""

    store = JobStore(tmp_path / "jobs")

    def _make(
        members: dict[str, str] | list[str],
        *,
        prompt: str = "Should we use library X?",
        job_id: str = "council-20261019-120000-abc123",
        chairman_role: str = "codex",
    ) -> JobPaths:
        commands = members if isinstance(members, dict) else dict.fromkeys(members, "true")
        meta = JobMeta(
            id=job_id,
            created_at="2026-10-19T12:00:00.000Z",
            config_path="council.config.yaml",
            host_role="unknown",
            chairman_role=chairman_role,
            settings=JobSettings(exclude_chairman_from_members=True, timeout_seconds=None),
            members=[
                JobMember(name=name, command=command, slug=name)
                for name, command in commands.items()
            ],
        )
        store.root_dir.mkdir(parents=True, exist_ok=True)
        return store.materialize(meta=meta, prompt=prompt)

    return _make


@pytest.fixture()
def set_member_state() -> Callable[..., None]:
    """Overwrite one member's status record as its worker would."""

    def _set(  # noqa: PLR0913
        paths: JobPaths,
        slug: str,
        state: MemberState,
        *,
        pid: int | None = None,
        exit_code: int | None = None,
        message: str | None = None,
        started_at: str | None = "2026-10-19T12:00:01.000Z",
        output: str | None = None,
        error: str | None = None,
    ) -> None:
        write_member_status(
            paths.status_file(slug),
            MemberStatus(
                member=slug,
                state=state,
                command="true",
                queued_at="2026-10-19T12:00:00.000Z",
                started_at=started_at if state is not MemberState.QUEUED else None,
                finished_at="2026-10-19T12:00:09.000Z" if state.is_terminal else None,
                pid=pid,
                exit_code=exit_code,
                message=message,
            ),
        )
        if output is not None:
            paths.output_file(slug).write_text(output, "utf-8")
        if error is not None:
            paths.error_file(slug).write_text(error, "utf-8")

    return _set


@pytest.fixture()
def echo_command() -> str:
    """Member command running the local demo member with this interpreter."""

    return ECHO_MEMBER_COMMAND
