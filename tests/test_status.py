from __future__ import annotations

import os
import shutil
from datetime import UTC, datetime
from pathlib import Path

import allure
import pytest

from agent_council.jobs import status as status_module
from agent_council.jobs.errors import JobNotFoundError
from agent_council.jobs.models import MemberState, OverallState
from agent_council.jobs.status import STALE_WORKER_MESSAGE, compute_status, pid_alive

pytestmark = [
    allure.epic("Job Orchestration"),
    allure.feature("Status Aggregator"),
]

LATER = datetime(2026, 10, 19, 12, 5, 0, tzinfo=UTC)


def test_missing_job_dir_raises_not_found(tmp_path: Path) -> None:
    with pytest.raises(JobNotFoundError, match="jobDir not found"):
        compute_status(tmp_path / "missing")


def test_missing_job_meta_raises_not_found(job_factory) -> None:
    paths = job_factory(["claude"])
    paths.job_file.unlink()

    with pytest.raises(JobNotFoundError, match=r"job\.json not found"):
        compute_status(paths.job_dir)


def test_missing_members_folder_raises_not_found(job_factory) -> None:
    paths = job_factory(["claude"])
    shutil.rmtree(paths.members_dir)

    with pytest.raises(JobNotFoundError, match="members folder not found"):
        compute_status(paths.job_dir)


def test_counts_and_overall_state_track_member_states(job_factory, set_member_state) -> None:
    paths = job_factory(["a", "b", "c", "d"])

    snapshot = compute_status(paths.job_dir)
    assert snapshot.overall_state is OverallState.QUEUED
    assert snapshot.counts.queued == 4

    set_member_state(paths, "a", MemberState.RUNNING, pid=os.getpid())
    set_member_state(paths, "b", MemberState.DONE, exit_code=0)
    snapshot = compute_status(paths.job_dir)
    assert snapshot.overall_state is OverallState.RUNNING
    assert (snapshot.counts.queued, snapshot.counts.running, snapshot.counts.done) == (2, 1, 1)

    set_member_state(paths, "a", MemberState.ERROR, exit_code=2)
    set_member_state(paths, "c", MemberState.TIMED_OUT, exit_code=124)
    set_member_state(paths, "d", MemberState.MISSING_CLI)
    snapshot = compute_status(paths.job_dir)
    assert snapshot.overall_state is OverallState.DONE
    assert snapshot.counts.to_payload() == {
        "total": 4,
        "queued": 0,
        "running": 0,
        "done": 1,
        "error": 1,
        "missing_cli": 1,
        "timed_out": 1,
        "canceled": 0,
    }
    assert snapshot.counts.terminal == 4


def test_members_are_sorted_and_payload_is_camel_cased(job_factory, set_member_state) -> None:
    paths = job_factory(["zeta", "alpha"])
    set_member_state(paths, "zeta", MemberState.ERROR, exit_code=1, message="Exited with code 1")

    payload = compute_status(paths.job_dir).to_payload()

    assert payload["id"] == "council-20261019-120000-abc123"
    assert payload["chairmanRole"] == "codex"
    assert payload["jobDir"] == str(paths.job_dir)
    assert [member["member"] for member in payload["members"]] == ["alpha", "zeta"]
    assert payload["members"][1] == {
        "member": "zeta",
        "state": "error",
        "startedAt": "2026-10-19T12:00:01.000Z",
        "finishedAt": "2026-10-19T12:00:09.000Z",
        "exitCode": 1,
        "message": "Exited with code 1",
    }


def test_status_reads_are_idempotent(job_factory, set_member_state) -> None:
    paths = job_factory(["a", "b"])
    set_member_state(paths, "a", MemberState.DONE, exit_code=0)

    first = compute_status(paths.job_dir, now=LATER)
    second = compute_status(paths.job_dir, now=LATER)

    assert first == second
    assert first.to_payload() == second.to_payload()


def test_unreadable_status_file_is_skipped(job_factory) -> None:
    paths = job_factory(["a", "b"])
    paths.status_file("b").write_text("{not json", "utf-8")

    snapshot = compute_status(paths.job_dir)

    assert [member.member for member in snapshot.members] == ["a"]
    assert snapshot.counts.total == 1


def test_dead_worker_past_grace_period_reads_as_canceled(
    job_factory,
    set_member_state,
    monkeypatch,
) -> None:
    paths = job_factory(["a"])
    set_member_state(paths, "a", MemberState.RUNNING, pid=4242)
    monkeypatch.setattr(status_module, "pid_alive", lambda pid: False)

    snapshot = compute_status(paths.job_dir, stale_worker_grace_seconds=5, now=LATER)

    (member,) = snapshot.members
    assert member.state is MemberState.CANCELED
    assert member.message == STALE_WORKER_MESSAGE
    assert snapshot.overall_state is OverallState.DONE
    # The stored record is left to its owner.
    assert '"running"' in paths.status_file("a").read_text("utf-8")


def test_dead_worker_within_grace_period_still_reads_as_running(
    job_factory,
    set_member_state,
    monkeypatch,
) -> None:
    paths = job_factory(["a"])
    set_member_state(paths, "a", MemberState.RUNNING, pid=4242)
    monkeypatch.setattr(status_module, "pid_alive", lambda pid: False)

    snapshot = compute_status(
        paths.job_dir,
        stale_worker_grace_seconds=600,
        now=datetime(2026, 10, 19, 12, 0, 3, tzinfo=UTC),
    )

    assert snapshot.members[0].state is MemberState.RUNNING


def test_live_worker_reads_as_running(job_factory, set_member_state, monkeypatch) -> None:
    paths = job_factory(["a"])
    set_member_state(paths, "a", MemberState.RUNNING, pid=4242)
    monkeypatch.setattr(status_module, "pid_alive", lambda pid: True)

    snapshot = compute_status(paths.job_dir, stale_worker_grace_seconds=0, now=LATER)

    assert snapshot.members[0].state is MemberState.RUNNING
    assert snapshot.overall_state is OverallState.RUNNING


def test_pid_alive_for_current_process_and_invalid_pid() -> None:
    assert pid_alive(os.getpid()) is True
    assert pid_alive(0) is False


def test_long_queued_member_is_not_reconciled(job_factory, monkeypatch) -> None:
    paths = job_factory(["a"])
    monkeypatch.setattr(status_module, "pid_alive", lambda pid: False)

    snapshot = compute_status(
        paths.job_dir,
        stale_worker_grace_seconds=0,
        now=datetime(2026, 10, 20, 12, 0, 0, tzinfo=UTC),
    )

    assert snapshot.members[0].state is MemberState.QUEUED
    assert snapshot.overall_state is OverallState.QUEUED
