"""Domain models for council jobs and member execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class MemberState(str, Enum):
    """Per-member lifecycle states; the last five are terminal."""

    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    MISSING_CLI = "missing_cli"
    TIMED_OUT = "timed_out"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        MemberState.DONE,
        MemberState.ERROR,
        MemberState.MISSING_CLI,
        MemberState.TIMED_OUT,
        MemberState.CANCELED,
    },
)


class OverallState(str, Enum):
    """Job-level state derived from member states."""

    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"


@dataclass(slots=True)
class MemberSpec:
    """One configured member as supplied by the config resolver."""

    name: str
    command: str
    emoji: str | None = None
    color: str | None = None


@dataclass(slots=True)
class JobSettings:
    """Settings frozen into the job at dispatch time."""

    exclude_chairman_from_members: bool = True
    timeout_seconds: float | None = None


@dataclass(slots=True)
class JobMember:
    """Dispatched member snapshot stored in job.json."""

    name: str
    command: str
    slug: str
    emoji: str | None = None
    color: str | None = None


@dataclass(slots=True)
class JobMeta:
    """Write-once job metadata."""

    id: str
    created_at: str
    config_path: str
    host_role: str
    chairman_role: str
    settings: JobSettings
    members: list[JobMember] = field(default_factory=list)


@dataclass(slots=True)
class MemberStatus:
    """Persisted member status record, owned by the member's worker."""

    member: str
    state: MemberState
    command: str
    queued_at: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    pid: int | None = None
    exit_code: int | None = None
    message: str | None = None


@dataclass(slots=True)
class MemberSnapshot:
    """Member view returned by the status aggregator."""

    member: str
    state: MemberState
    slug: str
    started_at: str | None = None
    finished_at: str | None = None
    exit_code: int | None = None
    message: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "member": self.member,
            "state": self.state.value,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "exitCode": self.exit_code,
            "message": self.message,
        }


@dataclass(slots=True)
class StatusCounts:
    """Per-state member tallies."""

    total: int = 0
    queued: int = 0
    running: int = 0
    done: int = 0
    error: int = 0
    missing_cli: int = 0
    timed_out: int = 0
    canceled: int = 0

    @property
    def terminal(self) -> int:
        return self.done + self.error + self.missing_cli + self.timed_out + self.canceled

    def add(self, state: MemberState) -> None:
        setattr(self, state.value, getattr(self, state.value) + 1)

    def to_payload(self) -> dict[str, int]:
        return {
            "total": self.total,
            "queued": self.queued,
            "running": self.running,
            "done": self.done,
            "error": self.error,
            "missing_cli": self.missing_cli,
            "timed_out": self.timed_out,
            "canceled": self.canceled,
        }


@dataclass(slots=True)
class StatusSnapshot:
    """Read-only snapshot of a job and all of its members."""

    job_dir: Path
    id: str | None
    chairman_role: str | None
    overall_state: OverallState
    counts: StatusCounts
    members: list[MemberSnapshot]

    def to_payload(self) -> dict[str, Any]:
        return {
            "jobDir": str(self.job_dir),
            "id": self.id,
            "chairmanRole": self.chairman_role,
            "overallState": self.overall_state.value,
            "counts": self.counts.to_payload(),
            "members": [member.to_payload() for member in self.members],
        }
