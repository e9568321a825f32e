"""Collect prompt, output, and error per member."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from agent_council.jobs.contracts import read_job_meta, read_member_status, read_text_if_exists
from agent_council.jobs.errors import JobNotFoundError
from agent_council.jobs.models import MemberState
from agent_council.jobs.store import JobPaths


@dataclass(slots=True)
class MemberResult:
    """One member's terminal artifacts (or whatever exists so far)."""

    member: str
    state: MemberState
    exit_code: int | None
    message: str | None
    output: str
    error: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "member": self.member,
            "state": self.state.value,
            "exitCode": self.exit_code,
            "message": self.message,
            "output": self.output,
            "error": self.error,
        }


@dataclass(slots=True)
class JobResults:
    """Prompt plus per-member results, sorted by member name."""

    job_dir: Path
    id: str | None
    prompt: str | None
    members: list[MemberResult] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "jobDir": str(self.job_dir),
            "id": self.id,
            "prompt": self.prompt,
            "members": [member.to_payload() for member in self.members],
        }


def collect_results(job_dir: str | Path) -> JobResults:
    """Read every member's status and captured streams.

    Members that are still queued or running are included with empty
    output, so finished members never wait on the others.
    """

    paths = JobPaths.resolve(job_dir)
    if not paths.job_dir.is_dir():
        raise JobNotFoundError("jobDir", paths.job_dir)

    meta = read_job_meta(paths.job_file)
    members: list[MemberResult] = []
    for slug in paths.member_slugs():
        status = read_member_status(paths.status_file(slug))
        if status is None:
            continue
        members.append(
            MemberResult(
                member=status.member,
                state=status.state,
                exit_code=status.exit_code,
                message=status.message,
                output=read_text_if_exists(paths.output_file(slug)) or "",
                error=read_text_if_exists(paths.error_file(slug)) or "",
            ),
        )
    members.sort(key=lambda member: member.member)

    return JobResults(
        job_dir=paths.job_dir,
        id=meta.id if meta is not None else None,
        prompt=read_text_if_exists(paths.prompt_file),
        members=members,
    )
