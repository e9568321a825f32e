"""Directory-per-job layout and materialization."""

from __future__ import annotations

import re
import secrets
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from agent_council.jobs.contracts import (
    utc_now_iso,
    write_job_meta,
    write_member_status,
    write_text_atomic,
)
from agent_council.jobs.models import JobMeta, MemberState, MemberStatus

JOB_FILE = "job.json"
PROMPT_FILE = "prompt.txt"
CURSOR_FILE = ".wait_cursor"
MEMBERS_DIR = "members"
STATUS_FILE = "status.json"
OUTPUT_FILE = "output.txt"
ERROR_FILE = "error.txt"
WORKER_LOG_FILE = "worker.log"

JOB_ID_PREFIX = "council-"

_SLUG_INVALID = re.compile(r"[^a-z0-9_-]+")


@dataclass(slots=True, frozen=True)
class JobPaths:
    """Resolved paths inside one job directory."""

    job_dir: Path

    @classmethod
    def resolve(cls, job_dir: str | Path) -> JobPaths:
        return cls(Path(job_dir).expanduser().resolve())

    @property
    def job_file(self) -> Path:
        return self.job_dir / JOB_FILE

    @property
    def prompt_file(self) -> Path:
        return self.job_dir / PROMPT_FILE

    @property
    def cursor_file(self) -> Path:
        return self.job_dir / CURSOR_FILE

    @property
    def members_dir(self) -> Path:
        return self.job_dir / MEMBERS_DIR

    def member_dir(self, slug: str) -> Path:
        return self.members_dir / slug

    def status_file(self, slug: str) -> Path:
        return self.member_dir(slug) / STATUS_FILE

    def output_file(self, slug: str) -> Path:
        return self.member_dir(slug) / OUTPUT_FILE

    def error_file(self, slug: str) -> Path:
        return self.member_dir(slug) / ERROR_FILE

    def worker_log_file(self, slug: str) -> Path:
        return self.member_dir(slug) / WORKER_LOG_FILE

    def member_slugs(self) -> list[str]:
        """Member subdirectory names, sorted; empty when the members folder is absent."""

        if not self.members_dir.is_dir():
            return []
        return sorted(entry.name for entry in self.members_dir.iterdir() if entry.is_dir())


def slugify(name: str) -> str:
    """Filesystem-safe identifier for a member name."""

    cleaned = _SLUG_INVALID.sub("-", name.strip().lower())
    return cleaned or "member"


def unique_slugs(names: Iterable[str]) -> list[str]:
    """Slugify names, suffixing collisions so each member keeps its own directory."""

    seen: set[str] = set()
    slugs: list[str] = []
    for name in names:
        base = slugify(name)
        slug = base
        suffix = 2
        while slug in seen:
            slug = f"{base}-{suffix}"
            suffix += 1
        seen.add(slug)
        slugs.append(slug)
    return slugs


def new_job_id(now: datetime | None = None, random_suffix: str | None = None) -> str:
    """Lexically time-ordered job id: `council-YYYYMMDD-HHMMSS-<hex>`."""

    moment = now or datetime.now(tz=UTC)
    suffix = random_suffix if random_suffix is not None else secrets.token_hex(3)
    return f"{JOB_ID_PREFIX}{moment.strftime('%Y%m%d-%H%M%S')}-{suffix}"


class JobStore:
    """Creates and removes job directories under one root."""

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = root_dir

    def materialize(self, *, meta: JobMeta, prompt: str) -> JobPaths:
        """Write prompt, metadata, and one queued status per member.

        Everything a worker reads exists before this returns, so workers
        spawned afterwards always observe a fully formed job directory.
        """

        paths = JobPaths.resolve(self.root_dir / meta.id)
        paths.members_dir.mkdir(parents=True, exist_ok=False)

        write_text_atomic(paths.prompt_file, prompt)
        write_job_meta(paths.job_file, meta)

        for member in meta.members:
            paths.member_dir(member.slug).mkdir()
            write_member_status(
                paths.status_file(member.slug),
                MemberStatus(
                    member=member.name,
                    state=MemberState.QUEUED,
                    command=member.command,
                    queued_at=utc_now_iso(),
                ),
            )
        return paths


def remove_job(paths: JobPaths) -> bool:
    """Recursively delete a job directory; returns False when it was already gone."""

    if not paths.job_dir.exists():
        return False
    shutil.rmtree(paths.job_dir)
    return True
