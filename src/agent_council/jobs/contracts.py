"""File-based contracts for job metadata and member status records."""

from __future__ import annotations

import json
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from agent_council.jobs.models import (
    JobMember,
    JobMeta,
    JobSettings,
    MemberState,
    MemberStatus,
)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with a `Z` suffix."""

    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def write_text_atomic(path: Path, content: str) -> None:
    """Replace `path` with `content` so readers only ever see a complete file."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload atomically using deterministic formatting."""

    write_text_atomic(path, json.dumps(payload, ensure_ascii=False, indent=2) + "\n")


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def read_json_if_exists(path: Path) -> dict[str, Any] | None:
    """Load a JSON object, treating missing or unreadable files as absent."""

    try:
        return load_json(path)
    except (OSError, ValueError, TypeError):
        return None


def read_text_if_exists(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return None


def job_meta_to_payload(meta: JobMeta) -> dict[str, Any]:
    return {
        "id": meta.id,
        "createdAt": meta.created_at,
        "configPath": meta.config_path,
        "hostRole": meta.host_role,
        "chairmanRole": meta.chairman_role,
        "settings": {
            "excludeChairmanFromMembers": meta.settings.exclude_chairman_from_members,
            "timeoutSec": meta.settings.timeout_seconds,
        },
        "members": [
            {
                "name": member.name,
                "command": member.command,
                "slug": member.slug,
                "emoji": member.emoji,
                "color": member.color,
            }
            for member in meta.members
        ],
    }


def write_job_meta(path: Path, meta: JobMeta) -> None:
    """Serialize job metadata."""

    write_json(path, job_meta_to_payload(meta))


def read_job_meta(path: Path) -> JobMeta | None:
    """Deserialize job metadata; returns None when the file is absent or unreadable."""

    raw = read_json_if_exists(path)
    if raw is None:
        return None

    raw_settings = raw.get("settings")
    if not isinstance(raw_settings, dict):
        raw_settings = {}
    timeout_raw = raw_settings.get("timeoutSec")
    settings = JobSettings(
        exclude_chairman_from_members=bool(raw_settings.get("excludeChairmanFromMembers", True)),
        timeout_seconds=(
            float(timeout_raw)
            if isinstance(timeout_raw, int | float) and not isinstance(timeout_raw, bool)
            else None
        ),
    )

    members: list[JobMember] = []
    raw_members = raw.get("members")
    for item in raw_members if isinstance(raw_members, list) else []:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        members.append(
            JobMember(
                name=str(item["name"]),
                command=str(item.get("command", "")),
                slug=str(item.get("slug", "")),
                emoji=item.get("emoji"),
                color=item.get("color"),
            ),
        )

    return JobMeta(
        id=str(raw.get("id", "")),
        created_at=str(raw.get("createdAt", "")),
        config_path=str(raw.get("configPath", "")),
        host_role=str(raw.get("hostRole", "")),
        chairman_role=str(raw.get("chairmanRole", "")),
        settings=settings,
        members=members,
    )


def member_status_to_payload(status: MemberStatus) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "member": status.member,
        "state": status.state.value,
        "queuedAt": status.queued_at,
        "startedAt": status.started_at,
        "finishedAt": status.finished_at,
        "pid": status.pid,
        "exitCode": status.exit_code,
        "message": status.message,
        "command": status.command,
    }
    return {key: value for key, value in payload.items() if value is not None}


def write_member_status(path: Path, status: MemberStatus) -> None:
    """Atomically replace one member's status record."""

    write_json(path, member_status_to_payload(status))


def read_member_status(path: Path) -> MemberStatus | None:
    """Load a member status record; None when absent, unreadable, or in an unknown state."""

    raw = read_json_if_exists(path)
    if raw is None:
        return None
    member = raw.get("member")
    if not isinstance(member, str) or not member:
        return None
    try:
        state = MemberState(str(raw.get("state")))
    except ValueError:
        return None

    pid = raw.get("pid")
    exit_code = raw.get("exitCode")
    message = raw.get("message")
    return MemberStatus(
        member=member,
        state=state,
        command=str(raw.get("command", "")),
        queued_at=raw.get("queuedAt"),
        started_at=raw.get("startedAt"),
        finished_at=raw.get("finishedAt"),
        pid=pid if isinstance(pid, int) else None,
        exit_code=exit_code if isinstance(exit_code, int) else None,
        message=str(message) if message is not None else None,
    )
