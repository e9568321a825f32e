"""Runtime settings and council configuration loading."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from agent_council.jobs.models import MemberSpec

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "council.config.yaml"
AUTO_ROLE = "auto"
DEFAULT_CHAIRMAN_ROLE = "claude"
KNOWN_HOST_ROLES = ("claude", "codex")
DEFAULT_TIMEOUT_SECONDS = 120

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "no", "n", "off"}


class ConfigError(ValueError):
    """Council configuration file cannot be interpreted."""


@dataclass(slots=True)
class CouncilSettings:
    """Council-level settings; None means "not set in the config"."""

    timeout_seconds: float | None = None
    exclude_chairman_from_members: bool | None = None


@dataclass(slots=True)
class CouncilConfig:
    """Normalized council configuration consumed by the dispatcher."""

    members: list[MemberSpec]
    chairman_role: str = AUTO_ROLE
    settings: CouncilSettings = field(default_factory=CouncilSettings)


def default_council_config() -> CouncilConfig:
    """Built-in council used when no usable config file exists."""

    return CouncilConfig(
        members=[
            MemberSpec(name="claude", command="claude -p", emoji="🧠", color="CYAN"),
            MemberSpec(name="codex", command="codex exec", emoji="🤖", color="BLUE"),
            MemberSpec(name="gemini", command="gemini", emoji="💎", color="GREEN"),
        ],
        chairman_role=AUTO_ROLE,
        settings=CouncilSettings(
            timeout_seconds=DEFAULT_TIMEOUT_SECONDS,
            exclude_chairman_from_members=True,
        ),
    )


def load_council_config(path: Path) -> CouncilConfig:
    """Load `council:` section from a YAML file, falling back to the built-in council.

    The fallback applies when the file is missing, empty, or lists no member
    with both a name and a command. Malformed YAML raises ConfigError.
    """

    if not path.is_file():
        logger.debug("Council config not found at %s, using built-in council", path)
        return default_council_config()

    try:
        with path.open(encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in council config {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Council config {path} must be a mapping at top level.")
    council = raw.get("council") or {}
    if not isinstance(council, dict):
        raise ConfigError(f"`council` in {path} must be a mapping.")

    members = _parse_members(council.get("members"), path=path)
    if not members:
        logger.info("Council config %s lists no usable members, using built-in council", path)
        return default_council_config()

    return CouncilConfig(
        members=members,
        chairman_role=_parse_chairman(council.get("chairman"), path=path),
        settings=_parse_settings(council.get("settings"), path=path),
    )


def _parse_members(raw: Any, *, path: Path) -> list[MemberSpec]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"`council.members` in {path} must be a list.")

    members: list[MemberSpec] = []
    for item in raw:
        if not isinstance(item, dict):
            raise ConfigError(f"Each entry of `council.members` in {path} must be a mapping.")
        name = _optional_str(item.get("name"))
        command = _optional_str(item.get("command"))
        if not name or not command:
            logger.warning("Skipping council member without name or command in %s: %r", path, item)
            continue
        members.append(
            MemberSpec(
                name=name,
                command=command,
                emoji=_optional_str(item.get("emoji")),
                color=_optional_str(item.get("color")),
            ),
        )
    return members


def _parse_chairman(raw: Any, *, path: Path) -> str:
    if raw is None:
        return AUTO_ROLE
    if isinstance(raw, str):
        return raw.strip() or AUTO_ROLE
    if not isinstance(raw, dict):
        raise ConfigError(f"`council.chairman` in {path} must be a mapping or a string.")
    role = _optional_str(raw.get("role")) or _optional_str(raw.get("name"))
    return role or AUTO_ROLE


def _parse_settings(raw: Any, *, path: Path) -> CouncilSettings:
    if raw is None:
        return CouncilSettings()
    if not isinstance(raw, dict):
        raise ConfigError(f"`council.settings` in {path} must be a mapping.")

    timeout_raw = raw.get("timeout")
    timeout_seconds: float | None = None
    if timeout_raw is not None and timeout_raw != "":
        try:
            timeout_value = float(timeout_raw)
        except (TypeError, ValueError) as error:
            raise ConfigError(
                f"`council.settings.timeout` in {path} must be a number: {timeout_raw!r}",
            ) from error
        timeout_seconds = timeout_value if timeout_value > 0 else None

    return CouncilSettings(
        timeout_seconds=timeout_seconds,
        exclude_chairman_from_members=parse_bool(raw.get("exclude_chairman_from_members")),
    )


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_bool(value: Any) -> bool | None:
    """Lenient boolean parsing; None for missing or unrecognized values."""

    if value is None:
        return None
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return None


def detect_host_role(skill_dir: Path) -> str:
    """Infer which agent host installed the skill from its directory."""

    normalized = str(skill_dir).replace("\\", "/")
    if "/.claude/skills/" in f"{normalized}/":
        return "claude"
    if "/.codex/skills/" in f"{normalized}/":
        return "codex"
    return "unknown"


def resolve_chairman_role(role: str | None, host_role: str) -> str:
    """Resolve `auto` to the host's own role, falling back to the default chairman."""

    normalized = (role or "").strip().lower()
    if normalized and normalized != AUTO_ROLE:
        return normalized
    if host_role in KNOWN_HOST_ROLES:
        return host_role
    return DEFAULT_CHAIRMAN_ROLE


@dataclass(slots=True)
class Settings:
    """Process-level settings resolved from the environment."""

    skill_dir: Path = field(default_factory=Path.cwd)
    jobs_dir: Path | None = None
    config_path: Path | None = None
    chairman: str | None = None
    host_role: str | None = None
    wait_interval_ms: int = 250
    stale_worker_grace_seconds: float = 5.0
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults anchored at the skill directory."""

        skill_dir = Path(os.getenv("COUNCIL_SKILL_DIR") or Path.cwd()).expanduser()
        jobs_dir = os.getenv("COUNCIL_JOBS_DIR")
        config_path = os.getenv("COUNCIL_CONFIG")
        return cls(
            skill_dir=skill_dir,
            jobs_dir=Path(jobs_dir).expanduser() if jobs_dir else None,
            config_path=Path(config_path).expanduser() if config_path else None,
            chairman=os.getenv("COUNCIL_CHAIRMAN") or None,
            host_role=os.getenv("COUNCIL_HOST_ROLE") or None,
            wait_interval_ms=int(os.getenv("COUNCIL_WAIT_INTERVAL_MS", "250")),
            stale_worker_grace_seconds=float(
                os.getenv("COUNCIL_STALE_WORKER_GRACE_SECONDS", "5"),
            ),
            log_level=os.getenv("COUNCIL_LOG_LEVEL", "WARNING").upper(),
        )

    def effective_host_role(self) -> str:
        if self.host_role:
            return self.host_role.strip().lower()
        return detect_host_role(self.skill_dir)

    def effective_jobs_dir(self, override: Path | None = None) -> Path:
        if override is not None:
            return override
        if self.jobs_dir is not None:
            return self.jobs_dir
        return self.skill_dir / ".jobs"

    def effective_config_path(self, override: Path | None = None) -> Path:
        """Explicit path, else the skill-local file, else the repository-level file."""

        if override is not None:
            return override
        if self.config_path is not None:
            return self.config_path
        skill_config = self.skill_dir / CONFIG_FILE_NAME
        if skill_config.is_file():
            return skill_config
        repo_config = self.skill_dir.parent.parent / CONFIG_FILE_NAME
        if repo_config.is_file():
            return repo_config
        return skill_config
