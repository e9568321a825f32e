from __future__ import annotations

import json
import time
from pathlib import Path

import allure
import yaml
from click.testing import CliRunner

from agent_council.main import agent_council

pytestmark = [
    allure.epic("Agent Council CLI"),
    allure.feature("Job Lifecycle"),
]


def _write_config(path: Path, members: dict[str, str], *, chairman: str = "codex") -> Path:
    path.write_text(
        yaml.safe_dump(
            {
                "council": {
                    "chairman": {"role": chairman},
                    "members": [
                        {"name": name, "command": command} for name, command in members.items()
                    ],
                    "settings": {"timeout": 60, "exclude_chairman_from_members": True},
                },
            },
        ),
        "utf-8",
    )
    return path


def _start(runner: CliRunner, config: Path, jobs_dir: Path, prompt: str) -> Path:
    result = runner.invoke(
        agent_council,
        ["start", "--config", str(config), "--jobs-dir", str(jobs_dir), prompt],
    )
    assert result.exit_code == 0, result.output
    job_dir = Path(result.output.strip())
    assert job_dir.parent == jobs_dir.resolve()
    return job_dir


def _wait_until_done(runner: CliRunner, job_dir: Path) -> dict:
    cursor: str | None = None
    deadline = time.monotonic() + 60
    while time.monotonic() < deadline:
        args = ["wait", "--interval-ms", "50", "--timeout-ms", "20000", str(job_dir)]
        if cursor:
            args[1:1] = ["--cursor", cursor]
        result = runner.invoke(agent_council, args)
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        cursor = payload["cursor"]
        if payload["overallState"] == "done":
            return payload
    raise AssertionError(f"job {job_dir} did not finish")


def test_start_wait_results_and_clean(tmp_path: Path, echo_command: str) -> None:
    runner = CliRunner()
    config = _write_config(
        tmp_path / "council.config.yaml",
        {
            "alpha": echo_command,
            "beta": f"{echo_command} --exit-code 2 --stderr nope",
            "codex": echo_command,
        },
    )

    job_dir = _start(runner, config, tmp_path / "jobs", "Should we use library X?")
    final = _wait_until_done(runner, job_dir)

    assert final["counts"]["total"] == 2
    assert final["counts"]["done"] == 1
    assert final["counts"]["error"] == 1
    assert final["cursor"].endswith(":1")
    assert final["ui"]["progress"] == {"done": 2, "total": 2, "overallState": "done"}
    assert (job_dir / ".wait_cursor").read_text("utf-8") == final["cursor"]

    results = runner.invoke(agent_council, ["results", "--json", str(job_dir)])
    assert results.exit_code == 0, results.output
    payload = json.loads(results.output)
    assert payload["prompt"] == "Should we use library X?"
    by_member = {member["member"]: member for member in payload["members"]}
    assert by_member["alpha"]["output"].strip() == "echo: Should we use library X?"
    assert by_member["beta"]["exitCode"] == 2
    assert "nope" in by_member["beta"]["error"]

    text = runner.invoke(agent_council, ["results", str(job_dir)])
    assert "=== alpha (done) ===" in text.output

    checklist = runner.invoke(agent_council, ["status", "--checklist", str(job_dir)])
    assert checklist.exit_code == 0, checklist.output
    assert "[x] alpha — done (exit 0)" in checklist.output
    assert "[!] beta — error (exit 2)" in checklist.output

    summary = runner.invoke(agent_council, ["status", "--text", "--verbose", str(job_dir)])
    assert summary.output.splitlines()[0] == "members 2/2 done; running=0 queued=0"

    cleaned = runner.invoke(agent_council, ["clean", str(job_dir)])
    assert cleaned.exit_code == 0, cleaned.output
    assert cleaned.output.strip() == f"cleaned: {job_dir}"
    assert not job_dir.exists()


def test_start_json_payload_and_status_json(tmp_path: Path, echo_command: str) -> None:
    runner = CliRunner()
    config = _write_config(tmp_path / "council.config.yaml", {"alpha": echo_command})

    result = runner.invoke(
        agent_council,
        [
            "start",
            "--json",
            "--config",
            str(config),
            "--jobs-dir",
            str(tmp_path / "jobs"),
            "--timeout",
            "30",
            "ping",
        ],
    )

    assert result.exit_code == 0, result.output
    started = json.loads(result.output)
    assert started["chairmanRole"] == "codex"
    assert started["settings"]["timeoutSec"] == 30
    assert [member["name"] for member in started["members"]] == ["alpha"]

    _wait_until_done(runner, Path(started["jobDir"]))
    status = runner.invoke(agent_council, ["status", started["jobDir"]])
    assert json.loads(status.output)["members"][0]["state"] == "done"


def test_stop_cancels_running_member(tmp_path: Path, echo_command: str) -> None:
    runner = CliRunner()
    config = _write_config(tmp_path / "council.config.yaml", {"slow": f"{echo_command} --sleep 60"})
    job_dir = _start(runner, config, tmp_path / "jobs", "take your time")

    deadline = time.monotonic() + 30
    while time.monotonic() < deadline:
        status = json.loads(runner.invoke(agent_council, ["status", str(job_dir)]).output)
        if status["members"][0]["state"] == "running":
            break
        time.sleep(0.05)
    else:
        raise AssertionError("member never started")

    stopped = runner.invoke(agent_council, ["stop", str(job_dir)])
    assert stopped.exit_code == 0, stopped.output
    assert stopped.output.strip() == "stop: sent SIGTERM to running members (slow)"

    final = _wait_until_done(runner, job_dir)
    assert final["members"][0]["state"] == "canceled"

    again = runner.invoke(agent_council, ["stop", str(job_dir)])
    assert again.output.strip() == "stop: no running members"


def test_missing_job_is_reported_as_cli_error(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(agent_council, ["status", str(tmp_path / "nope")])

    assert result.exit_code == 1
    assert "jobDir not found" in result.output


def test_invalid_wait_arguments_are_cli_errors(job_factory) -> None:
    paths = job_factory(["a"])
    runner = CliRunner()

    result = runner.invoke(agent_council, ["wait", "--bucket", "0", str(paths.job_dir)])

    assert result.exit_code == 1
    assert "invalid --bucket" in result.output


def test_start_without_prompt_is_usage_error() -> None:
    result = CliRunner().invoke(agent_council, ["start"])

    assert result.exit_code == 2


def test_zero_timeout_keeps_config_value_and_fractions_are_accepted(
    tmp_path: Path,
    echo_command: str,
) -> None:
    runner = CliRunner()
    config = _write_config(tmp_path / "council.config.yaml", {"alpha": echo_command})
    base = ["start", "--json", "--config", str(config), "--jobs-dir", str(tmp_path / "jobs")]

    from_config = runner.invoke(agent_council, [*base, "--timeout", "0", "ping"])
    fractional = runner.invoke(agent_council, [*base, "--timeout", "2.5", "ping"])

    assert from_config.exit_code == 0, from_config.output
    assert fractional.exit_code == 0, fractional.output
    assert json.loads(from_config.output)["settings"]["timeoutSec"] == 60
    assert json.loads(fractional.output)["settings"]["timeoutSec"] == 2.5
    _wait_until_done(runner, Path(json.loads(from_config.output)["jobDir"]))
    _wait_until_done(runner, Path(json.loads(fractional.output)["jobDir"]))
