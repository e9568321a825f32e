"""CLI entrypoint for agent-council."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import rich_click as click

from agent_council import __version__
from agent_council.config import ConfigError, Settings
from agent_council.controllers import (
    OUTPUT_CHECKLIST,
    OUTPUT_JSON,
    OUTPUT_TEXT,
    CouncilCliController,
    JobDirCommand,
    ResultsCommand,
    StartCommand,
    StatusCommand,
    WaitCommand,
)
from agent_council.jobs.errors import CouncilJobError

click.rich_click.USE_MARKDOWN = True
COUNCIL_CONTROLLER = CouncilCliController()

_JOB_DIR = click.argument("job_dir", type=click.Path(path_type=Path))


@click.group()
@click.version_option(version=__version__, prog_name="agent-council")
def agent_council() -> None:
    """Agent Council (job mode).

    `start` returns immediately and runs members in parallel via detached
    workers. Poll with `status`, or use `wait` to block until meaningful
    progress happens without spamming tool calls.
    """

    logging.basicConfig(
        level=Settings.from_env().log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )


@agent_council.command("start")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Council config YAML. Defaults to COUNCIL_CONFIG or council.config.yaml.",
)
@click.option(
    "--chairman",
    default=None,
    help="Chairman role: auto, claude, codex, ... Defaults to COUNCIL_CHAIRMAN or the config.",
)
@click.option("--jobs-dir", type=click.Path(path_type=Path), default=None, help="Job store root.")
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Per-member timeout in seconds (overrides the config; 0 keeps the config value).",
)
@click.option(
    "--exclude-chairman/--include-chairman",
    "exclude_chairman",
    default=None,
    help="Whether the chairman also runs as a member. Defaults to the config (exclude).",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print full job metadata.")
@click.argument("prompt", nargs=-1, required=True)
def start(  # noqa: PLR0913
    config_path: Path | None,
    chairman: str | None,
    jobs_dir: Path | None,
    timeout_seconds: float | None,
    exclude_chairman: bool | None,
    as_json: bool,
    prompt: tuple[str, ...],
) -> None:
    """Create a job and dispatch one worker per member."""

    with _cli_errors():
        _emit_lines(
            COUNCIL_CONTROLLER.start(
                StartCommand(
                    prompt=" ".join(prompt).strip(),
                    config_path=config_path,
                    chairman=chairman,
                    jobs_dir=jobs_dir,
                    timeout_seconds=timeout_seconds,
                    exclude_chairman=exclude_chairman,
                    as_json=as_json,
                ),
            ),
        )


@agent_council.command("status")
@click.option(
    "--json",
    "output_format",
    flag_value=OUTPUT_JSON,
    default=True,
    help="JSON snapshot.",
)
@click.option("--text", "output_format", flag_value=OUTPUT_TEXT, help="One-line summary.")
@click.option("--checklist", "output_format", flag_value=OUTPUT_CHECKLIST, help="Checklist view.")
@click.option("--verbose", is_flag=True, default=False, help="Per-member lines in --text mode.")
@_JOB_DIR
def status(output_format: str, verbose: bool, job_dir: Path) -> None:
    """Show job and member states."""

    with _cli_errors():
        _emit_lines(
            COUNCIL_CONTROLLER.status(
                StatusCommand(job_dir=job_dir, output_format=output_format, verbose=verbose),
            ),
        )


@agent_council.command("wait")
@click.option("--cursor", default=None, help="Cursor returned by the previous wait call.")
@click.option("--bucket", default=None, help="Bucket size: auto or a positive integer.")
@click.option(
    "--interval-ms",
    type=int,
    default=None,
    help="Poll interval in milliseconds (default 250, floor 50).",
)
@click.option(
    "--timeout-ms",
    type=int,
    default=0,
    show_default=True,
    help="Return with the latest snapshot after this long; 0 waits for progress.",
)
@_JOB_DIR
def wait(
    cursor: str | None,
    bucket: str | None,
    interval_ms: int | None,
    timeout_ms: int,
    job_dir: Path,
) -> None:
    """Block until bucketed progress happens, then print JSON with the next cursor."""

    with _cli_errors():
        _emit_lines(
            COUNCIL_CONTROLLER.wait(
                WaitCommand(
                    job_dir=job_dir,
                    cursor=cursor,
                    bucket=bucket,
                    interval_ms=interval_ms,
                    timeout_ms=timeout_ms,
                ),
            ),
        )


@agent_council.command("results")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON.")
@_JOB_DIR
def results(as_json: bool, job_dir: Path) -> None:
    """Print prompt outputs per member."""

    with _cli_errors():
        _emit_lines(COUNCIL_CONTROLLER.results(ResultsCommand(job_dir=job_dir, as_json=as_json)))


@agent_council.command("stop")
@_JOB_DIR
def stop(job_dir: Path) -> None:
    """Send SIGTERM to running members."""

    with _cli_errors():
        _emit_lines(COUNCIL_CONTROLLER.stop(JobDirCommand(job_dir=job_dir)))


@agent_council.command("clean")
@_JOB_DIR
def clean(job_dir: Path) -> None:
    """Delete the job directory."""

    with _cli_errors():
        _emit_lines(COUNCIL_CONTROLLER.clean(JobDirCommand(job_dir=job_dir)))


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except (CouncilJobError, ConfigError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_council()
