"""Per-member worker process: runs one member command and records its outcome.

Started detached by the dispatcher as ``python -m agent_council.jobs.worker``.
The worker is the only writer of its member's status, output, and error files.
"""

from __future__ import annotations

import argparse
import logging
import os
import shlex
import shutil
import signal
import subprocess
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from agent_council.config import Settings
from agent_council.jobs.contracts import (
    read_member_status,
    read_text_if_exists,
    utc_now_iso,
    write_member_status,
)
from agent_council.jobs.models import MemberState, MemberStatus
from agent_council.jobs.store import JobPaths

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
_PROMPT_PLACEHOLDERS = ("{prompt}", "{prompt_file}")


class MemberCommandError(ValueError):
    """Member command cannot be turned into an argv."""


@dataclass(slots=True)
class MemberRunRequest:
    """Inputs for one member execution."""

    job_dir: Path
    member: str
    slug: str
    command: str
    timeout_seconds: float | None = None


@dataclass(slots=True)
class MemberRunOutcome:
    """Terminal state produced by a finished, failed, timed out, or canceled run."""

    state: MemberState
    exit_code: int | None
    message: str | None


def build_run_args(command: str, *, prompt: str, prompt_file: Path) -> list[str]:
    """Render a member command into argv.

    Commands with a `{prompt}` or `{prompt_file}` placeholder get it substituted;
    any other command receives the prompt as its final argument.
    """

    stripped = command.strip()
    if not stripped:
        raise MemberCommandError("Member command is empty.")

    try:
        if any(placeholder in stripped for placeholder in _PROMPT_PLACEHOLDERS):
            rendered = stripped.replace("{prompt_file}", shlex.quote(str(prompt_file))).replace(
                "{prompt}",
                shlex.quote(prompt),
            )
            argv = shlex.split(rendered)
        else:
            argv = [*shlex.split(stripped), prompt]
    except ValueError as error:
        raise MemberCommandError(f"Cannot parse member command {command!r}: {error}") from error

    if not argv:
        raise MemberCommandError("Member command rendered an empty argv.")
    return argv


def command_executable(command: str) -> str | None:
    """First word of the command, or None when it has none."""

    try:
        parts = shlex.split(command)
    except ValueError:
        parts = command.split()
    return parts[0] if parts else None


class MemberWorker:
    """Executes one member command and drives its status through the state machine."""

    def __init__(self, request: MemberRunRequest, *, poll_interval_seconds: float = 0.1) -> None:
        self.request = request
        self.paths = JobPaths.resolve(request.job_dir)
        self.poll_interval_seconds = poll_interval_seconds
        self._stop_signal_name: str | None = None
        self._queued_at: str | None = None

    @property
    def status_path(self) -> Path:
        return self.paths.status_file(self.request.slug)

    def run(self) -> MemberStatus:
        """Run to a terminal state, honouring SIGTERM/SIGINT as cancellation."""

        with self._signal_handlers():
            return self._run()

    def request_stop(self, *, signal_name: str) -> None:
        if self._stop_signal_name is None:
            logger.info("Stop requested for %s via %s", self.request.member, signal_name)
        self._stop_signal_name = signal_name

    def _run(self) -> MemberStatus:
        previous = read_member_status(self.status_path)
        if previous is not None and previous.state.is_terminal:
            logger.warning(
                "Member %s already terminal (%s); not running again",
                self.request.member,
                previous.state.value,
            )
            return previous
        self._queued_at = previous.queued_at if previous is not None else None

        executable = command_executable(self.request.command)
        if executable is None or shutil.which(executable) is None:
            return self._finish(
                MemberRunOutcome(
                    state=MemberState.MISSING_CLI,
                    exit_code=None,
                    message=f"Missing CLI on PATH: {executable or '<empty command>'}",
                ),
            )

        prompt = read_text_if_exists(self.paths.prompt_file)
        if prompt is None:
            return self._finish(
                MemberRunOutcome(
                    state=MemberState.ERROR,
                    exit_code=None,
                    message=f"prompt.txt not found: {self.paths.prompt_file}",
                ),
            )

        try:
            run_args = build_run_args(
                self.request.command,
                prompt=prompt,
                prompt_file=self.paths.prompt_file,
            )
        except MemberCommandError as error:
            return self._finish(
                MemberRunOutcome(state=MemberState.ERROR, exit_code=None, message=str(error)),
            )

        started_at = utc_now_iso()
        write_member_status(
            self.status_path,
            self._status(MemberState.RUNNING, started_at=started_at, pid=os.getpid()),
        )
        logger.info("Running %s: %s", self.request.member, run_args[0])

        outcome = self._execute(run_args)
        return self._finish(outcome, started_at=started_at)

    def _execute(self, run_args: list[str]) -> MemberRunOutcome:
        member_dir = self.paths.member_dir(self.request.slug)
        stdout_partial = member_dir / ".output.txt.partial"
        stderr_partial = member_dir / ".error.txt.partial"

        try:
            with (
                stdout_partial.open("w", encoding="utf-8") as stdout_handle,
                stderr_partial.open("w", encoding="utf-8") as stderr_handle,
            ):
                try:
                    process = subprocess.Popen(  # noqa: S603
                        run_args,
                        stdin=subprocess.DEVNULL,
                        stdout=stdout_handle,
                        stderr=stderr_handle,
                    )
                except OSError as error:
                    return MemberRunOutcome(
                        state=MemberState.ERROR,
                        exit_code=None,
                        message=f"Failed to start {run_args[0]}: {error}",
                    )
                return self._supervise(process)
        finally:
            _publish(stdout_partial, self.paths.output_file(self.request.slug))
            _publish(stderr_partial, self.paths.error_file(self.request.slug))

    def _supervise(self, process: subprocess.Popen[bytes]) -> MemberRunOutcome:
        timeout_seconds = self.request.timeout_seconds
        start_monotonic = time.monotonic()

        while True:
            returncode = process.poll()
            if returncode is not None:
                if returncode == 0:
                    return MemberRunOutcome(state=MemberState.DONE, exit_code=0, message=None)
                return MemberRunOutcome(
                    state=MemberState.ERROR,
                    exit_code=returncode,
                    message=f"Exited with code {returncode}",
                )

            if self._stop_signal_name is not None:
                _terminate_process(process)
                return MemberRunOutcome(
                    state=MemberState.CANCELED,
                    exit_code=process.returncode,
                    message=f"Canceled by {self._stop_signal_name}",
                )

            if timeout_seconds and time.monotonic() - start_monotonic >= timeout_seconds:
                _terminate_process(process)
                return MemberRunOutcome(
                    state=MemberState.TIMED_OUT,
                    exit_code=TIMEOUT_EXIT_CODE,
                    message=f"Timed out after {timeout_seconds:g}s",
                )

            time.sleep(self.poll_interval_seconds)

    def _finish(self, outcome: MemberRunOutcome, *, started_at: str | None = None) -> MemberStatus:
        status = self._status(
            outcome.state,
            started_at=started_at,
            finished_at=utc_now_iso(),
            exit_code=outcome.exit_code,
            message=outcome.message,
        )
        write_member_status(self.status_path, status)
        logger.info(
            "Member %s finished: state=%s exit=%s",
            self.request.member,
            outcome.state.value,
            outcome.exit_code,
        )
        return status

    def _status(  # noqa: PLR0913
        self,
        state: MemberState,
        *,
        started_at: str | None = None,
        finished_at: str | None = None,
        pid: int | None = None,
        exit_code: int | None = None,
        message: str | None = None,
    ) -> MemberStatus:
        return MemberStatus(
            member=self.request.member,
            state=state,
            command=self.request.command,
            queued_at=self._queued_at,
            started_at=started_at,
            finished_at=finished_at,
            pid=pid,
            exit_code=exit_code,
            message=message,
        )

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGTERM"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
            yield
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
        finally:
            try:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
            except ValueError:
                pass


def _publish(partial: Path, final: Path) -> None:
    if partial.exists():
        os.replace(partial, final)


def _terminate_process(process: subprocess.Popen[bytes]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)


def main(argv: list[str] | None = None) -> int:
    """Worker process entrypoint."""

    parser = argparse.ArgumentParser(prog="agent-council-worker")
    parser.add_argument("--job-dir", required=True)
    parser.add_argument("--member", required=True)
    parser.add_argument("--safe-member", required=True)
    parser.add_argument("--command", required=True)
    parser.add_argument("--timeout", type=float, default=None)
    args = parser.parse_args(argv)

    request = MemberRunRequest(
        job_dir=Path(args.job_dir),
        member=args.member,
        slug=args.safe_member,
        command=args.command,
        timeout_seconds=args.timeout if args.timeout and args.timeout > 0 else None,
    )
    worker = MemberWorker(request)
    logging.basicConfig(
        filename=worker.paths.worker_log_file(request.slug),
        level=Settings.from_env().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    worker.run()
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
